"""
Intent classification over the model backend.

Classification is best-effort: a backend timeout, malformed JSON or a
missing capability all collapse to ``unclear`` with zero confidence rather
than aborting the turn.
"""

import logging
from typing import Any, Optional, Sequence

from sales_agent.config import AppConfig, settings
from sales_agent.exceptions import LLMProviderError
from sales_agent.llm.base import supports_json
from sales_agent.prompts.prompt_templates import build_intent_prompt
from sales_agent.prompts.system_prompts import INTENT_JSON_SCHEMA
from sales_agent.schemas.conversation_schema import UNCLEAR_INTENT, IntentResult
from sales_agent.schemas.session_schema import TurnRecord
from sales_agent.utils import clamp01, extract_json_block

logger = logging.getLogger(__name__)


def normalize_confidence(value: Any) -> float:
    """Clamp into [0, 1]; NaN, missing and non-numeric values become 0."""
    return clamp01(value, 0.0)


class IntentClassifier:
    """Maps a message plus recent history to an ``IntentResult``."""

    def __init__(self, llm: Any, config: Optional[AppConfig] = None) -> None:
        self._llm = llm
        self._config = config or settings
        self.intents: tuple[str, ...] = tuple(self._config.conversation.intents)

    async def classify(
        self, message: str, history: Sequence[TurnRecord] = ()
    ) -> IntentResult:
        prompt = build_intent_prompt(
            message,
            history,
            self.intents,
            window=self._config.conversation.history_window,
        )
        options = {"temperature": self._config.llm.classification_temperature}

        try:
            if supports_json(self._llm):
                raw = await self._llm.complete_json(prompt, INTENT_JSON_SCHEMA, options)
            else:
                text = await self._llm.complete(prompt, options)
                raw = extract_json_block(text)
                if raw is None:
                    raise LLMProviderError("Model did not return a JSON object")
            result = self.normalize(raw)
        except Exception as exc:
            logger.warning("Intent classification failed, using '%s': %s", UNCLEAR_INTENT, exc)
            return IntentResult.unclear()

        logger.debug("Classified intent=%s confidence=%.2f", result.intent, result.confidence)
        return result

    def normalize(self, raw: Any) -> IntentResult:
        """Coerce a raw model payload into the allowed vocabulary and ranges."""
        if not isinstance(raw, dict):
            return IntentResult.unclear()
        intent = raw.get("intent")
        if not isinstance(intent, str) or intent not in self.intents:
            return IntentResult.unclear()
        entities = raw.get("entities")
        if not isinstance(entities, dict):
            entities = {}
        return IntentResult(
            intent=intent,
            confidence=normalize_confidence(raw.get("confidence")),
            # unfilled slots come back as null
            entities={key: value for key, value in entities.items() if value is not None},
        )
