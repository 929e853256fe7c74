"""
Payment receipt verification: vision analysis plus a thresholded decision.

Two independent pieces:
1. ReceiptAnalyzer        : asks a vision-capable model how likely an image is
                             valid proof of payment; never raises
2. ReceiptDecisionPolicy  : turns that confidence into approved / rejected /
                             pending using the auto-approve and auto-reject
                             thresholds

Usage:
    policy = ReceiptDecisionPolicy(auto_approve=0.85, auto_reject=0.35)
    assert policy.decide(0.9) == ReceiptDecision.APPROVED
"""

import logging
from typing import Any, Optional

from sales_agent.config import AppConfig, settings
from sales_agent.llm.base import supports_vision
from sales_agent.prompts.prompt_templates import build_receipt_prompt
from sales_agent.schemas.conversation_schema import (
    ReceiptAnalysis,
    ReceiptDecision,
    ReceiptValidity,
)
from sales_agent.utils import clamp01, extract_json_block, find_confidence_token

logger = logging.getLogger(__name__)

DEFAULT_AUTO_APPROVE = 0.85
DEFAULT_AUTO_REJECT = 0.35
NEUTRAL_CONFIDENCE = 0.5
THRESHOLD_GAP = 0.05
MAX_REASON_LENGTH = 300

DECISION_STATUS: dict[ReceiptDecision, str] = {
    ReceiptDecision.APPROVED: "paid",
    ReceiptDecision.REJECTED: "verification_rejected",
    ReceiptDecision.PENDING: "pending_verification",
}


def status_for_decision(decision: ReceiptDecision) -> str:
    """Payment status recorded for a receipt decision."""
    return DECISION_STATUS[ReceiptDecision(decision)]


def _coerce_validity(value: Any) -> ReceiptValidity:
    try:
        return ReceiptValidity(str(value or "").strip().lower())
    except ValueError:
        return ReceiptValidity.UNCLEAR


class ReceiptDecisionPolicy:
    """Approve / reject / pending thresholds for receipt confidence."""

    def __init__(
        self,
        auto_approve: Any = DEFAULT_AUTO_APPROVE,
        auto_reject: Any = DEFAULT_AUTO_REJECT,
    ) -> None:
        self.auto_approve = clamp01(auto_approve, DEFAULT_AUTO_APPROVE)
        self.auto_reject = clamp01(auto_reject, DEFAULT_AUTO_REJECT)

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None) -> "ReceiptDecisionPolicy":
        config = config or settings
        return cls(
            auto_approve=config.payments.auto_approve_threshold,
            auto_reject=config.payments.auto_reject_threshold,
        )

    def effective_thresholds(self) -> tuple[float, float]:
        """Return ``(approve, reject)`` with the reject threshold kept below approve."""
        approve = self.auto_approve
        reject = self.auto_reject
        if reject > approve:
            reject = max(0.0, round(approve - THRESHOLD_GAP, 10))
            logger.debug(
                "Auto-reject threshold %.2f above auto-approve %.2f, using %.2f",
                self.auto_reject, approve, reject,
            )
        return approve, reject

    def decide(self, confidence: Any) -> ReceiptDecision:
        approve, reject = self.effective_thresholds()
        score = clamp01(confidence, NEUTRAL_CONFIDENCE)
        if score >= approve:
            return ReceiptDecision.APPROVED
        if score <= reject:
            return ReceiptDecision.REJECTED
        return ReceiptDecision.PENDING


class ReceiptAnalyzer:
    """Scores a receipt image against the order it claims to pay for."""

    def __init__(self, llm: Any, config: Optional[AppConfig] = None) -> None:
        self._llm = llm
        self._config = config or settings

    async def analyze(
        self,
        order_id: Any,
        receipt_ref: str,
        order: Optional[dict[str, Any]] = None,
        payment_id: Optional[str] = None,
    ) -> ReceiptAnalysis:
        if not supports_vision(self._llm):
            return ReceiptAnalysis(
                confidence=NEUTRAL_CONFIDENCE,
                validity=ReceiptValidity.UNCLEAR,
                reason="Vision model is unavailable, pending manual verification.",
            )

        prompt = build_receipt_prompt(
            instructions=self._config.payments.vision_prompt,
            order_id=order_id,
            order=order,
            payment_id=payment_id,
            currency=self._config.business.currency,
        )

        try:
            raw = await self._llm.analyze_image(
                receipt_ref, prompt, {"temperature": self._config.llm.vision_temperature}
            )
        except Exception as exc:
            logger.warning("Receipt analysis failed for order %s: %s", order_id, exc)
            return ReceiptAnalysis(
                confidence=NEUTRAL_CONFIDENCE,
                validity=ReceiptValidity.UNCLEAR,
                reason=f"Vision analysis failed: {exc}",
            )
        return self.parse(raw)

    @staticmethod
    def parse(raw: Any) -> ReceiptAnalysis:
        """Interpret a vision response, JSON first, then a bare score in the text."""
        text = "" if raw is None else str(raw)
        parsed = extract_json_block(text)
        if parsed is not None:
            score = next(
                (parsed[key] for key in ("validity_score", "confidence", "score")
                 if parsed.get(key) is not None),
                None,
            )
            return ReceiptAnalysis(
                confidence=clamp01(score, NEUTRAL_CONFIDENCE),
                validity=_coerce_validity(parsed.get("validity") or parsed.get("classification")),
                reason=str(parsed.get("reason") or parsed.get("summary")
                           or "Receipt analysis completed."),
                raw=text,
            )

        return ReceiptAnalysis(
            confidence=find_confidence_token(text, NEUTRAL_CONFIDENCE),
            validity=ReceiptValidity.UNCLEAR,
            reason=(text.strip() or "Receipt analysis completed.")[:MAX_REASON_LENGTH],
            raw=text,
        )
