"""
Centralized configuration with environment variable overrides.

Business identity, conversation limits, model settings, order pricing rules
and receipt verification thresholds are all configurable here. Components
receive an ``AppConfig`` explicitly and default to the ``settings`` singleton.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_INTENTS: tuple[str, ...] = (
    "greeting",
    "browse_products",
    "product_inquiry",
    "add_to_cart",
    "view_cart",
    "remove_from_cart",
    "checkout",
    "submit_payment_receipt",
    "track_order",
    "complaint",
    "unclear",
)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _csv(env_var: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(env_var)
    if not raw:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class BusinessConfig:
    """Business identity used in prompts and reply templates."""

    name: str = os.getenv("BUSINESS_NAME", "Store")
    description: str = os.getenv("BUSINESS_DESCRIPTION", "Online store")
    currency: str = os.getenv("BUSINESS_CURRENCY", "USD")
    supported_languages: tuple[str, ...] = _csv("BUSINESS_LANGUAGES", ("en",))
    timezone: str = os.getenv("BUSINESS_TIMEZONE", "UTC")


@dataclass(frozen=True)
class ConversationConfig:
    """Session bounds and the intent vocabulary."""

    max_history_length: int = _safe_int("MAX_HISTORY_LENGTH", "20")
    session_ttl_seconds: int = _safe_int("SESSION_TTL", "3600")
    history_window: int = _safe_int("INTENT_HISTORY_WINDOW", "6")
    greeting_message: str = os.getenv("GREETING_MESSAGE", "Welcome!")
    intents: tuple[str, ...] = _csv("ALLOWED_INTENTS", DEFAULT_INTENTS)


@dataclass(frozen=True)
class LLMConfig:
    """Language model backend settings."""

    provider: str = os.getenv("LLM_PROVIDER", "openai")
    model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    vision_model: str = os.getenv("LLM_VISION_MODEL", "gpt-4o-mini")
    base_url: str = os.getenv("LLM_BASE_URL", "")
    api_key: str = os.getenv("LLM_API_KEY", "")
    temperature: float = _safe_float("LLM_TEMPERATURE", "0.7")
    max_tokens: int = _safe_int("LLM_MAX_TOKENS", "500")
    classification_temperature: float = _safe_float("LLM_CLASSIFICATION_TEMPERATURE", "0.2")
    vision_temperature: float = _safe_float("LLM_VISION_TEMPERATURE", "0.1")
    timeout_seconds: float = _safe_float("LLM_TIMEOUT", "60")
    system_prompt: str = os.getenv("LLM_SYSTEM_PROMPT", "You are a helpful sales assistant.")


@dataclass(frozen=True)
class OrderConfig:
    """Pricing rules applied by the bundled order adapters."""

    tax_rate: float = _safe_float("ORDER_TAX_RATE", "0.08")
    free_shipping_threshold: float = _safe_float("FREE_SHIPPING_THRESHOLD", "50")
    default_shipping_cost: float = _safe_float("DEFAULT_SHIPPING_COST", "5")


@dataclass(frozen=True)
class PaymentConfig:
    """Receipt verification thresholds and payment link settings."""

    auto_approve_threshold: float = _safe_float("RECEIPT_AUTO_APPROVE", "0.85")
    auto_reject_threshold: float = _safe_float("RECEIPT_AUTO_REJECT", "0.35")
    vision_prompt: str = os.getenv(
        "RECEIPT_VISION_PROMPT",
        "Assess whether this image is a valid payment receipt for the provided "
        "order details. Return JSON only.",
    )
    checkout_base_url: str = os.getenv(
        "CHECKOUT_BASE_URL", "https://payments.example.com/checkout"
    )


@dataclass(frozen=True)
class SessionStoreConfig:
    """Where sessions live between turns."""

    backend: str = os.getenv("SESSION_BACKEND", "memory")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    key_prefix: str = os.getenv("SESSION_KEY_PREFIX", "sales-agent:session:")


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-session request limits for the rate limiting hook."""

    max_requests: int = _safe_int("RATE_LIMIT_MAX_REQUESTS", "30")
    window_seconds: float = _safe_float("RATE_LIMIT_WINDOW", "60")
    max_tracked_sessions: int = _safe_int("RATE_LIMIT_MAX_SESSIONS", "10000")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    orders: OrderConfig = field(default_factory=OrderConfig)
    payments: PaymentConfig = field(default_factory=PaymentConfig)
    session_store: SessionStoreConfig = field(default_factory=SessionStoreConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    agent_name: str = os.getenv("AGENT_NAME", "sales-agent")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    for name, value in [
        ("LLM_TEMPERATURE", config.llm.temperature),
        ("LLM_CLASSIFICATION_TEMPERATURE", config.llm.classification_temperature),
        ("LLM_VISION_TEMPERATURE", config.llm.vision_temperature),
    ]:
        if not 0.0 <= value <= 2.0:
            raise ValueError(f"{name} must be between 0.0 and 2.0, got {value}")
    if config.llm.max_tokens < 1:
        raise ValueError(f"LLM_MAX_TOKENS must be >= 1, got {config.llm.max_tokens}")
    if config.llm.provider not in ("openai", "ollama"):
        raise ValueError(
            f"LLM_PROVIDER must be 'openai' or 'ollama', got {config.llm.provider!r}"
        )
    if config.conversation.max_history_length < 1:
        raise ValueError(
            "MAX_HISTORY_LENGTH must be >= 1, "
            f"got {config.conversation.max_history_length}"
        )
    if config.conversation.session_ttl_seconds < 1:
        raise ValueError(
            f"SESSION_TTL must be >= 1, got {config.conversation.session_ttl_seconds}"
        )
    if config.conversation.history_window < 0:
        raise ValueError(
            f"INTENT_HISTORY_WINDOW must be >= 0, got {config.conversation.history_window}"
        )
    if "unclear" not in config.conversation.intents:
        raise ValueError("ALLOWED_INTENTS must include 'unclear'")
    if config.orders.tax_rate < 0:
        raise ValueError(f"ORDER_TAX_RATE must be >= 0, got {config.orders.tax_rate}")
    if config.orders.default_shipping_cost < 0:
        raise ValueError(
            f"DEFAULT_SHIPPING_COST must be >= 0, got {config.orders.default_shipping_cost}"
        )
    if config.session_store.backend not in ("memory", "redis"):
        raise ValueError(
            "SESSION_BACKEND must be 'memory' or 'redis', "
            f"got {config.session_store.backend!r}"
        )
    if config.rate_limit.max_requests < 1:
        raise ValueError(
            f"RATE_LIMIT_MAX_REQUESTS must be >= 1, got {config.rate_limit.max_requests}"
        )
    if config.rate_limit.window_seconds <= 0:
        raise ValueError(
            f"RATE_LIMIT_WINDOW must be > 0, got {config.rate_limit.window_seconds}"
        )
    if config.rate_limit.max_tracked_sessions < 1:
        raise ValueError(
            "RATE_LIMIT_MAX_SESSIONS must be >= 1, "
            f"got {config.rate_limit.max_tracked_sessions}"
        )

    # Inverted thresholds are corrected at decision time, not rejected here.
    for name, value in [
        ("RECEIPT_AUTO_APPROVE", config.payments.auto_approve_threshold),
        ("RECEIPT_AUTO_REJECT", config.payments.auto_reject_threshold),
    ]:
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"{name} must be between 0.0 and 1.0, got {value}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config


# Singleton instance
settings = load_config()
