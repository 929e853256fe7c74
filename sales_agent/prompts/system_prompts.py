"""
Static prompt fragments shared by the classifier, composer and receipt analyzer.

Business-specific values are injected at build time from configuration
(see ``prompt_templates``), not baked in here.
"""

ENTITY_SLOTS: tuple[str, ...] = (
    "product_type",
    "product_id",
    "category",
    "color",
    "size",
    "quantity",
    "price_range",
    "order_id",
)

INTENT_JSON_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "intent": {"type": "string"},
        "confidence": {"type": "number"},
        "entities": {"type": "object"},
    },
    "required": ["intent", "confidence", "entities"],
}

CLASSIFIER_ROLE = "You are classifying customer intent for an e-commerce sales chat."

REPLY_RULES = """Instructions:
- Reply naturally and clearly.
- Keep the response concise (2-5 sentences).
- If products are returned, suggest one strong next step.
- If checkout data is returned, include order summary and payment instructions when available."""

RECEIPT_RESPONSE_RULES = """Return JSON only in this schema:
{
  "validity_score": 0.0,
  "validity": "valid|invalid|unclear",
  "reason": "short explanation"
}

Rules:
- validity_score is probability that this image is acceptable proof of payment for this order.
- Use 0 when clearly invalid and 1 when clearly valid.
- If unsure, set validity to "unclear" and score between 0.4 and 0.6."""
