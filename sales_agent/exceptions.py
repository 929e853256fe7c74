"""Exception hierarchy for the sales agent.

Business errors are raised by adapters and dispatch logic and are caught
inside the action dispatcher, where they become ``ActionResult.error``.
Everything else that escapes a turn is handled at the orchestrator boundary.
"""


class SalesAgentError(Exception):
    """Base class for all sales agent errors."""


class BusinessError(SalesAgentError):
    """A failed business action that should be reported to the customer."""


class AdapterMissingError(BusinessError):
    """The action needs a collaborator that was not configured."""


class NotFoundError(BusinessError):
    """A referenced product, order or customer does not exist."""


class InsufficientStockError(BusinessError):
    """Requested quantity exceeds available stock."""


class EmptyCartError(BusinessError):
    """Checkout or order creation attempted with no cart lines."""


class MissingFieldError(BusinessError):
    """A required turn field (order id, receipt reference, identity) is absent."""


class RateLimitExceededError(SalesAgentError):
    """Too many turns for one session inside the rate limiting window."""


class LLMProviderError(SalesAgentError):
    """The language model backend returned an error or unusable response."""
