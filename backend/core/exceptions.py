"""Custom exceptions for the commerce automation engine."""

from typing import Optional


class AutomationError(Exception):
    """Base exception for the automation engine."""

    retryable: bool = False

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(AutomationError):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class StoreNotFoundError(NotFoundError):
    """No store owns the domain an event was routed to.

    Terminal: signals misrouted input, never retried.
    """

    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f"No store registered for domain '{domain}'")


class WorkflowNotFoundError(NotFoundError):
    """Workflow definition does not exist."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' not found")


class ExecutionNotFoundError(NotFoundError):
    """Workflow execution does not exist."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution '{execution_id}' not found")


class CampaignNotFoundError(NotFoundError):
    """Campaign does not exist."""

    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign '{campaign_id}' not found")


class ValidationError(AutomationError):
    """Validation error exception."""

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)


class ConsentRevokedError(AutomationError):
    """Contact has no marketing consent for the channel.

    An expected skip rather than an alert condition.
    """

    def __init__(self, channel: str, contact_id: Optional[str] = None):
        self.channel = channel
        self.contact_id = contact_id
        super().__init__(
            f"Contact {contact_id or '<unknown>'} has not consented to {channel}",
            409,
        )


class ExternalChannelError(AutomationError):
    """A delivery provider rejected or failed a request.

    Retryable for 5xx, 429 and status-less failures. Any other 4xx is a
    permanent rejection such as an invalid recipient.
    """

    def __init__(
        self,
        message: str,
        channel: str = "",
        provider_status: Optional[int] = None,
    ):
        self.channel = channel
        self.provider_status = provider_status
        super().__init__(message, 502)

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        if self.provider_status is None:
            return True
        return self.provider_status >= 500 or self.provider_status == 429


class ChannelConnectionError(ExternalChannelError, ConnectionError):
    """Network failure talking to a provider. Always retryable."""

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return True


class ChannelTimeoutError(ChannelConnectionError):
    """Provider call exceeded its bounded timeout."""


class CircuitOpenError(AutomationError):
    """Call rejected because the channel's circuit breaker is open."""

    def __init__(self, channel: str, retry_after: float = 0.0):
        self.channel = channel
        self.retry_after = retry_after
        super().__init__(
            f"Circuit for '{channel}' is open, retry in {retry_after:.0f}s", 503
        )


def is_retryable(error: BaseException) -> bool:
    """Default retry condition: only errors explicitly marked retryable."""
    return bool(getattr(error, "retryable", False))
