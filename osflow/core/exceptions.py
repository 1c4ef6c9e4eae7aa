"""
Platform-wide exception hierarchy.

Services raise these; blueprints map them to ``api_error`` responses in one
place so every endpoint reports the same HTTP status for the same failure.

Usage:
    from osflow.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ServiceOrder", resource_id=order_id)
    raise ValidationError("Cannot reject from the first stage")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-organization access.
    A 404 does not confirm the resource exists.

    Args:
        resource: Human-readable entity name (e.g. "ServiceOrder", "User").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        org_id: Optional scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        org_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.org_id = org_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if org_id is not None:
            msg += f" (org={org_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class TransitionValidationError(ValidationError):
    """A stage validator rejected an advance.

    The message is the validator's failure message, unchanged.
    """

    def __init__(self, message: str, source=None, destination=None) -> None:
        self.source = source
        self.destination = destination
        details = {}
        if source is not None:
            details["from"] = getattr(source, "value", source)
        if destination is not None:
            details["to"] = getattr(destination, "value", destination)
        super().__init__(message, details=details)


class NoTransitionError(Exception):
    """No outgoing rule exists for the order's current stage (POSTADO)."""

    def __init__(self, message: str, stage=None) -> None:
        self.message = message
        self.stage = stage
        super().__init__(message)


class StageConflictError(NoTransitionError):
    """The order left the expected stage between read and write.

    Raised by the compare-on-stage update when a concurrent transition won.
    """

    def __init__(self, order_id: str, expected_stage) -> None:
        self.order_id = order_id
        self.expected_stage = expected_stage
        stage_name = getattr(expected_stage, "value", expected_stage)
        super().__init__(
            f"Order {order_id} is no longer in {stage_name}; it was changed concurrently",
            stage=expected_stage,
        )


class PersistenceError(Exception):
    """The order store failed to read or write. Maps to HTTP 503."""

    def __init__(self, message: str, operation: str | None = None) -> None:
        self.message = message
        self.operation = operation
        super().__init__(message)


class NotificationError(Exception):
    """A notification channel failed to deliver.

    Caught inside the SLA monitor; never reaches transition callers.
    """

    def __init__(self, channel: str, recipient: str | None, reason: str) -> None:
        self.channel = channel
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"{channel} delivery to {recipient or 'channel'} failed: {reason}")
