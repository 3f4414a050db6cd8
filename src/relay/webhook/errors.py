"""Failure taxonomy for webhook processing.

Every failure raised inside a pipeline is a WebhookError. Each pipeline
maps the concrete subclass to an HTTP status at its handle() boundary.
None of these are retried.
"""

from typing import Any, Dict, Optional


class WebhookError(Exception):
    """Base class for webhook pipeline failures.

    Attributes:
        message: Human-readable description, logged but never returned
            to the caller.
        context: Identifying fields available when the failure occurred.
    """

    kind = "webhook_error"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class MalformedPayloadError(WebhookError):
    """Payload could not be decoded or is structurally invalid."""

    kind = "malformed_payload"


class UnauthorizedError(WebhookError):
    """Namespace or shared secret check failed."""

    kind = "unauthorized"


class CallbackFailedError(WebhookError):
    """Provider callback acknowledgement did not succeed."""

    kind = "callback_failed"


class DispatchFailedError(WebhookError):
    """The build trigger collaborator reported an error."""

    kind = "dispatch_failed"
