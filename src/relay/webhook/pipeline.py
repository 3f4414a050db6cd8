"""Shared pipeline building blocks.

Both provider pipelines receive a transport-neutral InboundRequest and
return a WebhookOutcome, so they can be driven by the HTTP layer in
main.py or directly from tests. The TriggerDispatcher is the one step
both pipelines share: it hands a CanonicalTrigger to the build trigger
collaborator under a timeout.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol

from src.relay.webhook.errors import DispatchFailedError
from src.relay.webhook.models import CanonicalTrigger

logger = logging.getLogger(__name__)


OK_BODY = "OK"
BAD_REQUEST_BODY = "Bad Request"
INTERNAL_ERROR_BODY = "Internal Service Error"


@dataclass(frozen=True)
class InboundRequest:
    """Inbound webhook request, independent of the HTTP framework.

    Attributes:
        method: HTTP method, upper case.
        body: Raw request body.
        query_params: Decoded query string parameters.
        remote_addr: Address of the caller, for logging only.
    """

    method: str
    body: bytes = b""
    query_params: Mapping[str, str] = field(default_factory=dict)
    remote_addr: str = "unknown"


@dataclass(frozen=True)
class WebhookOutcome:
    """HTTP-style result of handling a webhook."""

    status_code: int
    body: str


class WebhookPipeline(Protocol):
    """Capability shared by the provider pipelines."""

    async def handle(self, request: InboundRequest) -> WebhookOutcome:
        ...


class TriggerJob(Protocol):
    """Build trigger collaborator contract.

    Implementations raise on failure; the return value is ignored.
    """

    async def trigger_job(
        self,
        provider: str,
        repository_name: str,
        repository_scope: str,
        tag_or_digest: str,
        raw_payload: bytes,
    ) -> None:
        ...


class TriggerDispatcher:
    """Invokes the build trigger collaborator for a canonical trigger.

    Any exception from the collaborator, including exceeding the timeout,
    becomes a DispatchFailedError. Cancellation of the inbound request is
    propagated unchanged.

    Attributes:
        trigger: The build trigger collaborator.
        timeout_seconds: Upper bound on a single dispatch call.
    """

    def __init__(self, trigger: TriggerJob, timeout_seconds: Optional[float] = 30.0):
        self.trigger = trigger
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, canonical: CanonicalTrigger) -> None:
        """Hand the trigger to the collaborator.

        Args:
            canonical: The normalized trigger.

        Raises:
            DispatchFailedError: If the collaborator fails or times out.
        """
        context = {
            "provider": canonical.provider.value,
            "image": canonical.image,
        }
        call = self.trigger.trigger_job(
            canonical.provider.value,
            canonical.repository_name,
            canonical.repository_scope,
            canonical.tag_or_digest,
            canonical.raw_payload,
        )
        try:
            await asyncio.wait_for(call, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise DispatchFailedError(
                f"Build trigger timed out after {self.timeout_seconds}s",
                context=context,
            ) from e
        except Exception as e:
            raise DispatchFailedError(
                f"Build trigger failed: {e}",
                context=context,
            ) from e

        logger.info("Triggered build job", extra=context)


# Failures caused by a remote system rather than by the caller's input
ERROR_LEVEL_KINDS = {"callback_failed", "dispatch_failed"}


def log_failure(provider: str, request: InboundRequest, error: Exception) -> None:
    """Log a pipeline failure with the context needed to diagnose it."""
    context = dict(getattr(error, "context", {}) or {})
    context.update(
        {
            "provider": provider,
            "remote_addr": request.remote_addr,
            "kind": getattr(error, "kind", type(error).__name__),
        }
    )
    level = logging.ERROR if context["kind"] in ERROR_LEVEL_KINDS else logging.WARNING
    logger.log(
        level,
        "%s webhook rejected (%s): %s",
        provider,
        context["kind"],
        error,
        extra=context,
    )
