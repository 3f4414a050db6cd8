"""DockerHub push webhook pipeline.

Parse → namespace check → callback acknowledgement → normalize → dispatch.

Outcome mapping:
- non-POST                → 400
- malformed payload       → 500
- namespace not allowed   → 401
- callback failed         → 401
- dispatch failed         → 500
"""

import json
import logging
import time
from typing import AbstractSet, Iterable, Optional

from pydantic import ValidationError

from src.relay.metrics import RelayMetrics, get_metrics
from src.relay.webhook.callback import CallbackClient
from src.relay.webhook.errors import (
    CallbackFailedError,
    DispatchFailedError,
    MalformedPayloadError,
    UnauthorizedError,
    WebhookError,
)
from src.relay.webhook.models import CanonicalTrigger, DockerHubPushEvent, Provider
from src.relay.webhook.pipeline import (
    BAD_REQUEST_BODY,
    INTERNAL_ERROR_BODY,
    OK_BODY,
    InboundRequest,
    TriggerDispatcher,
    WebhookOutcome,
    log_failure,
)

logger = logging.getLogger(__name__)


class DockerHubParser:
    """Decodes a DockerHub push webhook body."""

    def parse(self, body: bytes) -> DockerHubPushEvent:
        """Parse raw bytes into a DockerHubPushEvent.

        Raises:
            MalformedPayloadError: If the body is not a JSON object or a
                required field is missing or empty.
        """
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedPayloadError(f"Invalid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise MalformedPayloadError(
                f"Expected JSON object, got {type(payload).__name__}"
            )

        try:
            return DockerHubPushEvent.model_validate(payload)
        except ValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise MalformedPayloadError(
                f"Invalid push event fields: {', '.join(fields)}"
            ) from e


class NamespaceAuthenticator:
    """Checks the pushed repository's namespace against an allow-list.

    Matching is exact and case-sensitive.
    """

    def __init__(self, allowed_namespaces: Iterable[str]):
        self.allowed_namespaces: AbstractSet[str] = frozenset(allowed_namespaces)

    def is_allowed(self, namespace: str) -> bool:
        return namespace in self.allowed_namespaces

    def authenticate(self, event: DockerHubPushEvent) -> None:
        """Raise UnauthorizedError unless the namespace is allowed."""
        namespace = event.repository.namespace
        if not self.is_allowed(namespace):
            raise UnauthorizedError(
                f"Invalid Namespace: {namespace}",
                context={"namespace": namespace},
            )


class CallbackAuthenticator:
    """Validates a push by calling the provider back."""

    def __init__(self, callback_client: CallbackClient):
        self.callback_client = callback_client

    async def authenticate(self, event: DockerHubPushEvent) -> None:
        try:
            await self.callback_client.acknowledge(event.callback_url)
        except CallbackFailedError as e:
            e.context.setdefault("namespace", event.repository.namespace)
            e.context.setdefault("repository", event.repository.name)
            raise


class DockerHubNormalizer:
    def normalize(self, event: DockerHubPushEvent, raw_payload: bytes) -> CanonicalTrigger:
        return CanonicalTrigger(
            provider=Provider.DOCKERHUB,
            repository_name=event.repository.name,
            repository_scope=event.repository.namespace,
            tag_or_digest=event.push_data.tag,
            raw_payload=raw_payload,
        )


class DockerHubPipeline:
    """Handles DockerHub push webhooks end to end.

    Attributes:
        parser: Decodes the request body.
        namespace_auth: Allow-list check.
        callback_auth: Callback acknowledgement round-trip.
        normalizer: Builds the canonical trigger.
        dispatcher: Hands the trigger to the build system.
    """

    provider = Provider.DOCKERHUB

    STATUS_BY_ERROR = {
        MalformedPayloadError: (500, INTERNAL_ERROR_BODY),
        UnauthorizedError: (401, "Invalid Namespace"),
        CallbackFailedError: (401, "Request could not be validated"),
        DispatchFailedError: (500, INTERNAL_ERROR_BODY),
    }

    def __init__(
        self,
        namespace_auth: NamespaceAuthenticator,
        callback_auth: CallbackAuthenticator,
        dispatcher: TriggerDispatcher,
        parser: Optional[DockerHubParser] = None,
        normalizer: Optional[DockerHubNormalizer] = None,
        metrics: Optional[RelayMetrics] = None,
    ):
        self.namespace_auth = namespace_auth
        self.callback_auth = callback_auth
        self.dispatcher = dispatcher
        self.parser = parser or DockerHubParser()
        self.normalizer = normalizer or DockerHubNormalizer()
        self.metrics = metrics or get_metrics()

    async def handle(self, request: InboundRequest) -> WebhookOutcome:
        """Process one DockerHub webhook request."""
        if request.method.upper() != "POST":
            logger.warning(
                "Rejected %s request to dockerhub endpoint from: %s",
                request.method,
                request.remote_addr,
            )
            return WebhookOutcome(400, BAD_REQUEST_BODY)

        logger.info(
            "Received dockerhub request from: %s",
            request.remote_addr,
            extra={"provider": self.provider.value, "remote_addr": request.remote_addr},
        )
        self.metrics.record_received(self.provider.value)
        start_time = time.monotonic()

        try:
            canonical = await self._process(request)
        except WebhookError as e:
            return self._failure(request, e)
        finally:
            self.metrics.record_duration(
                self.provider.value, time.monotonic() - start_time
            )

        self.metrics.record_triggered(self.provider.value)
        logger.info(
            "dockerhub push relayed: %s",
            canonical.image,
            extra={"provider": self.provider.value, "image": canonical.image},
        )
        return WebhookOutcome(200, OK_BODY)

    async def _process(self, request: InboundRequest) -> CanonicalTrigger:
        event = self.parser.parse(request.body)
        self.namespace_auth.authenticate(event)
        await self.callback_auth.authenticate(event)
        canonical = self.normalizer.normalize(event, request.body)
        await self.dispatcher.dispatch(canonical)
        return canonical

    def _failure(self, request: InboundRequest, error: WebhookError) -> WebhookOutcome:
        status_code, body = self.STATUS_BY_ERROR.get(
            type(error), (500, INTERNAL_ERROR_BODY)
        )
        log_failure(self.provider.value, request, error)
        self.metrics.record_failed(self.provider.value, error.kind)
        return WebhookOutcome(status_code, body)
