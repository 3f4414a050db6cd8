"""Google Container Registry webhook pipeline.

GCR publishes registry changes to the ``gcr`` Pub/Sub topic; a push
subscription delivers them to this service with a shared secret in the
``secret`` query parameter.

Secret check → parse (two layers) → structural validation → normalize →
dispatch.

Outcome mapping:
- non-POST                → 400
- secret mismatch         → 401
- malformed payload       → 500
- unsupported/invalid msg → 500
- dispatch failed         → 500
"""

import base64
import binascii
import hmac
import json
import logging
import time
from typing import Optional, Tuple

from pydantic import ValidationError

from src.relay.metrics import RelayMetrics, get_metrics
from src.relay.webhook.errors import (
    DispatchFailedError,
    MalformedPayloadError,
    UnauthorizedError,
    WebhookError,
)
from src.relay.webhook.models import (
    CanonicalTrigger,
    GcrAction,
    GcrRegistryEvent,
    Provider,
    PubSubEnvelope,
)
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


SECRET_PARAM = "secret"

# host, project and image
MIN_REPOSITORY_SEGMENTS = 3


def _load_json(data: bytes, layer: str):
    try:
        return json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedPayloadError(f"Invalid JSON in {layer}: {e}") from e


class GcrParser:
    """Decodes a Pub/Sub push envelope and the GCR message inside it."""

    def parse(self, body: bytes) -> Tuple[PubSubEnvelope, GcrRegistryEvent]:
        """Parse both encoding layers.

        Returns:
            The outer envelope and the decoded registry event.

        Raises:
            MalformedPayloadError: If either layer fails to decode, or the
                event lacks an action or an image reference.
        """
        payload = _load_json(body, "envelope")
        if not isinstance(payload, dict):
            raise MalformedPayloadError("Envelope is not a JSON object")

        try:
            envelope = PubSubEnvelope.model_validate(payload)
        except ValidationError as e:
            raise MalformedPayloadError(f"Invalid Pub/Sub envelope: {e}") from e

        context = {"message_id": envelope.message.message_id}

        try:
            data = base64.b64decode(envelope.message.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedPayloadError(
                "message.data is not valid base64", context=context
            ) from e

        message = _load_json(data, "message.data")
        if not isinstance(message, dict):
            raise MalformedPayloadError(
                "Registry event is not a JSON object", context=context
            )

        try:
            event = GcrRegistryEvent.model_validate(message)
        except ValidationError as e:
            raise MalformedPayloadError(
                f"Invalid registry event: {e}", context=context
            ) from e

        if not event.image_reference:
            raise MalformedPayloadError(
                "Registry event carries no image reference",
                context=dict(context, action=event.action),
            )

        return envelope, event


class SecretAuthenticator:
    """Compares the ``secret`` query parameter with the shared secret."""

    def __init__(self, secret: str):
        self._secret = secret

    def authenticate(self, request: InboundRequest) -> None:
        provided = request.query_params.get(SECRET_PARAM, "")
        # An empty configured secret never matches.
        if not self._secret or not hmac.compare_digest(
            provided.encode("utf-8"), self._secret.encode("utf-8")
        ):
            raise UnauthorizedError("Received request with invalid secret")


class GcrEventValidator:
    """Structural checks on a decoded registry event."""

    def validate(self, event: GcrRegistryEvent) -> None:
        """Raise MalformedPayloadError unless the event is a usable push."""
        context = {"action": event.action, "repository_path": event.repository_path}

        if event.action != GcrAction.INSERT.value:
            raise MalformedPayloadError(
                f"Unsupported action: {event.action}", context=context
            )

        segments = event.repository_path.split("/")
        if len(segments) < MIN_REPOSITORY_SEGMENTS or not all(segments):
            raise MalformedPayloadError(
                f"Invalid repository path: {event.repository_path!r}",
                context=context,
            )

        if not (event.image_tag or event.image_digest):
            raise MalformedPayloadError(
                "Registry event has neither tag nor digest", context=context
            )


class GcrNormalizer:
    """Splits the repository path into domain and name.

    ``gcr.io/my-project/my-image`` → scope ``gcr.io/my-project``,
    name ``my-image``. Nested paths keep everything after the project in
    the name: ``gcr.io/p/team/app`` → name ``team/app``.
    """

    def split_repository_path(self, repository_path: str) -> Tuple[str, str]:
        host, project, name = repository_path.split("/", 2)
        return f"{host}/{project}", name

    def normalize(self, event: GcrRegistryEvent, raw_payload: bytes) -> CanonicalTrigger:
        scope, name = self.split_repository_path(event.repository_path)
        return CanonicalTrigger(
            provider=Provider.GCR,
            repository_name=name,
            repository_scope=scope,
            tag_or_digest=event.image_tag or event.image_digest,
            raw_payload=raw_payload,
        )


class GcrPipeline:
    """Handles GCR Pub/Sub push webhooks end to end."""

    provider = Provider.GCR

    STATUS_BY_ERROR = {
        UnauthorizedError: (401, "Unauthorized"),
        MalformedPayloadError: (500, INTERNAL_ERROR_BODY),
        DispatchFailedError: (500, INTERNAL_ERROR_BODY),
    }

    def __init__(
        self,
        secret_auth: SecretAuthenticator,
        dispatcher: TriggerDispatcher,
        parser: Optional[GcrParser] = None,
        validator: Optional[GcrEventValidator] = None,
        normalizer: Optional[GcrNormalizer] = None,
        metrics: Optional[RelayMetrics] = None,
    ):
        self.secret_auth = secret_auth
        self.dispatcher = dispatcher
        self.parser = parser or GcrParser()
        self.validator = validator or GcrEventValidator()
        self.normalizer = normalizer or GcrNormalizer()
        self.metrics = metrics or get_metrics()

    async def handle(self, request: InboundRequest) -> WebhookOutcome:
        """Process one GCR webhook request."""
        if request.method.upper() != "POST":
            logger.warning(
                "Rejected %s request to gcr endpoint from: %s",
                request.method,
                request.remote_addr,
            )
            return WebhookOutcome(400, BAD_REQUEST_BODY)

        logger.info(
            "Received gcr request from: %s",
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
            "gcr push relayed: %s",
            canonical.image,
            extra={"provider": self.provider.value, "image": canonical.image},
        )
        return WebhookOutcome(200, OK_BODY)

    async def _process(self, request: InboundRequest) -> CanonicalTrigger:
        self.secret_auth.authenticate(request)
        _, event = self.parser.parse(request.body)
        self.validator.validate(event)
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
