"""Registry push webhook handling.

This package validates and normalizes push notifications from:
- DockerHub (namespace allow-list + callback acknowledgement)
- Google Container Registry via Pub/Sub push (shared secret query param)

and forwards a CanonicalTrigger to the build trigger collaborator.
"""

from .dockerhub import DockerHubPipeline
from .errors import (
    CallbackFailedError,
    DispatchFailedError,
    MalformedPayloadError,
    UnauthorizedError,
    WebhookError,
)
from .gcr import GcrPipeline
from .models import CanonicalTrigger, Provider
from .pipeline import InboundRequest, TriggerDispatcher, WebhookOutcome, WebhookPipeline

__all__ = [
    "CallbackFailedError",
    "CanonicalTrigger",
    "DispatchFailedError",
    "DockerHubPipeline",
    "GcrPipeline",
    "InboundRequest",
    "MalformedPayloadError",
    "Provider",
    "TriggerDispatcher",
    "UnauthorizedError",
    "WebhookError",
    "WebhookOutcome",
    "WebhookPipeline",
]
