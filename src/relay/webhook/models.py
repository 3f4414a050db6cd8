"""Webhook payload models for the registry relay.

This module defines the data models for the two supported registry push
notifications and the canonical trigger both are normalized into:

- DockerHubPushEvent: DockerHub repository push webhook
- PubSubEnvelope / GcrRegistryEvent: Google Container Registry notification
  delivered through a Cloud Pub/Sub push subscription
- CanonicalTrigger: provider-agnostic build trigger

All envelopes are frozen once parsed. The models use Pydantic for
validation, consistent with the configuration approach in config.py.

DockerHub Webhook Payload Structure:
{
  "callback_url": "https://registry.hub.docker.com/u/acme/myapp/hook/...",
  "push_data": {"tag": "v1.2.3", "pusher": "dev1", "pushed_at": 1417566161},
  "repository": {"name": "myapp", "namespace": "acme", "repo_name": "acme/myapp"}
}

GCR Pub/Sub Payload Structure (``message.data`` is base64 encoded JSON):
{
  "message": {
    "data": "eyJhY3Rpb24iOiAiSU5TRVJUIiwgLi4ufQ==",
    "messageId": "136969346945",
    "attributes": {}
  },
  "subscription": "projects/my-project/subscriptions/gcr-relay"
}

Decoded registry event:
{
  "action": "INSERT",
  "digest": "gcr.io/my-project/my-image@sha256:6ec128e26cd5...",
  "tag": "gcr.io/my-project/my-image:latest"
}
"""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Provider(str, Enum):
    """Registry providers the relay accepts webhooks from."""

    DOCKERHUB = "dockerhub"
    GCR = "gcr"


class GcrAction(str, Enum):
    """Actions carried by GCR registry notifications.

    Only INSERT (an image push or a new tag) triggers a build.
    """

    INSERT = "INSERT"
    DELETE = "DELETE"


# -----------------------------------------------------------------------------
# DockerHub
# -----------------------------------------------------------------------------


class DockerHubRepository(BaseModel):
    """Repository block of a DockerHub push webhook."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    namespace: str = Field(..., min_length=1)
    repo_name: Optional[str] = None


class DockerHubPushData(BaseModel):
    """push_data block of a DockerHub push webhook."""

    model_config = ConfigDict(frozen=True)

    tag: str = Field(..., min_length=1)
    pusher: Optional[str] = None
    pushed_at: Optional[float] = None


class DockerHubPushEvent(BaseModel):
    """Parsed DockerHub push webhook.

    Attributes:
        repository: Repository that received the push.
        push_data: Details of the push (tag, pusher).
        callback_url: URL the receiver must call back to validate the
            webhook.
    """

    model_config = ConfigDict(frozen=True)

    repository: DockerHubRepository
    push_data: DockerHubPushData
    callback_url: str = Field(..., min_length=1)


# -----------------------------------------------------------------------------
# GCR via Pub/Sub
# -----------------------------------------------------------------------------


class PubSubMessage(BaseModel):
    """The message block of a Pub/Sub push delivery."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    data: str = Field(..., min_length=1)
    message_id: Optional[str] = Field(default=None, alias="messageId")
    publish_time: Optional[str] = Field(default=None, alias="publishTime")
    attributes: Dict[str, str] = Field(default_factory=dict)


class PubSubEnvelope(BaseModel):
    """Outer Pub/Sub push envelope."""

    model_config = ConfigDict(frozen=True)

    message: PubSubMessage
    subscription: Optional[str] = None


class GcrRegistryEvent(BaseModel):
    """Decoded GCR registry notification.

    GCR publishes fully qualified image references rather than separate
    repository fields, so the registry domain and repository path are
    derived from whichever reference is present, preferring the tag.

    Attributes:
        action: Registry action (INSERT or DELETE).
        digest: Image reference by digest, ``host/path@sha256:...``.
        tag: Image reference by tag, ``host/path:tag``.
    """

    model_config = ConfigDict(frozen=True)

    action: str = Field(..., min_length=1)
    digest: Optional[str] = None
    tag: Optional[str] = None

    @property
    def image_reference(self) -> str:
        """The qualified reference repository fields are derived from.

        Some publishers send a bare tag next to a qualified digest, so
        only references carrying a path are considered.
        """
        for reference in (self.tag, self.digest):
            if reference and "/" in reference:
                return reference.strip()
        return ""

    @property
    def repository_path(self) -> str:
        """Repository path without tag or digest, e.g. ``gcr.io/proj/img``."""
        return split_image_reference(self.image_reference)[0]

    @property
    def image_tag(self) -> Optional[str]:
        """Bare tag of the tag reference, if any."""
        if not self.tag or not self.tag.strip():
            return None
        if "/" not in self.tag:
            return self.tag.strip()
        return split_image_reference(self.tag)[1]

    @property
    def image_digest(self) -> Optional[str]:
        """Bare content digest (``sha256:...``) of the digest reference."""
        if not self.digest or not self.digest.strip():
            return None
        return split_image_reference(self.digest)[2] or self.digest.strip()


def split_image_reference(reference: str) -> tuple:
    """Split an image reference into (path, tag, digest).

    Handles ``host/path:tag``, ``host/path@sha256:...`` and bare values.
    A colon only separates a tag when it follows the last slash, so
    registry ports (``localhost:5000/img``) survive.

    Examples:
        >>> split_image_reference("gcr.io/p/img:v1")
        ('gcr.io/p/img', 'v1', None)
        >>> split_image_reference("gcr.io/p/img@sha256:abc")
        ('gcr.io/p/img', None, 'sha256:abc')
        >>> split_image_reference("sha256:abc")
        ('', None, 'sha256:abc')
    """
    reference = reference.strip()
    if reference.startswith("sha256:"):
        return "", None, reference

    digest = None
    if "@" in reference:
        reference, digest = reference.split("@", 1)

    tag = None
    last_slash = reference.rfind("/")
    last_colon = reference.rfind(":")
    if last_colon > last_slash:
        reference, tag = reference[:last_colon], reference[last_colon + 1:]

    return reference, tag or None, digest or None


# -----------------------------------------------------------------------------
# Canonical trigger
# -----------------------------------------------------------------------------


class CanonicalTrigger(BaseModel):
    """Provider-agnostic build trigger handed to the dispatcher.

    Attributes:
        provider: Registry the push came from.
        repository_name: Image repository name.
        repository_scope: Namespace (DockerHub) or registry domain (GCR).
        tag_or_digest: Tag when present, otherwise the content digest.
        raw_payload: Original request body, forwarded for audit.
    """

    model_config = ConfigDict(frozen=True)

    provider: Provider
    repository_name: str = Field(..., min_length=1)
    repository_scope: str = Field(..., min_length=1)
    tag_or_digest: str = Field(..., min_length=1)
    raw_payload: bytes

    @property
    def image(self) -> str:
        """Human readable image identifier for logs."""
        return f"{self.repository_scope}/{self.repository_name}:{self.tag_or_digest}"
