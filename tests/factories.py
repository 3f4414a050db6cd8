"""Payload factories for registry webhook tests."""

import base64
import json
from typing import Any, Dict, Optional


def dockerhub_payload(
    name: str = "myapp",
    namespace: str = "acme",
    tag: str = "v1.2.3",
    callback_url: str = "https://registry.hub.docker.com/u/acme/myapp/hook/abc123/",
) -> Dict[str, Any]:
    """Build a DockerHub push webhook payload."""
    return {
        "callback_url": callback_url,
        "push_data": {
            "images": [],
            "pushed_at": 1417566161,
            "pusher": "dev1",
            "tag": tag,
        },
        "repository": {
            "name": name,
            "namespace": namespace,
            "repo_name": f"{namespace}/{name}",
            "status": "Active",
        },
    }


def dockerhub_body(**kwargs: Any) -> bytes:
    return json.dumps(dockerhub_payload(**kwargs)).encode("utf-8")


DIGEST = "sha256:6ec128e26cd5b3b7b3b0c0bd3bb1b4c3f7c02cfa1b2c1e1c7bd8d2e9c1f1a2b3"


def gcr_message(
    action: str = "INSERT",
    repository_path: str = "gcr.io/my-project/my-image",
    tag: Optional[str] = "latest",
    digest: Optional[str] = DIGEST,
) -> Dict[str, Any]:
    """Build a decoded GCR registry event with fully qualified references."""
    message: Dict[str, Any] = {"action": action}
    if digest is not None:
        message["digest"] = f"{repository_path}@{digest}"
    if tag is not None:
        message["tag"] = f"{repository_path}:{tag}"
    return message


def pubsub_body(message: Any, message_id: str = "136969346945") -> bytes:
    """Wrap a registry event in a Pub/Sub push envelope."""
    data = base64.b64encode(json.dumps(message).encode("utf-8")).decode("ascii")
    envelope = {
        "message": {
            "attributes": {},
            "data": data,
            "messageId": message_id,
            "publishTime": "2024-05-01T12:00:00.000Z",
        },
        "subscription": "projects/my-project/subscriptions/gcr-relay",
    }
    return json.dumps(envelope).encode("utf-8")
