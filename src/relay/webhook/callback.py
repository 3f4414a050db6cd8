"""DockerHub callback acknowledgement client.

DockerHub push webhooks carry no signature. The receiver proves the
notification is genuine by POSTing a status document back to the
``callback_url`` in the payload; only a live DockerHub endpoint answers
that call with a well-formed success response.

Callback document:
{
  "state": "success",
  "description": "Build triggered by registry relay",
  "context": "registry-relay",
  "target_url": "https://ci.example.com/job/registry-push"
}
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx

from src.relay.webhook.errors import CallbackFailedError

logger = logging.getLogger(__name__)


CALLBACK_CONTEXT = "registry-relay"
CALLBACK_DESCRIPTION = "Build triggered by registry relay"


class CallbackClient:
    """Posts acknowledgements to DockerHub callback URLs.

    A single pooled httpx client is shared across requests. No retries are
    attempted: one failed round-trip fails the webhook.

    Attributes:
        timeout: Deadline in seconds for the whole round-trip.
        target_url: Optional link included in the acknowledgement.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        target_url: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.target_url = target_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": "RegistryRelay/1.0"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "CallbackClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def success_document(self) -> Dict[str, str]:
        """Build the success status document sent to the provider."""
        document = {
            "state": "success",
            "description": CALLBACK_DESCRIPTION,
            "context": CALLBACK_CONTEXT,
        }
        if self.target_url:
            document["target_url"] = self.target_url
        return document

    async def acknowledge(self, callback_url: str) -> Dict[str, Any]:
        """Acknowledge a push by calling back the provider.

        Args:
            callback_url: The URL supplied in the webhook payload.

        Returns:
            The decoded JSON response from the provider.

        Raises:
            CallbackFailedError: On transport errors, timeouts, non-2xx
                responses, or a response body that is not JSON.
        """
        context = {"callback_url": callback_url}

        try:
            # The client timeout bounds each read; the deadline bounds the
            # whole round-trip including the body.
            response = await asyncio.wait_for(
                self.client.post(callback_url, json=self.success_document()),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise CallbackFailedError(
                f"Callback timed out after {self.timeout}s",
                context=context,
            ) from e
        except (httpx.RequestError, httpx.InvalidURL, ValueError) as e:
            raise CallbackFailedError(
                f"Callback request error: {e}",
                context=context,
            ) from e

        context["status_code"] = response.status_code
        if not response.is_success:
            raise CallbackFailedError(
                f"Callback returned HTTP {response.status_code}",
                context=context,
            )

        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CallbackFailedError(
                "Callback response is not valid JSON",
                context=context,
            ) from e

        logger.debug("Callback acknowledged", extra=context)
        return body
