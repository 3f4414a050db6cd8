"""Jenkins remote build trigger client.

Triggers a parameterized Jenkins job for every relayed registry push:

    POST {base_url}/job/{job}/buildWithParameters

with the form parameters PROVIDER, REPOSITORY_NAME, REPOSITORY_SCOPE,
TAG_OR_DIGEST and RAW_PAYLOAD. Folder jobs are addressed as
``folder/job``. Authentication uses a Jenkins user and API token, which
also exempts the request from CSRF crumbs; a remote build ``token`` can
be passed as well when the job is configured with one.

No retries are attempted: the registry that sent the webhook owns retry
policy, so a failure is reported straight back to it.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx


logger = logging.getLogger(__name__)


class JenkinsAPIError(Exception):
    """Raised when a Jenkins trigger request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from Jenkins.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


def job_path(job_name: str) -> str:
    """Build the URL path for a (possibly foldered) job.

    Examples:
        >>> job_path("registry-push")
        '/job/registry-push'
        >>> job_path("ci/images/registry-push")
        '/job/ci/job/images/job/registry-push'
    """
    parts = [p for p in job_name.strip("/").split("/") if p]
    return "".join(f"/job/{quote(p, safe='')}" for p in parts)


class JenkinsClient:
    """Async client for triggering Jenkins jobs.

    Implements the build trigger contract used by the relay's
    TriggerDispatcher.

    Attributes:
        base_url: Jenkins root URL.
        job_name: Job to trigger, folders separated by ``/``.
        user: Jenkins user for basic auth (optional).
        api_token: API token for the user (optional).
        trigger_token: Remote build token configured on the job (optional).
        timeout: Request timeout in seconds.

    Example:
        >>> client = JenkinsClient("https://ci.example.com", "registry-push")
        >>> async with client:
        ...     await client.trigger_job("gcr", "app", "gcr.io/p", "v1", b"{}")
    """

    def __init__(
        self,
        base_url: str,
        job_name: str,
        user: str = "",
        api_token: str = "",
        trigger_token: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.job_name = job_name
        self.user = user
        self.api_token = api_token
        self.trigger_token = trigger_token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            auth = None
            if self.user and self.api_token:
                auth = httpx.BasicAuth(self.user, self.api_token)
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                auth=auth,
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

    async def __aenter__(self) -> "JenkinsClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def build_parameters(
        self,
        provider: str,
        repository_name: str,
        repository_scope: str,
        tag_or_digest: str,
        raw_payload: bytes,
    ) -> Dict[str, str]:
        """Build the job parameters for a trigger."""
        return {
            "PROVIDER": provider,
            "REPOSITORY_NAME": repository_name,
            "REPOSITORY_SCOPE": repository_scope,
            "TAG_OR_DIGEST": tag_or_digest,
            "RAW_PAYLOAD": raw_payload.decode("utf-8", errors="replace"),
        }

    async def trigger_job(
        self,
        provider: str,
        repository_name: str,
        repository_scope: str,
        tag_or_digest: str,
        raw_payload: bytes,
    ) -> Optional[str]:
        """Queue a build of the configured job.

        Args:
            provider: Registry provider tag ("dockerhub" or "gcr").
            repository_name: Image repository name.
            repository_scope: Namespace or registry domain.
            tag_or_digest: Tag, or content digest when untagged.
            raw_payload: Original webhook body.

        Returns:
            The queue item URL from the Location header, if Jenkins sent one.

        Raises:
            JenkinsAPIError: On transport errors or non-2xx responses.
        """
        path = f"{job_path(self.job_name)}/buildWithParameters"
        params = {"token": self.trigger_token} if self.trigger_token else None
        data = self.build_parameters(
            provider, repository_name, repository_scope, tag_or_digest, raw_payload
        )

        try:
            response = await self.client.post(path, params=params, data=data)
        except httpx.TimeoutException as e:
            logger.error(
                "Jenkins request timed out",
                extra={"path": path, "timeout": self.timeout},
            )
            raise JenkinsAPIError(
                f"Jenkins request timed out: {e}",
                request_url=f"{self.base_url}{path}",
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "Jenkins request error",
                extra={"path": path, "error": str(e)},
            )
            raise JenkinsAPIError(
                f"Jenkins request error: {e}",
                request_url=f"{self.base_url}{path}",
            ) from e

        if not response.is_success:
            error_body = response.text
            logger.error(
                "Jenkins API error",
                extra={
                    "status_code": response.status_code,
                    "path": path,
                    "response_body": error_body[:500],
                },
            )
            raise JenkinsAPIError(
                message=f"Jenkins API error: {response.status_code}",
                status_code=response.status_code,
                response_body=error_body,
                request_url=str(response.url),
            )

        queue_url = response.headers.get("location")
        logger.info(
            "Queued Jenkins build",
            extra={
                "job": self.job_name,
                "provider": provider,
                "repository": f"{repository_scope}/{repository_name}",
                "tag_or_digest": tag_or_digest,
                "queue_url": queue_url,
            },
        )
        return queue_url
