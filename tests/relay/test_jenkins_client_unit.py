"""Unit tests for the Jenkins build trigger client."""

import asyncio
import base64
from urllib.parse import parse_qs

import httpx
import pytest

from src.relay.jenkins import JenkinsAPIError, JenkinsClient, job_path


def run_async(coro):
    return asyncio.run(coro)


async def _trigger(client: JenkinsClient, raw_payload: bytes = b'{"k": "v"}'):
    async with client:
        return await client.trigger_job(
            "dockerhub", "myapp", "acme", "v1.2.3", raw_payload
        )


def _client(handler, **kwargs) -> JenkinsClient:
    kwargs.setdefault("base_url", "https://ci.example.com/")
    kwargs.setdefault("job_name", "registry-push")
    return JenkinsClient(transport=httpx.MockTransport(handler), **kwargs)


class TestJobPath:
    def test_plain_job(self):
        assert job_path("registry-push") == "/job/registry-push"

    def test_folder_job(self):
        assert job_path("ci/images/push") == "/job/ci/job/images/job/push"

    def test_quotes_segments(self):
        assert job_path("my job") == "/job/my%20job"


class TestTriggerJob:
    def test_posts_build_parameters(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(
                201, headers={"Location": "https://ci.example.com/queue/item/7/"}
            )

        queue_url = run_async(_trigger(_client(handler)))

        request = seen["request"]
        form = parse_qs(request.content.decode())
        assert queue_url == "https://ci.example.com/queue/item/7/"
        assert request.method == "POST"
        assert request.url.path == "/job/registry-push/buildWithParameters"
        assert form["PROVIDER"] == ["dockerhub"]
        assert form["REPOSITORY_NAME"] == ["myapp"]
        assert form["REPOSITORY_SCOPE"] == ["acme"]
        assert form["TAG_OR_DIGEST"] == ["v1.2.3"]
        assert form["RAW_PAYLOAD"] == ['{"k": "v"}']

    def test_sends_basic_auth_and_trigger_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(201)

        client = _client(
            handler, user="relay", api_token="api-token", trigger_token="job-token"
        )
        run_async(_trigger(client))

        request = seen["request"]
        expected = base64.b64encode(b"relay:api-token").decode()
        assert request.headers["authorization"] == f"Basic {expected}"
        assert request.url.params["token"] == "job-token"

    def test_no_auth_without_credentials(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(201)

        run_async(_trigger(_client(handler)))

        assert "authorization" not in seen["request"].headers
        assert "token" not in seen["request"].url.params

    def test_undecodable_payload_is_replaced_not_rejected(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(201)

        run_async(_trigger(_client(handler), raw_payload=b"\xffabc"))

        assert seen["form"]["RAW_PAYLOAD"] == ["\ufffdabc"]

    @pytest.mark.parametrize("status", [400, 403, 404, 500])
    def test_error_status_raises(self, status):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, text="No such job")

        with pytest.raises(JenkinsAPIError) as exc_info:
            run_async(_trigger(_client(handler)))

        assert exc_info.value.status_code == status
        assert exc_info.value.response_body == "No such job"

    def test_transport_error_raises(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(JenkinsAPIError):
            run_async(_trigger(_client(handler)))

        # No retries
        assert len(calls) == 1
