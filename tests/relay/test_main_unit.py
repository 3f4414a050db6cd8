"""Tests for the FastAPI application wiring.

Pipelines are built from real settings with a mocked Jenkins trigger and
callback client, and swapped into the module globals the routes read.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from src.relay import main
from src.relay.config import RelaySettings
from src.relay.metrics import RelayMetrics
from src.relay.webhook.errors import CallbackFailedError
from factories import dockerhub_body, gcr_message, pubsub_body


@pytest.fixture
def relay_settings():
    return RelaySettings(
        dockerhub_namespaces="acme,widgets",
        gcr_pubsub_secret="pubsub-secret",
        jenkins_url="https://ci.example.com",
    )


@pytest.fixture
def trigger():
    return AsyncMock()


@pytest.fixture
def callback_client():
    client = AsyncMock()
    client.acknowledge.return_value = {"state": "success"}
    return client


@pytest.fixture
def client(monkeypatch, relay_settings, trigger, callback_client):
    dockerhub, gcr = main.build_pipelines(
        relay_settings,
        trigger,
        callback_client,
        metrics=RelayMetrics(registry=CollectorRegistry()),
    )
    monkeypatch.setattr(main, "dockerhub_pipeline", dockerhub)
    monkeypatch.setattr(main, "gcr_pipeline", gcr)
    # No lifespan: the pipelines above stand in for the configured ones
    return TestClient(main.app)


class TestDockerHubEndpoint:
    def test_accepts_push(self, client, trigger):
        body = dockerhub_body()

        response = client.post("/webhooks/dockerhub", content=body)

        assert response.status_code == 200
        assert response.text == "OK"
        assert response.headers["content-type"].startswith("text/plain")
        trigger.trigger_job.assert_awaited_once_with(
            "dockerhub", "myapp", "acme", "v1.2.3", body
        )

    @pytest.mark.parametrize(
        "method", ["GET", "HEAD", "OPTIONS", "PUT", "DELETE", "PATCH"]
    )
    def test_rejects_other_methods(self, client, trigger, method):
        response = client.request(method, "/webhooks/dockerhub")

        assert response.status_code == 400
        if method != "HEAD":
            assert response.text == "Bad Request"
        trigger.trigger_job.assert_not_awaited()

    def test_unknown_namespace(self, client, trigger):
        response = client.post(
            "/webhooks/dockerhub", content=dockerhub_body(namespace="evil")
        )

        assert response.status_code == 401
        trigger.trigger_job.assert_not_awaited()

    def test_callback_failure(self, client, trigger, callback_client):
        callback_client.acknowledge.side_effect = CallbackFailedError("HTTP 404")

        response = client.post("/webhooks/dockerhub", content=dockerhub_body())

        assert response.status_code == 401
        trigger.trigger_job.assert_not_awaited()

    def test_truncated_document(self, client, trigger):
        response = client.post("/webhooks/dockerhub", content=dockerhub_body()[:40])

        assert response.status_code == 500
        assert response.text == "Internal Service Error"
        trigger.trigger_job.assert_not_awaited()


class TestGcrEndpoint:
    def test_accepts_push(self, client, trigger):
        body = pubsub_body(gcr_message())

        response = client.post(
            "/webhooks/gcr", params={"secret": "pubsub-secret"}, content=body
        )

        assert response.status_code == 200
        assert response.text == "OK"
        trigger.trigger_job.assert_awaited_once_with(
            "gcr", "my-image", "gcr.io/my-project", "latest", body
        )

    def test_missing_secret(self, client, trigger):
        response = client.post("/webhooks/gcr", content=pubsub_body(gcr_message()))

        assert response.status_code == 401
        trigger.trigger_job.assert_not_awaited()

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS", "PUT"])
    def test_rejects_other_methods(self, client, trigger, method):
        response = client.request(
            method, "/webhooks/gcr", params={"secret": "pubsub-secret"}
        )

        assert response.status_code == 400
        trigger.trigger_job.assert_not_awaited()

    def test_truncated_document(self, client, trigger):
        body = pubsub_body(gcr_message())[:25]

        response = client.post(
            "/webhooks/gcr", params={"secret": "pubsub-secret"}, content=body
        )

        assert response.status_code == 500
        trigger.trigger_job.assert_not_awaited()


class TestOperationalEndpoints:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")

    def test_uninitialized_relay_is_unavailable(self, monkeypatch):
        monkeypatch.setattr(main, "dockerhub_pipeline", None)

        response = TestClient(main.app).post(
            "/webhooks/dockerhub", content=dockerhub_body()
        )

        assert response.status_code == 503


class TestRedactSecret:
    def test_short_secret_fully_hidden(self):
        assert main._redact_secret("abc") == "***"

    def test_long_secret_shows_prefix(self):
        assert main._redact_secret("abcdefgh") == "abcd****"
