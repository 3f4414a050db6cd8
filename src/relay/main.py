"""FastAPI application entry point for the registry webhook relay.

Exposes one endpoint per registry provider plus health and metrics:

- /webhooks/dockerhub: DockerHub push webhooks
- /webhooks/gcr:       GCR notifications via Pub/Sub push (?secret=...)
- /health:             liveness probe
- /metrics:            Prometheus metrics
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from .config import RelaySettings, get_settings
from .jenkins.client import JenkinsClient
from .metrics import RelayMetrics, generate_metrics_output, get_metrics
from .webhook.callback import CallbackClient
from .webhook.dockerhub import (
    CallbackAuthenticator,
    DockerHubPipeline,
    NamespaceAuthenticator,
)
from .webhook.gcr import GcrPipeline, SecretAuthenticator
from .webhook.pipeline import InboundRequest, TriggerDispatcher, TriggerJob, WebhookPipeline

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Every method is routed so non-POST requests get the pipeline's 400
WEBHOOK_METHODS = ["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"]

# Global instances, initialized during lifespan startup
settings: RelaySettings
dockerhub_pipeline: Optional[WebhookPipeline] = None
gcr_pipeline: Optional[WebhookPipeline] = None
jenkins_client: Optional[JenkinsClient] = None
callback_client: Optional[CallbackClient] = None


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: RelaySettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Relay configuration:")
    logger.info(f"  DockerHub Namespaces: {sorted(settings.allowed_namespaces)}")
    logger.info(f"  Callback Timeout Seconds: {settings.callback_timeout_seconds}")
    logger.info(f"  GCR Pub/Sub Secret: {_redact_secret(settings.gcr_pubsub_secret)}")
    logger.info(f"  Jenkins URL: {settings.jenkins_url}")
    logger.info(f"  Jenkins Job: {settings.jenkins_job}")
    logger.info(f"  Jenkins User: {settings.jenkins_user or '(none)'}")
    logger.info(f"  Jenkins API Token: {_redact_secret(settings.jenkins_api_token)}")
    logger.info(
        f"  Jenkins Trigger Token: {_redact_secret(settings.jenkins_trigger_token)}"
    )
    logger.info(f"  Dispatch Timeout Seconds: {settings.dispatch_timeout_seconds}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


def build_pipelines(
    cfg: RelaySettings,
    trigger: TriggerJob,
    callbacks: CallbackClient,
    metrics: Optional[RelayMetrics] = None,
):
    """Wire both provider pipelines around a shared dispatcher.

    Args:
        cfg: Validated relay settings.
        trigger: Build trigger collaborator.
        callbacks: Client used for DockerHub callback acknowledgements.
        metrics: Metrics container, defaults to the global one.

    Returns:
        Tuple of (DockerHubPipeline, GcrPipeline).
    """
    metrics = metrics or get_metrics()
    dispatcher = TriggerDispatcher(trigger, timeout_seconds=cfg.dispatch_timeout_seconds)

    dockerhub = DockerHubPipeline(
        namespace_auth=NamespaceAuthenticator(cfg.allowed_namespaces),
        callback_auth=CallbackAuthenticator(callbacks),
        dispatcher=dispatcher,
        metrics=metrics,
    )
    gcr = GcrPipeline(
        secret_auth=SecretAuthenticator(cfg.gcr_pubsub_secret),
        dispatcher=dispatcher,
        metrics=metrics,
    )
    return dockerhub, gcr


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load configuration, wire pipelines, and close HTTP clients on exit."""
    global settings, dockerhub_pipeline, gcr_pipeline, jenkins_client, callback_client

    logger.info("Registry relay starting up...")

    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)
    _log_configuration(settings)

    jenkins_client = JenkinsClient(
        base_url=settings.jenkins_url,
        job_name=settings.jenkins_job,
        user=settings.jenkins_user,
        api_token=settings.jenkins_api_token,
        trigger_token=settings.jenkins_trigger_token,
        timeout=settings.dispatch_timeout_seconds,
    )
    callback_client = CallbackClient(
        timeout=settings.callback_timeout_seconds,
        target_url=settings.callback_target_url,
    )
    dockerhub_pipeline, gcr_pipeline = build_pipelines(
        settings, jenkins_client, callback_client
    )

    logger.info("Registry relay started successfully")

    yield

    logger.info("Registry relay shutting down...")

    if jenkins_client is not None:
        await jenkins_client.close()
    if callback_client is not None:
        await callback_client.close()

    logger.info("Registry relay shutdown complete")


app = FastAPI(
    title="Registry Webhook Relay",
    description="Relays container registry push webhooks to Jenkins",
    version="1.0.0",
    lifespan=lifespan,
)


async def _to_inbound(request: Request) -> InboundRequest:
    return InboundRequest(
        method=request.method,
        body=await request.body(),
        query_params=dict(request.query_params),
        remote_addr=request.client.host if request.client else "unknown",
    )


async def _run_pipeline(
    pipeline: Optional[WebhookPipeline], request: Request
) -> PlainTextResponse:
    if pipeline is None:
        logger.error("Relay not initialized")
        return PlainTextResponse("Service Unavailable", status_code=503)

    outcome = await pipeline.handle(await _to_inbound(request))
    return PlainTextResponse(outcome.body, status_code=outcome.status_code)


@app.get("/health")
async def health():
    """Liveness probe endpoint."""
    return {"status": "healthy"}


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(generate_metrics_output(), media_type=CONTENT_TYPE_LATEST)


@app.api_route("/webhooks/dockerhub", methods=WEBHOOK_METHODS)
async def dockerhub_webhook(request: Request):
    """DockerHub push webhook receiver."""
    return await _run_pipeline(dockerhub_pipeline, request)


@app.api_route("/webhooks/gcr", methods=WEBHOOK_METHODS)
async def gcr_webhook(request: Request):
    """GCR Pub/Sub push receiver. Requires the ``secret`` query parameter."""
    return await _run_pipeline(gcr_pipeline, request)


def run() -> None:
    """Console entry point: serve the relay with uvicorn."""
    import uvicorn

    cfg = get_settings()
    uvicorn.run("src.relay.main:app", host=cfg.host, port=cfg.port)


if __name__ == "__main__":
    run()
