"""
FastAPI application. One webhook endpoint plus two status endpoints.

    GET  /          liveness message
    GET  /health    status, uptime and runtime info
    POST /webhook   GitHub delivery: parse -> verify -> classify -> deploy

The deployment runs as a background task; the response never waits for it.
"""

import platform
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Request

from deployhook import __version__
from deployhook.api_errors import (
    DELIVERY_HEADER, APIError, MalformedPayloadError, install_error_handlers,
)
from deployhook.api_models import (
    DeployResponse, HealthResponse, MessageResponse, WebhookPayload,
    parse_payload,
)
from deployhook.classifier import Accept, IgnoredEvent, classify
from deployhook.config import Config, log_config
from deployhook.deployer import Deployer
from deployhook.signature import SIGNATURE_HEADER, check_signature


logger = structlog.get_logger(__name__)

EVENT_HEADER = "X-GitHub-Event"
SHUTDOWN_GRACE_SECONDS = 30
MAX_BODY_BYTES = 10 * 1024 * 1024

_STARTED = time.monotonic()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _too_large() -> APIError:
    logger.warning("webhook_too_large", limit=MAX_BODY_BYTES)
    return APIError(413, "payload_too_large", "Payload too large")


async def _read_body(request: Request) -> bytes:
    """Read the raw body, refusing anything over MAX_BODY_BYTES."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > MAX_BODY_BYTES:
        raise _too_large()

    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > MAX_BODY_BYTES:
            raise _too_large()
        chunks.append(chunk)
    return b"".join(chunks)


def _log_push(payload: WebhookPayload | None) -> None:
    if payload is None or payload.repository is None or payload.pusher is None:
        return
    logger.info("push_received",
                repository=payload.repository.full_name,
                pusher=f"{payload.pusher.name} <{payload.pusher.email}>")


def create_app(config: Config, deployer: Deployer | None = None) -> FastAPI:
    """Build the app around a Config. Logs the configuration once."""
    log_config(config)
    deployer = deployer or Deployer(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await deployer.drain(SHUTDOWN_GRACE_SECONDS)

    app = FastAPI(title="deployhook", version=__version__, lifespan=lifespan,
                  docs_url=None, redoc_url=None, openapi_url=None)
    app.state.config = config
    app.state.deployer = deployer
    install_error_handlers(app)

    # -----------------------------------------------------------------------
    # Status
    # -----------------------------------------------------------------------

    @app.get("/")
    async def root() -> MessageResponse:
        return MessageResponse(message="GitHub webhook server is running")

    @app.get("/health")
    async def health() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            timestamp=_now(),
            uptime=round(time.monotonic() - _STARTED, 3),
            version=__version__,
            runtime_version=platform.python_version(),
            platform=sys.platform,
        )

    # -----------------------------------------------------------------------
    # Webhook
    # -----------------------------------------------------------------------

    @app.post("/webhook")
    async def webhook(request: Request) -> MessageResponse | DeployResponse:
        # Signature is checked against these exact bytes, never a re-encoding
        raw_body = await _read_body(request)
        delivery = request.headers.get(DELIVERY_HEADER)

        with structlog.contextvars.bound_contextvars(delivery=delivery):
            try:
                payload = parse_payload(raw_body)
            except MalformedPayloadError as e:
                logger.warning("webhook_malformed", error=str(e))
                raise APIError(400, "malformed_payload", "Invalid JSON")

            check = check_signature(raw_body,
                                    request.headers.get(SIGNATURE_HEADER),
                                    config.secret)
            if not check:
                logger.warning("webhook_rejected", reason=check.reason.value)
                raise APIError(403, "invalid_signature", "Invalid signature")

            event = request.headers.get(EVENT_HEADER)
            logger.info("webhook_received", github_event=event)

            decision = classify(event, payload.ref if payload else None,
                                config.allowed_branches)

            if isinstance(decision, IgnoredEvent):
                logger.info("event_ignored", github_event=event)
                return MessageResponse(
                    message=f"Ignored {event or 'unknown'} event")

            if not isinstance(decision, Accept):
                logger.info("branch_ignored", branch=decision.branch)
                return MessageResponse(
                    message=f"Ignored push to branch {decision.branch}")

            _log_push(payload)
            deployer.trigger()
            return DeployResponse(message="Deployment triggered",
                                  timestamp=_now())

    return app
