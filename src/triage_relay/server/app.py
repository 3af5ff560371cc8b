"""FastAPI application exposing the relay over HTTP.

Endpoints:
- POST /webhook: signed GitHub webhook deliveries (ping, issues, issue_comment)
- GET /health: liveness and uptime
- GET /metrics: metrics snapshot as JSON, or Prometheus text with ?format=prometheus

The webhook acknowledges as soon as admission completes; triage runs in
the relay's background tasks.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from triage_relay._version import __version__
from triage_relay.config.schema import ServerConfig
from triage_relay.core.relay import Admission, TriageRelay
from triage_relay.models.issue import FIX_TRIGGER
from triage_relay.server.payloads import IssueCommentEventPayload, IssuesEventPayload
from triage_relay.utils.async_helpers import ClientRateLimiter
from triage_relay.utils.logging import bind_delivery
from triage_relay.utils.security import SignatureConfigError, verify_webhook_signature

log = structlog.get_logger()

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4"

ISSUE_MESSAGES = {
    Admission.ACCEPTED: "Processing",
    Admission.DISABLED: "Repo not enabled",
    Admission.DUPLICATE: "Already processed",
}

FIX_TRIGGER_MESSAGES = {
    Admission.ACCEPTED: "Spawning fix agent",
    Admission.DISABLED: "Repo not enabled",
    Admission.DUPLICATE: "Already spawned",
}


def _ok(message: str) -> dict[str, Any]:
    return {"ok": True, "message": message}


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error})


def create_app(relay: TriageRelay, config: ServerConfig) -> FastAPI:
    """Build the webhook application around a relay.

    The relay is started and stopped with the application's lifespan.

    Args:
        relay: The triage relay that admits events
        config: Server configuration (secret, limits)

    Returns:
        FastAPI application
    """
    limiter = ClientRateLimiter(
        max_requests=config.rate_limit_requests,
        window_seconds=config.rate_limit_window,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await relay.start()
        try:
            yield
        finally:
            await relay.stop()

    app = FastAPI(
        title="triage-relay",
        description="GitHub issue triage relay",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "uptime": relay.metrics.get_uptime_seconds()}

    @app.get("/metrics", response_model=None)
    async def metrics(
        format: str = Query("json", pattern="^(json|prometheus)$"),
    ) -> dict[str, Any] | PlainTextResponse:
        if format == "prometheus":
            return PlainTextResponse(relay.prometheus_metrics(), media_type=PROMETHEUS_CONTENT_TYPE)
        return relay.metrics_snapshot()

    @app.post("/webhook", response_model=None)
    async def webhook(
        request: Request,
        x_github_event: str | None = Header(None),
        x_github_delivery: str | None = Header(None),
        x_hub_signature_256: str | None = Header(None),
    ) -> dict[str, Any] | JSONResponse:
        bind_delivery(x_github_delivery, x_github_event)
        client = request.client.host if request.client else "unknown"
        if not limiter.allow(client):
            return _error(429, "Rate limit exceeded")

        declared_length = request.headers.get("content-length")
        if declared_length and declared_length.isdigit() and int(declared_length) > config.body_limit:
            return _error(413, "Payload too large")

        body = await request.body()
        if len(body) > config.body_limit:
            return _error(413, "Payload too large")

        try:
            if not verify_webhook_signature(body, x_hub_signature_256, config.webhook_secret):
                log.error("webhook_signature_invalid", delivery_id=x_github_delivery)
                return _error(401, "Invalid signature")
        except SignatureConfigError as e:
            log.error("webhook_signature_unconfigured", error=str(e))
            return _error(500, "Signature verification failed")

        try:
            data = json.loads(body)
        except ValueError:
            log.warning("webhook_invalid_json", delivery_id=x_github_delivery)
            return _error(400, "Invalid JSON")
        if not isinstance(data, dict):
            return _error(400, "Invalid JSON")

        return handle_event(relay, x_github_event, x_github_delivery, data)

    return app


def handle_event(
    relay: TriageRelay,
    event: str | None,
    delivery_id: str | None,
    data: dict[str, Any],
) -> dict[str, Any] | JSONResponse:
    """Route a verified webhook delivery to the relay.

    Args:
        relay: The triage relay
        event: Value of the X-GitHub-Event header
        delivery_id: Value of the X-GitHub-Delivery header
        data: Parsed JSON body

    Returns:
        Acknowledgment body, or an error response for malformed payloads
    """
    if event == "ping":
        log.info("webhook_ping", delivery_id=delivery_id)
        return _ok("pong")

    if event == "issues":
        return _handle_issues(relay, delivery_id, data)

    if event == "issue_comment":
        return _handle_issue_comment(relay, delivery_id, data)

    log.info("webhook_event_ignored", github_event=event, delivery_id=delivery_id)
    return _ok(f"Ignoring event: {event}")


def _handle_issues(
    relay: TriageRelay,
    delivery_id: str | None,
    data: dict[str, Any],
) -> dict[str, Any] | JSONResponse:
    try:
        payload = IssuesEventPayload.model_validate(data)
    except ValidationError:
        log.error("webhook_payload_malformed", delivery_id=delivery_id)
        return _error(400, "Malformed payload")

    if payload.action != "opened":
        log.info("webhook_action_ignored", action=payload.action, delivery_id=delivery_id)
        return _ok(f"Ignoring action: {payload.action}")

    try:
        event = payload.to_event()
    except ValueError:
        log.error("webhook_payload_malformed", delivery_id=delivery_id)
        return _error(400, "Malformed payload")

    admission = relay.admit_issue(event)
    return _ok(ISSUE_MESSAGES[admission])


def _handle_issue_comment(
    relay: TriageRelay,
    delivery_id: str | None,
    data: dict[str, Any],
) -> dict[str, Any] | JSONResponse:
    try:
        payload = IssueCommentEventPayload.model_validate(data)
    except ValidationError:
        log.error("webhook_payload_malformed", delivery_id=delivery_id)
        return _error(400, "Malformed payload")

    if payload.action != "created":
        log.info("webhook_comment_action_ignored", action=payload.action, delivery_id=delivery_id)
        return _ok(f"Ignoring comment action: {payload.action}")

    if not payload.comment_text.startswith(FIX_TRIGGER):
        return _ok(f"Not a {FIX_TRIGGER} command")

    try:
        event = payload.to_event()
    except ValueError:
        log.error("webhook_payload_malformed", delivery_id=delivery_id)
        return _error(400, "Malformed payload")

    admission = relay.admit_fix_trigger(event)
    return _ok(FIX_TRIGGER_MESSAGES[admission])
