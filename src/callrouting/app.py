"""FastAPI webhook surface for the telephony gateway."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from callrouting.alerts import IncidentClient
from callrouting.continuation import PARAM
from callrouting.flow import WEBHOOK_PATH, CallFlow
from callrouting.loader import Settings, load_settings
from callrouting.models import WebhookEvent
from callrouting.notify import VoicemailNotifier
from callrouting.roster import RosterClient

logger = logging.getLogger(__name__)


def build_flow(settings: Settings) -> CallFlow:
    """Wire a CallFlow with live roster, incident and email collaborators."""
    return CallFlow(
        settings,
        roster=RosterClient.from_settings(settings),
        incidents=IncidentClient.from_settings(settings),
        notifier=VoicemailNotifier(settings.email, timeout=settings.request_timeout),
    )


def create_app(
    settings: Settings | None = None, flow: CallFlow | None = None
) -> FastAPI:
    """Create the webhook application."""
    settings = settings or load_settings()
    flow = flow or build_flow(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        flow.roster.close()
        flow.incidents.close()
        logger.info("Closed roster and incident clients")

    app = FastAPI(
        title="Live Call Routing",
        description="Routes inbound calls to whoever is on call",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.flow = flow
    logger.info("Live call routing webhook mounted at %s", WEBHOOK_PATH)

    @app.api_route(WEBHOOK_PATH, methods=["GET", "POST"])
    async def live_call_routing(request: Request) -> Response:
        fields = dict(request.query_params)
        if request.method == "POST":
            form = await request.form()
            fields.update({k: v for k, v in form.items() if isinstance(v, str)})

        event = WebhookEvent.model_validate(fields)
        token = request.query_params.get(PARAM)
        twiml = await run_in_threadpool(flow.handle, event, token)
        return Response(content=str(twiml), media_type="application/xml")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app
