"""
Trigger API over HTTP.

Endpoints:
    POST /api/alerts/process           → Run one alert cycle now
    GET  /api/alerts/process           → Health check
    POST /api/notifications/send-test  → Dispatch a test notification
"""
from __future__ import annotations

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from api.trigger import TriggerAPI


def create_router(trigger_api: TriggerAPI) -> APIRouter:
    router = APIRouter(tags=["Alerts"])

    @router.post("/alerts/process")
    async def process_alerts():
        status, payload = await trigger_api.process_now()
        return JSONResponse(payload, status_code=status)

    @router.get("/alerts/process")
    async def process_health():
        status, payload = trigger_api.health()
        return JSONResponse(payload, status_code=status)

    @router.post("/notifications/send-test")
    async def send_test(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        status, payload = await trigger_api.send_test_notification(body)
        return JSONResponse(payload, status_code=status)

    return router


def create_app(trigger_api: TriggerAPI) -> FastAPI:
    app = FastAPI(title="Tokenwatch Trigger API", version="1.0.0")
    app.include_router(create_router(trigger_api), prefix="/api")
    return app


def build_server(trigger_api: TriggerAPI, host: str, port: int) -> uvicorn.Server:
    """A uvicorn server to be awaited inside the monitor's event loop."""
    config = uvicorn.Config(create_app(trigger_api), host=host, port=port, log_level="warning")
    return uvicorn.Server(config)
