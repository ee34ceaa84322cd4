"""
Service access for routers.

The AutomationService is owned by the application (app.state.service),
created in the lifespan or injected by create_app(service=...).
"""

from fastapi import HTTPException, Request, WebSocket

from homelab.scheduler.service import AutomationService


def get_service(request: Request) -> AutomationService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Automation service not initialized")
    return service


def get_ws_service(websocket: WebSocket) -> AutomationService:
    service = getattr(websocket.app.state, "service", None)
    if service is None:
        raise RuntimeError("Automation service not initialized")
    return service
