"""
FastAPI application entry point.

Home-server automation API: trigger CRUD, execution logs, presets,
notifications, the Drive upload log and the live event stream.

The AutomationService lives on app.state.service. It is created and
started in the lifespan unless one is injected through create_app().
"""

from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from fastapi import Depends, FastAPI, Request  # noqa: E402

from homelab import __version__  # noqa: E402
from homelab.scheduler.service import AutomationService  # noqa: E402

from .dependencies.auth import verify_api_key  # noqa: E402
from .routers import email, events, notifications, scheduler  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup: build the service if none was injected, seed and reconcile timers.
    Shutdown: cancel every timer and stop the system monitor.
    """
    service: Optional[AutomationService] = getattr(app.state, "service", None)
    if service is None:
        service = AutomationService.create()
        app.state.service = service

    if app.state.start_service and not service.is_running:
        service.start()

    yield

    service.stop()


# Tag metadata for Swagger UI
tags_metadata = [
    {
        "name": "scheduler",
        "description": "Trigger CRUD, run-now, execution logs and preset catalog",
    },
    {
        "name": "notifications",
        "description": "Stored notifications from AI reports and email checks",
    },
    {
        "name": "email",
        "description": "Drive upload log of filed email attachments",
    },
    {
        "name": "events",
        "description": "Live event stream over WebSocket (/ws)",
    },
]


def create_app(
    service: Optional[AutomationService] = None,
    start_service: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        service: Pre-built service (tests); created in the lifespan when None
        start_service: Start timers and the monitor on startup
    """
    app = FastAPI(
        title="Home Server Automation API",
        lifespan=lifespan,
        description="""
## Home Server Automation API

Cron-scheduled automation jobs for a home server.

### Authentication
When `API_AUTH_ENABLED=true`, all endpoints except `/health` require
an `X-API-Key` header matching the `API_KEY` environment variable.
The event stream takes the key as an `api_key` query parameter.

### Job types
`health-check`, `drive-sync`, `backup`, `ai-report`, `cleanup`,
`email-check`, `custom-command`

### Usage
```bash
# Start server
homelab --host 0.0.0.0 --port 4000

# Create a job
curl -X POST http://localhost:4000/api/scheduler/jobs \\
  -H "Content-Type: application/json" \\
  -d '{"name": "Nightly backup", "cron": "0 2 * * *", "type": "backup"}'
```
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=tags_metadata,
    )
    app.state.service = service
    app.state.start_service = start_service

    # Health check - NO authentication (operational endpoint)
    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint. Not authenticated."""
        current = request.app.state.service
        return {
            "status": "ok",
            "version": __version__,
            "scheduler_running": bool(current is not None and current.is_running),
        }

    # verify_api_key is a no-op unless API_AUTH_ENABLED
    auth_dependency = [Depends(verify_api_key)]

    app.include_router(
        scheduler.router,
        prefix="/api/scheduler",
        tags=["scheduler"],
        dependencies=auth_dependency,
    )
    app.include_router(
        notifications.router,
        prefix="/api/notifications",
        tags=["notifications"],
        dependencies=auth_dependency,
    )
    app.include_router(
        email.router,
        prefix="/api/email",
        tags=["email"],
        dependencies=auth_dependency,
    )
    app.include_router(events.router, tags=["events"])

    return app


app = create_app()
