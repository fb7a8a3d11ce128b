"""
FastAPI application entry point.

Scheduling API and live status channel for the notification scheduler.
Workers normally run in a separate process (python -m src.scheduler worker);
set RUN_WORKERS_IN_API=true to run them inside the API process.
"""

from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from src import __version__
from src.infra.config import load_settings
from src.infra.logging_config import setup_logging
from .routers import events
from ._scheduler_state import init_scheduler_service, shutdown_scheduler_service


load_dotenv()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown of resources:
    - Broadcast bus, fan-out hub and scheduler service
    - Worker pool, when enabled
    """
    # Startup
    settings = load_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)
    init_scheduler_service(settings)

    yield

    # Shutdown - drain workers, then close the bus
    shutdown_scheduler_service()

# Tag metadata for Swagger UI
tags_metadata = [
    {
        "name": "events",
        "description": "Schedule notifications and query their delivery status",
    },
    {
        "name": "live",
        "description": "WebSocket channel pushing every status change",
    },
]

app = FastAPI(
    title="Event Notification Scheduler API",
    lifespan=lifespan,
    description="""
## Event Notification Scheduler API

Schedule a message for delivery at a future time and watch its status change
live.

### Lifecycle
`SCHEDULED` → `PROCESSING` → `SENT`, or on failure `RETRIED` (up to 3 times,
backoff 1s/2s/4s) and finally `FAILED`.

### Usage
```bash
# Start server
uvicorn src.api.main:app --host 127.0.0.1 --port 3000

# Start workers
python -m src.scheduler worker

# Schedule a notification
curl -X POST http://localhost:3000/api/events \\
  -H "Content-Type: application/json" \\
  -d '{"message": "Hello", "recipientEmail": "a@example.com", "send_at": "2030-01-01T09:00:00Z"}'
```
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=tags_metadata,
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


app.include_router(events.router, prefix="/api", tags=["events"])
app.include_router(events.ws_router, tags=["live"])


if __name__ == "__main__":
    import uvicorn

    settings = load_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
