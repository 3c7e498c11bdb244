"""timeblock - sequential time-boxing of a queue of activities."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from timeblock.core.clock import system_clock
from timeblock.core.config import settings
from timeblock.core.db_client import close_connection, init_db
from timeblock.core.logging import configure_logfire, instrument_fastapi
from timeblock.core.scheduler import start_scheduler, stop_scheduler
from timeblock.interface.api_router import router as api_router
from timeblock.services.activity_store import SqliteActivityStore
from timeblock.services.completion_guard import CompletionGuard
from timeblock.services.context import SchedulerContext
from timeblock.services.notification_service import CompletionNotifier, LoggingAudioCue, LoggingNotificationSink
from timeblock.services.timer_engine import run_subscription


logger = logging.getLogger(__name__)


def build_context() -> SchedulerContext:
    """Wire the engine to the SQLite store, the system clock and log-backed cues."""
    return SchedulerContext(
        scope=settings.store_scope(),
        store=SqliteActivityStore(),
        clock=system_clock,
        notifier=CompletionNotifier(LoggingNotificationSink(), LoggingAudioCue()),
        guard=CompletionGuard(settled_memory=settings.settled_completion_memory),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    ctx = build_context()
    app.state.context = ctx
    subscription_task = asyncio.create_task(run_subscription(ctx), name="activity_subscription")
    start_scheduler(ctx)
    logger.info("startup_complete", extra={"scope": ctx.scope})
    yield
    # Shutdown
    stop_scheduler()
    subscription_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await subscription_task
    await close_connection()


app = FastAPI(
    title="timeblock",
    description="Run a queue of time-boxed activities back to back",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(api_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)
