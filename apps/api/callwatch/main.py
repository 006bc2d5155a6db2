"""Call Watch API: schedule permissions, calls and live call reminders."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text

from callwatch.core.config import settings
from callwatch.core.deps import CSRF_HEADER
from callwatch.core.rate_limit import limiter
from callwatch.db.session import engine
from callwatch.routers import calls, notifications, schedule_permissions
from callwatch.routers import websocket as ws_router
from callwatch.services.notification_sink import InAppSink
from callwatch.services.scheduler_registry import SchedulerRegistry

logger = logging.getLogger(__name__)


def _init_sentry() -> None:
    """Error tracking outside dev when a DSN is configured."""
    if not settings.SENTRY_DSN or settings.ENV == "dev":
        return
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        release=f"callwatch-api@{settings.VERSION}",
        integrations=[FastApiIntegration(transaction_style="endpoint"), SqlalchemyIntegration()],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Contact names and phone numbers stay out of Sentry
    )
    logger.info("Sentry enabled env=%s", settings.ENV)


_init_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Reminder loops run on this event loop; stop them before it closes
    await app.state.scheduler_registry.shutdown()


app = FastAPI(
    title="Call Watch API",
    description="Schedule permissions and call reminders",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url=None,
    lifespan=lifespan,
)

# One registry and inbox per app instance (per API worker process)
app.state.scheduler_registry = SchedulerRegistry()
app.state.notification_inbox = InAppSink(limit=settings.NOTIFICATION_INBOX_LIMIT)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Session cookie
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", CSRF_HEADER],
)

app.include_router(schedule_permissions.router)  # Carries its own /admin/schedule-permissions prefix
app.include_router(calls.router, prefix="/calls", tags=["calls"])
app.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
app.include_router(ws_router.router)


@app.get("/health")
def health():
    """Database round-trip plus the number of reminder monitors running in this process."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {
        "status": "ok",
        "env": settings.ENV,
        "version": settings.VERSION,
        "active_monitors": len(app.state.scheduler_registry.running_viewers()),
    }
