from contextlib import asynccontextmanager
import logging
import time
import uuid

from fastapi import FastAPI
from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fintrack.api.ai import router as ai_router
from fintrack.api.auth import router as auth_router
from fintrack.api.budgets import router as budgets_router
from fintrack.api.notifications import router as notifications_router, run_daily_job
from fintrack.api.savings import router as savings_router
from fintrack.api.transactions import router as transactions_router
from fintrack.core.auth import parse_session_token
from fintrack.core.config import settings
from fintrack.core.errors import AuthError, register_error_handlers
from fintrack.db.base import Base
from fintrack.db.session import db_manager
from fintrack.services.scheduler import daily_scheduler
import fintrack.models  # noqa: F401 - register models with Base.metadata

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s %(message)s",
)
request_logger = logging.getLogger("fintrack.request")
scheduler_logger = logging.getLogger("fintrack.scheduler")


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=db_manager.get_connection())
    if settings.daily_notifications_enabled:
        daily_scheduler.start()
        if daily_scheduler.restore(run_daily_job) is None:
            daily_scheduler.schedule_daily(
                settings.daily_notification_hour, settings.daily_notification_minute, run_daily_job
            )
        scheduler_logger.info("scheduler_started next=%s", daily_scheduler.state()["scheduled_time"])
    yield
    daily_scheduler.shutdown()
    db_manager.dispose()


app = FastAPI(
    title="Fintrack API",
    description="Personal finance tracking with AI-assisted bank statement import",
    version="0.1.0",
    lifespan=lifespan,
)
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.app_cors_origins.split(",") if settings.app_cors_origins else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Operator endpoints in here check the cron secret instead of a session.
PUBLIC_PATHS = {
    "/auth/register",
    "/auth/login",
    "/auth/logout",
    "/ai/config",
    "/notifications/send-daily",
    "/notifications/vapid-public-key",
}

CRON_PATHS = {"/notifications/schedule"}

PROTECTED_API_PREFIXES = (
    "/ai",
    "/budgets",
    "/notifications",
    "/savings",
    "/transactions",
    "/auth/me",
)


@app.middleware("http")
async def request_logging_middleware(request, call_next):
    req_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        request_logger.exception(
            "request_failed id=%s method=%s path=%s ms=%s",
            req_id,
            request.method,
            request.url.path,
            elapsed_ms,
        )
        raise
    elapsed_ms = int((time.perf_counter() - started) * 1000)
    response.headers["x-request-id"] = req_id
    request_logger.info(
        "request_done id=%s method=%s path=%s status=%s ms=%s",
        req_id,
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    path = request.url.path
    user = parse_session_token(request.cookies.get(settings.auth_cookie_name))
    request.state.user = user

    if (
        path in PUBLIC_PATHS
        or (path in CRON_PATHS and request.method != "GET")
        or path.startswith("/docs")
        or path.startswith("/redoc")
        or path == "/openapi.json"
    ):
        return await call_next(request)

    if path.startswith(PROTECTED_API_PREFIXES) and not user:
        return JSONResponse(status_code=401, content=AuthError().to_content())

    return await call_next(request)


app.include_router(ai_router)
app.include_router(auth_router)
app.include_router(budgets_router)
app.include_router(notifications_router)
app.include_router(savings_router)
app.include_router(transactions_router)


@app.get("/health", include_in_schema=False)
def health() -> dict:
    return {"ok": True}
