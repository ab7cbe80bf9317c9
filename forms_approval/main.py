import asyncio
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from forms_approval.config import settings
from forms_approval.database import SessionLocal, engine
from forms_approval.dependencies import get_store, get_telegram
from forms_approval.errors import StoreError
from forms_approval.logging_config import get_logger, setup_logging
from forms_approval.routers import admin, forms, telegram_webhook, visitor
from forms_approval.services.reconciler_service import reconcile_all
from forms_approval.services.schema_service import ensure_schema

setup_logging(settings.log_level)

app = FastAPI(
    title="Forms Approval API",
    description="Relays form submissions to Telegram and redirects visitors on operator decisions",
    version="5.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(forms.router)
app.include_router(visitor.router)
app.include_router(telegram_webhook.router)
app.include_router(admin.router)

logger = get_logger("main")
reconcile_logger = get_logger("reconcile_worker")
_reconcile_worker_task: asyncio.Task | None = None


def _running_under_pytest() -> bool:
    return bool(os.environ.get("PYTEST_CURRENT_TEST"))


def _is_reconcile_worker_enabled() -> bool:
    if _running_under_pytest():
        return False
    return settings.reconcile_worker_enabled and settings.telegram_configured


def _run_reconcile_once() -> dict:
    db = SessionLocal()
    try:
        return reconcile_all(db, get_store(settings), get_telegram(settings), settings)
    finally:
        db.close()


async def _reconcile_worker_loop() -> None:
    interval_seconds = max(settings.reconcile_interval_seconds, 1.0)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            await asyncio.to_thread(_run_reconcile_once)
        except asyncio.CancelledError:
            break
        except Exception as exc:
            reconcile_logger.error(
                "Reconcile worker loop failed",
                extra={"context": {"error": str(exc)}},
            )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(exc.message, extra={"context": {"path": request.url.path}})
    return JSONResponse(status_code=500, content={"detail": "Storage unavailable"})


@app.on_event("startup")
async def prepare_schema() -> None:
    if _running_under_pytest():
        return
    ensure_schema(engine)


@app.on_event("startup")
async def start_reconcile_worker() -> None:
    global _reconcile_worker_task
    if not _is_reconcile_worker_enabled():
        return
    if _reconcile_worker_task is None or _reconcile_worker_task.done():
        _reconcile_worker_task = asyncio.create_task(_reconcile_worker_loop())
        reconcile_logger.info("Reconcile worker started")


@app.on_event("shutdown")
async def stop_reconcile_worker() -> None:
    global _reconcile_worker_task
    if _reconcile_worker_task is None:
        return
    _reconcile_worker_task.cancel()
    try:
        await _reconcile_worker_task
    except asyncio.CancelledError:
        pass
    _reconcile_worker_task = None


@app.get("/health")
async def health():
    return {"status": "ok"}
