"""Operational endpoints: webhook registration, schema upkeep, reconciliation trigger."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from forms_approval.config import Settings
from forms_approval.database import get_db
from forms_approval.dependencies import get_settings, get_store, get_telegram
from forms_approval.logging_config import get_logger
from forms_approval.services.keyed_store import KeyedStore
from forms_approval.services.reconciler_service import reconcile_all
from forms_approval.services.schema_service import check_tables, drop_schema, ensure_schema
from forms_approval.services.telegram_service import TelegramService

logger = get_logger("admin")

router = APIRouter(prefix="/admin", tags=["admin"])


class AdminResponse(BaseModel):
    success: bool
    message: str
    details: Optional[dict] = None


def require_admin_token(
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    app_settings: Settings = Depends(get_settings),
) -> None:
    expected = app_settings.admin_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="ADMIN_TOKEN not configured",
        )
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


def _require_telegram(telegram: Optional[TelegramService]) -> TelegramService:
    if telegram is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Telegram bot token not configured")
    return telegram


@router.post("/telegram/webhook", response_model=AdminResponse, dependencies=[Depends(require_admin_token)])
def set_telegram_webhook(
    telegram: Optional[TelegramService] = Depends(get_telegram),
    app_settings: Settings = Depends(get_settings),
):
    telegram = _require_telegram(telegram)
    webhook_url = f"{(app_settings.public_url or app_settings.site_url).rstrip('/')}/telegram-webhook"
    result = telegram.set_webhook(webhook_url)
    if result.get("ok"):
        logger.info(f"Telegram webhook set to: {webhook_url}")
        return AdminResponse(success=True, message="Telegram webhook set successfully", details={"url": webhook_url})

    description = result.get("description") or "Unknown error"
    logger.error(f"Failed to set Telegram webhook: {description}")
    return AdminResponse(success=False, message=f"Failed to set Telegram webhook: {description}")


@router.delete("/telegram/webhook", response_model=AdminResponse, dependencies=[Depends(require_admin_token)])
def clear_telegram_webhook(telegram: Optional[TelegramService] = Depends(get_telegram)):
    telegram = _require_telegram(telegram)
    result = telegram.delete_webhook()
    if result.get("ok"):
        logger.info("Cleared Telegram webhook")
        return AdminResponse(success=True, message="Telegram webhook cleared")
    return AdminResponse(success=False, message=f"Failed to clear Telegram webhook: {result.get('description')}")


@router.get("/schema", response_model=AdminResponse, dependencies=[Depends(require_admin_token)])
def schema_status(db: Session = Depends(get_db)):
    if check_tables(db.connection()):
        return AdminResponse(success=True, message="Tables OK")
    return AdminResponse(
        success=False,
        message="Database tables are missing or incorrect. Run POST /admin/schema to fix.",
    )


@router.post("/schema", response_model=AdminResponse, dependencies=[Depends(require_admin_token)])
def schema_upgrade(db: Session = Depends(get_db)):
    ensure_schema(db.get_bind())
    return AdminResponse(success=True, message="Schema is up to date")


@router.post("/reconcile", response_model=AdminResponse, dependencies=[Depends(require_admin_token)])
def trigger_reconcile(
    db: Session = Depends(get_db),
    store: KeyedStore = Depends(get_store),
    telegram: Optional[TelegramService] = Depends(get_telegram),
    app_settings: Settings = Depends(get_settings),
):
    """Called by the scheduler, nominally once a minute."""
    if telegram is None or not app_settings.telegram_configured:
        logger.info("No Telegram settings for status update")
        return AdminResponse(success=False, message="Telegram not configured")

    summary = reconcile_all(db, store, telegram, app_settings)
    return AdminResponse(success=True, message="Reconciliation finished", details=summary)


@router.delete("/data", response_model=AdminResponse, dependencies=[Depends(require_admin_token)])
def uninstall(db: Session = Depends(get_db), store: KeyedStore = Depends(get_store)):
    """Drop the approval tables and every keyed entry."""
    db.close()
    drop_schema(db.get_bind())
    purged = store.purge()
    return AdminResponse(success=True, message="All approval data removed", details={"keys": purged})
