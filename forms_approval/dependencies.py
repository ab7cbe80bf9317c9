"""FastAPI dependencies shared by the routers."""

from typing import Optional

from fastapi import Depends, Request

from forms_approval.config import Settings, settings
from forms_approval.services.keyed_store import KeyedStore, get_redis_client
from forms_approval.services.telegram_service import TelegramService
from forms_approval.services.visitor_identity import resolve_visitor_identity


def get_settings() -> Settings:
    return settings


def get_store(app_settings: Settings = Depends(get_settings)) -> KeyedStore:
    return KeyedStore(get_redis_client(app_settings.redis_url, app_settings.redis_socket_timeout_seconds))


def get_telegram(app_settings: Settings = Depends(get_settings)) -> Optional[TelegramService]:
    if not app_settings.telegram_bot_token:
        return None
    return TelegramService(app_settings.telegram_bot_token, timeout=app_settings.telegram_timeout_seconds)


def get_session_id(request: Request, app_settings: Settings = Depends(get_settings)) -> Optional[str]:
    return request.cookies.get(app_settings.session_cookie_name) or None


def get_visitor_identity(request: Request) -> str:
    client_host = request.client.host if request.client else None
    return resolve_visitor_identity(request.headers, client_host)
