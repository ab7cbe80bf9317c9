"""Endpoints polled by the visitor's browser."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from forms_approval.config import Settings
from forms_approval.database import get_db
from forms_approval.dependencies import get_session_id, get_settings, get_store, get_visitor_identity
from forms_approval.schemas.visitor import HeartbeatResponse, PageViewRequest, RedirectResponse
from forms_approval.services import session_tracker
from forms_approval.services.decision_service import poll
from forms_approval.services.keyed_store import KeyedStore

router = APIRouter(prefix="/visitor", tags=["visitor"])


def ensure_session_cookie(request: Request, response: Response, app_settings: Settings) -> str:
    session_id = request.cookies.get(app_settings.session_cookie_name)
    if not session_id:
        session_id = str(uuid.uuid4())
        response.set_cookie(
            app_settings.session_cookie_name,
            session_id,
            max_age=app_settings.session_cookie_max_age,
            path="/",
        )
    return session_id


@router.post("/page-view", response_model=RedirectResponse)
def page_view(
    body: PageViewRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    store: KeyedStore = Depends(get_store),
    visitor_identity: str = Depends(get_visitor_identity),
    app_settings: Settings = Depends(get_settings),
):
    """Record the page the visitor is on and hand back a pending redirect."""
    session_id = ensure_session_cookie(request, response, app_settings)
    redirect = poll(db, store, session_id, visitor_identity, current_page=session_tracker.page_name(body.path))
    return RedirectResponse(redirect=redirect or False, session_id=session_id)


@router.post("/heartbeat", response_model=HeartbeatResponse)
def heartbeat(
    db: Session = Depends(get_db),
    session_id: Optional[str] = Depends(get_session_id),
):
    if not session_id:
        raise HTTPException(status_code=400, detail="Invalid session")

    session_tracker.touch(db, session_id)
    db.commit()
    return HeartbeatResponse(success=True, message="Heartbeat updated")


@router.post("/check-redirect", response_model=RedirectResponse)
def check_redirect(
    db: Session = Depends(get_db),
    store: KeyedStore = Depends(get_store),
    session_id: Optional[str] = Depends(get_session_id),
    visitor_identity: str = Depends(get_visitor_identity),
):
    redirect = poll(db, store, session_id, visitor_identity)
    return RedirectResponse(redirect=redirect or False, session_id=session_id)
