from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from forms_approval.config import Settings
from forms_approval.database import get_db
from forms_approval.dependencies import get_settings, get_store, get_telegram, get_visitor_identity
from forms_approval.errors import ValidationError
from forms_approval.logging_config import get_logger
from forms_approval.routers.visitor import ensure_session_cookie
from forms_approval.schemas.forms import FormSubmissionRequest, FormSubmissionResponse
from forms_approval.services import session_tracker
from forms_approval.services.decision_service import poll
from forms_approval.services.keyed_store import KeyedStore
from forms_approval.services.submission_service import process_submission
from forms_approval.services.telegram_service import TelegramService

logger = get_logger("forms")

router = APIRouter(prefix="/forms", tags=["forms"])


@router.post("/submissions", response_model=FormSubmissionResponse)
def submit_form(
    body: FormSubmissionRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    store: KeyedStore = Depends(get_store),
    telegram: Optional[TelegramService] = Depends(get_telegram),
    visitor_identity: str = Depends(get_visitor_identity),
    app_settings: Settings = Depends(get_settings),
):
    """Form host hook, called once per completed submission."""
    session_id = ensure_session_cookie(request, response, app_settings)
    logger.info(
        f"Processing form ID {body.form_id}",
        extra={"context": {"entry_id": body.entry_id, "session_id": session_id}},
    )

    try:
        outcome = process_submission(
            db,
            store,
            telegram,
            app_settings,
            session_id=session_id,
            form_id=body.form_id,
            entry_id=body.entry_id,
            fields=[field.model_dump() for field in body.fields],
            form_settings=body.form_settings,
            current_page=session_tracker.page_name(body.page) if body.page else None,
        )
    except ValidationError as e:
        logger.info(e.message, extra={"context": {"session_id": session_id}})
        raise HTTPException(status_code=422, detail=e.message)

    if outcome is None:
        return FormSubmissionResponse(success=False, message="Form not configured for approval")

    redirect = poll(db, store, session_id, visitor_identity)
    return FormSubmissionResponse(
        success=True,
        submission_id=outcome.submission_id,
        message="Submission received",
        redirect=redirect,
    )
