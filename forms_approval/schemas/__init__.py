from forms_approval.schemas.forms import FormField, FormSubmissionRequest, FormSubmissionResponse
from forms_approval.schemas.telegram import TelegramCallbackQuery, TelegramUpdate
from forms_approval.schemas.visitor import HeartbeatResponse, PageViewRequest, RedirectResponse

__all__ = [
    "FormField",
    "FormSubmissionRequest",
    "FormSubmissionResponse",
    "TelegramCallbackQuery",
    "TelegramUpdate",
    "HeartbeatResponse",
    "PageViewRequest",
    "RedirectResponse",
]
