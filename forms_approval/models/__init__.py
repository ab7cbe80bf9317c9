from forms_approval.models.form_entry import FormEntry
from forms_approval.models.submission import Submission
from forms_approval.models.visitor_session import VisitorSession

__all__ = [
    "FormEntry",
    "Submission",
    "VisitorSession",
]
