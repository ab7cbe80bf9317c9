from typing import Any, Optional

from pydantic import BaseModel, Field


class FormField(BaseModel):
    name: str = ""
    value: Optional[Any] = None
    type: str = "text"


class FormSubmissionRequest(BaseModel):
    entry_id: Optional[int] = None
    form_id: int
    fields: list[FormField] = Field(default_factory=list)
    form_settings: dict[str, Any] = Field(default_factory=dict)
    page: Optional[str] = None  # path the form was submitted from


class FormSubmissionResponse(BaseModel):
    success: bool
    submission_id: Optional[int] = None
    message: Optional[str] = None
    redirect: Optional[str] = None
