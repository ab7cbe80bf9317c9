from typing import Optional, Union

from pydantic import BaseModel


class PageViewRequest(BaseModel):
    path: str = "/"


class HeartbeatResponse(BaseModel):
    success: bool
    message: str


class RedirectResponse(BaseModel):
    success: bool = True
    redirect: Union[str, bool] = False
    session_id: Optional[str] = None
