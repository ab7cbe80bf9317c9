from typing import Optional

from pydantic import BaseModel, model_validator


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    type: str  # private, group, supergroup, channel
    title: Optional[str] = None
    username: Optional[str] = None


class TelegramMessage(BaseModel):
    message_id: int
    date: int
    chat: TelegramChat
    text: Optional[str] = None


class TelegramCallbackQuery(BaseModel):
    id: str
    from_user: Optional[TelegramUser] = None
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None  # callback_data from button

    @model_validator(mode="before")
    @classmethod
    def map_from_user(cls, data):
        # "from" is reserved in Python; also applies when nested in an update
        if isinstance(data, dict) and "from" in data:
            data = dict(data)
            data["from_user"] = data.pop("from")
        return data


class TelegramUpdate(BaseModel):
    update_id: Optional[int] = None
    callback_query: Optional[TelegramCallbackQuery] = None
