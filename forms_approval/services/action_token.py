from dataclasses import dataclass

from forms_approval.errors import ValidationError

TOKEN_PREFIX = "action"
DELETE_VERB = "delete"


@dataclass(frozen=True)
class ActionToken:
    """Inline button payload: ``action:<verb>:<session_id>``."""

    verb: str
    session_id: str

    @property
    def is_delete(self) -> bool:
        return self.verb == DELETE_VERB

    def encode(self) -> str:
        return f"{TOKEN_PREFIX}:{self.verb}:{self.session_id}"

    @classmethod
    def decode(cls, raw: str) -> "ActionToken":
        parts = (raw or "").split(":")
        if len(parts) != 3 or parts[0] != TOKEN_PREFIX:
            raise ValidationError(f"Invalid callback data: {raw}")
        verb, session_id = parts[1].strip(), parts[2].strip()
        if not verb or not session_id:
            raise ValidationError(f"Invalid callback data: {raw}")
        return cls(verb=verb, session_id=session_id)

    @classmethod
    def for_button(cls, button_name: str, session_id: str) -> "ActionToken":
        return cls(verb=button_name.strip().lower(), session_id=session_id)
