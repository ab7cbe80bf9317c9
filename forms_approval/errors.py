class FormsApprovalError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(FormsApprovalError):
    """Rejected input: empty field set, malformed callback token."""


class RemoteApiError(FormsApprovalError):
    """Telegram call failed: timeout, transport error or an ok=false answer."""

    def __init__(self, method: str, description: str):
        self.method = method
        self.description = description
        super().__init__(f"{method} failed: {description}")


class StoreError(FormsApprovalError):
    """Durable write failed."""
