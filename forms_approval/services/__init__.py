from forms_approval.services.state_machine import (
    InvalidTransitionError,
    MessageEvent,
    MessageState,
    can_transition,
    edit_failed,
    message_sent,
    state_for,
    transition,
    verify_failed,
)
