from enum import Enum
from typing import Optional


class MessageState(str, Enum):
    NO_MESSAGE = "no_message"
    MESSAGE_BOUND = "message_bound"


class MessageEvent(str, Enum):
    SEND = "send"
    VERIFY_FAIL = "verify_fail"
    EDIT_FAIL = "edit_fail"


VALID_TRANSITIONS = {
    (MessageState.NO_MESSAGE, MessageEvent.SEND): MessageState.MESSAGE_BOUND,
    (MessageState.MESSAGE_BOUND, MessageEvent.VERIFY_FAIL): MessageState.NO_MESSAGE,
    (MessageState.MESSAGE_BOUND, MessageEvent.EDIT_FAIL): MessageState.NO_MESSAGE,
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: MessageState, event: MessageEvent):
        self.from_state = from_state
        self.event = event
        super().__init__(f"Invalid transition: {from_state.value} --{event.value}-->")


def state_for(message_id: Optional[int]) -> MessageState:
    return MessageState.MESSAGE_BOUND if message_id else MessageState.NO_MESSAGE


def can_transition(from_state: MessageState, event: MessageEvent) -> bool:
    """Check if transition is valid."""
    return (from_state, event) in VALID_TRANSITIONS


def transition(from_state: MessageState, event: MessageEvent) -> MessageState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, event):
        raise InvalidTransitionError(from_state, event)
    return VALID_TRANSITIONS[(from_state, event)]


def message_sent(current_state: MessageState) -> MessageState:
    return transition(current_state, MessageEvent.SEND)


def verify_failed(current_state: MessageState) -> MessageState:
    return transition(current_state, MessageEvent.VERIFY_FAIL)


def edit_failed(current_state: MessageState) -> MessageState:
    return transition(current_state, MessageEvent.EDIT_FAIL)
