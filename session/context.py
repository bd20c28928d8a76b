from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from dialogs.stack import DialogFrame, DialogStack
from session.slots import SlotStore


RECENT_TURN_LIMIT = 50


class ConversationState(str, Enum):
    IDLE = "idle"                      # no frame needs input
    AWAITING_INPUT = "awaiting_input"  # a frame asked a question
    COMPLETED = "completed"            # a booking finished this turn


def utc_now():
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Turn:
    """
    One inbound user message. Never persisted.
    """
    conversation_id: str
    text: str
    timestamp: datetime = field(default_factory=utc_now)
    turn_id: Optional[str] = None


class Conversation:
    """
    Conversation-scoped state.
    Must persist across turns.
    """

    def __init__(self, conversation_id, stack=None, slots=None,
                 state=ConversationState.IDLE, recent_turn_ids=None,
                 created_at=None, updated_at=None):
        self.conversation_id = conversation_id

        # Active dialogs, root at the bottom
        self.stack = stack if stack is not None else DialogStack()

        # Collected booking fields
        self.slots = slots if slots is not None else SlotStore()

        self.state = ConversationState(state)

        # Ids of turns already applied, for duplicate delivery
        self.recent_turn_ids = deque(recent_turn_ids or [], maxlen=RECENT_TURN_LIMIT)

        now = utc_now().isoformat()
        self.created_at = created_at or now
        self.updated_at = updated_at or now

    @classmethod
    def create(cls, conversation_id, root_dialog_id):
        conversation = cls(conversation_id)
        conversation.stack.push(DialogFrame(dialog_id=root_dialog_id))
        return conversation

    def has_seen(self, turn_id) -> bool:
        return turn_id is not None and turn_id in self.recent_turn_ids

    def remember(self, turn_id):
        if turn_id is not None:
            self.recent_turn_ids.append(turn_id)

    def touch(self):
        self.updated_at = utc_now().isoformat()

    def to_dict(self):
        return {
            "conversation_id": self.conversation_id,
            "state": self.state.value,
            "stack": self.stack.to_dict(),
            "slots": self.slots.to_dict(),
            "recent_turn_ids": list(self.recent_turn_ids),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            conversation_id=data["conversation_id"],
            stack=DialogStack.from_dict(data.get("stack")),
            slots=SlotStore.from_dict(data.get("slots")),
            state=data.get("state", ConversationState.IDLE.value),
            recent_turn_ids=data.get("recent_turn_ids"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
