from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from dialogs.errors import PromptExhausted
from dialogs.stack import DialogFrame


WAITING = "waiting"
BEGIN = "begin"
COMPLETE = "complete"
EXHAUSTED = "exhausted"


@dataclass
class Outcome:
    """
    What a dialog asks the engine to do after handling a turn.

    - waiting:   stay on top and wait for the next turn
    - begin:     push `dialog_id` with `options` and start it now
    - complete:  pop this frame, hand `result` to the parent
    - exhausted: pop this prompt frame, hand `error` to the parent
    """
    kind: str
    result: Any = None
    dialog_id: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)
    error: Optional[PromptExhausted] = None

    @classmethod
    def waiting(cls):
        return cls(WAITING)

    @classmethod
    def begin(cls, dialog_id, **options):
        return cls(BEGIN, dialog_id=dialog_id, options=options)

    @classmethod
    def complete(cls, result=None):
        return cls(COMPLETE, result=result)

    @classmethod
    def exhausted(cls, error: PromptExhausted):
        return cls(EXHAUSTED, error=error)

    @property
    def is_waiting(self):
        return self.kind == WAITING

    @property
    def is_exhausted(self):
        return self.kind == EXHAUSTED


class TurnContext:
    """
    Everything a dialog may look at or touch while handling one turn.
    Outbound messages accumulate here and are only released when the
    turn succeeds.
    """

    def __init__(self, conversation, turn, recognizer_result, intent,
                 max_retries=2, store=None):
        self.conversation = conversation
        self.turn = turn
        self.recognizer_result = recognizer_result
        self.intent = intent
        self.max_retries = max_retries
        self.store = store
        self.messages: List[str] = []
        self.completed = False

    @property
    def text(self) -> str:
        return self.turn.text

    @property
    def slots(self):
        return self.conversation.slots

    @property
    def today(self) -> date:
        return self.turn.timestamp.date()

    def send(self, text: str):
        if text:
            self.messages.append(text)


class Dialog:
    """
    A dialog type. Instances are stateless; per-conversation state lives
    in the DialogFrame the engine passes in.
    """

    dialog_id: str = ""
    allows_cancellation: bool = True

    def new_frame(self, options=None) -> DialogFrame:
        return DialogFrame(dialog_id=self.dialog_id, options=dict(options or {}))

    def begin(self, ctx: TurnContext, frame: DialogFrame) -> Outcome:
        raise NotImplementedError

    def step(self, ctx: TurnContext, frame: DialogFrame) -> Outcome:
        raise NotImplementedError

    def resume(self, ctx: TurnContext, frame: DialogFrame, outcome: Outcome) -> Outcome:
        return Outcome.waiting()

    def reprompt(self, ctx: TurnContext, frame: DialogFrame):
        """Re-issue whatever question this frame is waiting on, if any."""

    def cancelled(self, ctx: TurnContext, frame: DialogFrame):
        """Called on the frame left on top after a cancellation."""


class DialogSet:
    def __init__(self, dialogs=()):
        self._dialogs: Dict[str, Dialog] = {}
        for dialog in dialogs:
            self.add(dialog)

    def add(self, dialog: Dialog):
        if not dialog.dialog_id:
            raise ValueError("dialog must have a dialog_id")
        if dialog.dialog_id in self._dialogs:
            raise ValueError(f"duplicate dialog id {dialog.dialog_id!r}")
        self._dialogs[dialog.dialog_id] = dialog
        return dialog

    def find(self, dialog_id) -> Dialog:
        try:
            return self._dialogs[dialog_id]
        except KeyError:
            raise KeyError(f"unknown dialog {dialog_id!r}")

    def __contains__(self, dialog_id):
        return dialog_id in self._dialogs
