"""
Turn orchestration.

For every inbound turn the engine, holding that conversation's lock:

1. loads the conversation (creating it with the root dialog on first use)
2. runs the recognizer and checks for interruptions; cancel pops back to
   the root frame ahead of any pending prompt
3. answers help in place and re-asks the pending question
4. otherwise lets the top frame step, pushing sub-dialogs it begins and
   handing completed results down to the frame underneath
5. persists the conversation and returns the messages for the turn

Faults raised by dialogs never leave the engine: the conversation is
reset to its root frame and the user gets an apology.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from dialogs.base import BEGIN, WAITING, DialogSet, Outcome, TurnContext
from dialogs.booking_dialog import BookingDialog
from dialogs.errors import EmptyStackError, UnhandledStepFault
from dialogs.main_dialog import MainDialog
from dialogs.messages.message_loader import load_help_message
from dialogs.prompts import ConfirmPrompt, DatePrompt, TextPrompt
from recognizers.base import RecognitionUnavailable, TimedRecognizer, build_recognizer
from recognizers.result import CANCEL, HELP, RecognizerResult
from session.context import Conversation, ConversationState
from session.locks import ConversationLocks

logger = logging.getLogger(__name__)


CANCEL_WORDS = {"cancel", "quit", "stop", "nevermind", "never mind"}
HELP_WORDS = {"help", "?"}

CANCEL_MESSAGE = "Cancelling..."
APOLOGY_MESSAGES = (
    "Sorry, something went wrong on my side.",
    "Let's start over. What can I help you with?",
)

# Upper bound on begin/complete hand-offs within one turn
MAX_TRANSITIONS = 50


@dataclass
class TurnResult:
    messages: List[str] = field(default_factory=list)
    state: ConversationState = ConversationState.IDLE
    duplicate: bool = False
    faulted: bool = False


def default_dialogs():
    return DialogSet([
        MainDialog(),
        BookingDialog(),
        TextPrompt(),
        DatePrompt(),
        ConfirmPrompt(),
    ])


class DialogEngine:
    def __init__(self, dialogs, recognizer, store, root_dialog_id="main",
                 threshold=0.5, max_retries=2, locks=None, help_text=None):
        if root_dialog_id not in dialogs:
            raise ValueError(f"root dialog {root_dialog_id!r} is not in the dialog set")
        self.dialogs = dialogs
        self.recognizer = recognizer
        self.store = store
        self.root_dialog_id = root_dialog_id
        self.threshold = threshold
        self.max_retries = max_retries
        self.locks = locks or ConversationLocks()
        self.help_text = help_text or load_help_message()

    @classmethod
    def from_settings(cls, settings, store, recognizer=None):
        if recognizer is None:
            recognizer = build_recognizer(settings)
        return cls(
            dialogs=default_dialogs(),
            recognizer=TimedRecognizer(recognizer, timeout=settings.recognizer_timeout),
            store=store,
            threshold=settings.recognizer_threshold,
            max_retries=settings.prompt_max_retries,
        )

    # -------------------------------------------------
    # Public API
    # -------------------------------------------------

    def process_turn(self, turn) -> TurnResult:
        cid = turn.conversation_id

        with self.locks.hold(cid):
            conversation = self._load(cid)

            if conversation.has_seen(turn.turn_id):
                logger.info("Ignoring duplicate turn %s for conversation %s", turn.turn_id, cid)
                return TurnResult(state=conversation.state, duplicate=True)

            try:
                messages = self._run(conversation, turn)
            except (UnhandledStepFault, EmptyStackError):
                logger.exception("Turn failed for conversation %s, resetting to root", cid)
                conversation = self._fresh(cid)
                conversation.remember(turn.turn_id)
                self.store.set(conversation)
                return TurnResult(
                    messages=list(APOLOGY_MESSAGES),
                    state=conversation.state,
                    faulted=True,
                )

            conversation.remember(turn.turn_id)
            conversation.touch()
            self.store.set(conversation)
            return TurnResult(messages=messages, state=conversation.state)

    def start_conversation(self, conversation_id) -> Conversation:
        with self.locks.hold(conversation_id):
            conversation = self._load(conversation_id)
            self.store.set(conversation)
            return conversation

    def reset(self, conversation_id):
        with self.locks.hold(conversation_id):
            self.store.delete(conversation_id)

    def get_conversation(self, conversation_id):
        return self.store.get(conversation_id)

    # -------------------------------------------------
    # Turn processing
    # -------------------------------------------------

    def _load(self, conversation_id):
        conversation = self.store.get(conversation_id)
        if conversation is None or conversation.stack.top() is None:
            conversation = self._fresh(conversation_id)
        return conversation

    def _fresh(self, conversation_id):
        self.store.delete(conversation_id)
        conversation = Conversation.create(conversation_id, self.root_dialog_id)
        conversation.stack.root().state = "ready"
        return conversation

    def _recognize(self, text) -> RecognizerResult:
        try:
            return self.recognizer.recognize(text)
        except RecognitionUnavailable as e:
            logger.warning("Recognizer unavailable: %s", e)
        except Exception:
            logger.warning("Recognizer raised, continuing without intents", exc_info=True)
        return RecognizerResult.unavailable()

    def _interruption_intent(self, text, result):
        normalized = " ".join((text or "").lower().split()).rstrip(".!")
        if normalized in CANCEL_WORDS:
            return CANCEL
        if normalized in HELP_WORDS:
            return HELP
        return result.intent_above(self.threshold)

    def _run(self, conversation, turn):
        result = self._recognize(turn.text)
        intent = self._interruption_intent(turn.text, result)

        ctx = TurnContext(
            conversation=conversation,
            turn=turn,
            recognizer_result=result,
            intent=intent,
            max_retries=self.max_retries,
            store=self.store,
        )

        stack = conversation.stack
        top = stack.top()
        if top is None:
            raise EmptyStackError(f"conversation {conversation.conversation_id} has no frames")
        dialog = self._find(ctx, top)

        if intent == CANCEL and dialog.allows_cancellation and len(stack) > 1:
            self._cancel_to_root(ctx)
            conversation.state = ConversationState.IDLE
            return ctx.messages

        if intent == HELP:
            ctx.send(self.help_text)
            self._invoke(ctx, top, dialog.reprompt)
        else:
            outcome = self._invoke(ctx, top, dialog.step)
            self._drive(ctx, outcome)

        conversation.state = self._settle(ctx)
        return ctx.messages

    def _cancel_to_root(self, ctx):
        stack = ctx.conversation.stack
        while len(stack) > 1:
            frame = stack.pop()
            logger.debug("Cancelled frame %s (%s)", frame.frame_id, frame.dialog_id)

        ctx.conversation.slots.clear()
        ctx.send(CANCEL_MESSAGE)

        root = stack.top()
        self._invoke(ctx, root, self._find(ctx, root).cancelled)

    def _drive(self, ctx, outcome: Outcome):
        stack = ctx.conversation.stack

        for _ in range(MAX_TRANSITIONS):
            if outcome.kind == WAITING:
                return

            if outcome.kind == BEGIN:
                child = self._find(ctx, outcome.dialog_id)
                frame = stack.push(child.new_frame(outcome.options))
                outcome = self._invoke(ctx, frame, child.begin)
                continue

            # complete / exhausted: hand the outcome to the parent frame
            if len(stack) <= 1:
                raise EmptyStackError("the root dialog cannot complete")
            stack.pop()
            parent = stack.top()
            outcome = self._invoke(ctx, parent, self._find(ctx, parent).resume, outcome)

        raise UnhandledStepFault(
            ctx.conversation.conversation_id,
            stack.top().dialog_id,
            f"more than {MAX_TRANSITIONS} dialog transitions in one turn",
        )

    def _settle(self, ctx):
        if len(ctx.conversation.stack) > 1:
            return ConversationState.AWAITING_INPUT
        if ctx.completed:
            return ConversationState.COMPLETED
        return ConversationState.IDLE

    def _find(self, ctx, frame_or_id):
        dialog_id = getattr(frame_or_id, "dialog_id", frame_or_id)
        try:
            return self.dialogs.find(dialog_id)
        except KeyError as e:
            raise UnhandledStepFault(
                ctx.conversation.conversation_id, dialog_id, "unknown dialog"
            ) from e

    def _invoke(self, ctx, frame, fn, *args):
        try:
            return fn(ctx, frame, *args)
        except (UnhandledStepFault, EmptyStackError):
            raise
        except Exception as e:
            raise UnhandledStepFault(ctx.conversation.conversation_id, frame.dialog_id) from e
