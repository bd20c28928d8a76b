import logging
from datetime import datetime

from dialogs.messages.message_loader import load_welcome_message
from session.context import Turn, utc_now

logger = logging.getLogger(__name__)


class ActivityError(ValueError):
    """The inbound activity is missing something we need."""


def parse_timestamp(raw):
    if not raw:
        return utc_now()
    try:
        ts = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unreadable activity timestamp %r, using now", raw)
        return utc_now()
    if ts.tzinfo is None:
        return ts.replace(tzinfo=utc_now().tzinfo)
    return ts


def conversation_id_of(activity):
    conversation = activity.get("conversation") or {}
    cid = conversation.get("id") if isinstance(conversation, dict) else None
    if not cid:
        raise ActivityError("activity has no conversation.id")
    return str(cid)


def turn_from_activity(activity) -> Turn:
    text = activity.get("text") or ""
    if not isinstance(text, str):
        raise ActivityError("activity text must be a string")

    return Turn(
        conversation_id=conversation_id_of(activity),
        text=text.strip(),
        timestamp=parse_timestamp(activity.get("timestamp")),
        turn_id=activity.get("id"),
    )


class DialogBot:
    """
    Routes channel activities to handlers by activity type.

    Each handler gets (activity, replies) and returns True to let the
    next handler registered for the same type run.
    """

    def __init__(self, engine, welcome_text=None):
        self.engine = engine
        self.welcome_text = welcome_text or load_welcome_message()

        self.handlers = {
            "message": [self.log_turn, self.on_message],
            "conversationUpdate": [self.log_turn, self.on_members_added],
            "event": [self.log_turn],
        }

    def run(self, activity):
        kind = activity.get("type")
        if not kind or not isinstance(kind, str):
            raise ActivityError("activity has no type")

        handlers = self.handlers.get(kind)
        if handlers is None:
            logger.info("No handler for activity type %r", kind)
            return []

        replies = []
        for handler in handlers:
            if not handler(activity, replies):
                break
        return replies

    # -------------------------------------------------
    # Handlers
    # -------------------------------------------------

    def log_turn(self, activity, replies):
        conversation = activity.get("conversation")
        logger.debug(
            "Activity %s (%s) in conversation %s",
            activity.get("id"),
            activity.get("type"),
            conversation.get("id") if isinstance(conversation, dict) else None,
        )
        return True

    def on_message(self, activity, replies):
        turn = turn_from_activity(activity)
        if not turn.text:
            return True

        result = self.engine.process_turn(turn)
        replies.extend(result.messages)
        return True

    def on_members_added(self, activity, replies):
        members = activity.get("membersAdded") or []
        if not isinstance(members, list) or not all(isinstance(m, dict) for m in members):
            raise ActivityError("membersAdded must be a list of objects")

        recipient = activity.get("recipient")
        bot_id = recipient.get("id") if isinstance(recipient, dict) else None

        for member in members:
            if member.get("id") == bot_id:
                continue
            self.engine.start_conversation(conversation_id_of(activity))
            replies.append(self.welcome_text)
        return True
