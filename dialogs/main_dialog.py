import logging

from dialogs.base import Dialog, Outcome
from recognizers.result import BOOK_FLIGHT, CANCEL, GET_WEATHER

logger = logging.getLogger(__name__)


class MainDialog(Dialog):
    """
    Root dialog. Routes recognized intents and receives the result of
    every booking. Never completes and cannot be cancelled.
    """

    dialog_id = "main"
    allows_cancellation = False

    def begin(self, ctx, frame):
        frame.state = "ready"
        return Outcome.waiting()

    def step(self, ctx, frame):
        result = ctx.recognizer_result

        if ctx.intent == CANCEL:
            ctx.send("There's nothing to cancel right now.")
            return Outcome.waiting()

        if not result.available:
            # No NLU: every request is treated as a booking request.
            logger.info("Recognizer unavailable, starting booking without pre-fill")
            frame.state = "booking"
            return Outcome.begin("booking", entities={})

        if ctx.intent == BOOK_FLIGHT:
            frame.state = "booking"
            return Outcome.begin("booking", entities=dict(result.entities))

        if ctx.intent == GET_WEATHER:
            ctx.send("Weather lookups aren't available yet.")
            return Outcome.waiting()

        ctx.send(
            "Sorry, I didn't get that. Please try asking in a different way "
            f"(intent was {result.top_intent})."
        )
        return Outcome.waiting()

    def resume(self, ctx, frame, outcome):
        frame.state = "ready"
        booking = outcome.result

        if booking is None:
            ctx.send("OK, I won't book that. What else can I do for you?")
            return Outcome.waiting()

        ctx.send(f"I have you booked {booking.describe()}.")
        if ctx.store is not None:
            ctx.store.add_booking(ctx.conversation.conversation_id, booking)
        ctx.completed = True
        ctx.send("What else can I do for you?")
        return Outcome.waiting()

    def cancelled(self, ctx, frame):
        frame.state = "ready"
