import logging
from dataclasses import asdict, dataclass
from typing import Optional

from dialogs.base import Dialog, Outcome
from dialogs.prompts import parse_date, validate_city

logger = logging.getLogger(__name__)


REQUIRED_FIELDS = ("origin", "destination", "travel_date")
BOOKING_FIELDS = REQUIRED_FIELDS + ("return_date",)

QUESTIONS = {
    "origin": "From what city will you be travelling?",
    "destination": "To what city would you like to travel?",
    "travel_date": "On what date would you like to travel?",
    "return_date": "On what date will you return?",
}

RETRY_QUESTIONS = {
    "origin": "I need a city name. From what city will you be travelling?",
    "destination": "I need a city name. To what city would you like to travel?",
    "travel_date": "I need a date that isn't in the past, like \"tomorrow\" or \"March 22\". "
                   "On what date would you like to travel?",
    "return_date": "I need a date on or after your travel date. On what date will you return?",
}


@dataclass
class BookingDetails:
    origin: str
    destination: str
    travel_date: str
    return_date: Optional[str] = None

    def to_dict(self):
        return asdict(self)

    def describe(self):
        text = f"to {self.destination} from {self.origin} on {self.travel_date}"
        if self.return_date:
            text += f", returning on {self.return_date}"
        return text


class BookingDialog(Dialog):
    """
    Collects origin, destination and travel date (plus a return date for
    round trips), skipping whatever the recognizer already extracted,
    then asks the user to confirm.

    Completes with BookingDetails, or None when the user declines or a
    required answer could not be obtained.
    """

    dialog_id = "booking"

    def begin(self, ctx, frame):
        ctx.slots.clear(BOOKING_FIELDS)
        frame.local_slots["skipped"] = []

        entities = frame.options.get("entities") or {}
        self._prefill(ctx, frame, entities)
        return self._next(ctx, frame)

    def step(self, ctx, frame):
        # Only on top between prompts; pick up where we left off.
        return self._next(ctx, frame)

    def resume(self, ctx, frame, outcome):
        asking = frame.local_slots.get("asking")

        if frame.state == "confirm":
            if outcome.is_exhausted:
                ctx.send("Sorry, I couldn't get that information. Let's start over.")
                return self._finish(ctx, frame, None)
            if outcome.result:
                return self._finish(ctx, frame, self._details(ctx))
            return self._finish(ctx, frame, None)

        if outcome.is_exhausted:
            if asking == "return_date":
                logger.info("Return date prompt exhausted, booking one-way")
                frame.local_slots["round_trip"] = False
                frame.local_slots["skipped"].append(asking)
                ctx.send("No problem, I'll book it as a one-way trip.")
                return self._next(ctx, frame)

            ctx.send("Sorry, I couldn't get that information. Let's start over.")
            return self._finish(ctx, frame, None)

        ctx.slots.fill(asking, outcome.result)
        return self._next(ctx, frame)

    # -------------------------------------------------
    # Helpers
    # -------------------------------------------------

    def fields_for(self, frame):
        if frame.local_slots.get("round_trip"):
            return BOOKING_FIELDS
        return REQUIRED_FIELDS

    def _prefill(self, ctx, frame, entities):
        # Recognizer output is untrusted: only strings can fill a slot
        def text_entity(name):
            value = entities.get(name)
            return value if isinstance(value, str) else None

        for name in ("origin", "destination"):
            ok, value = validate_city(text_entity(name), ctx, {})
            if ok:
                ctx.slots.fill(name, value)

        travel_date = parse_date(text_entity("travel_date"), ctx.today)
        if travel_date:
            ctx.slots.fill("travel_date", travel_date)

        return_entity = text_entity("return_date")
        frame.local_slots["round_trip"] = entities.get("round_trip") is True or bool(return_entity)

        if travel_date and return_entity:
            return_date = parse_date(return_entity, ctx.today, min_date=travel_date)
            if return_date:
                ctx.slots.fill("return_date", return_date)

    def _next(self, ctx, frame):
        skipped = frame.local_slots.get("skipped", [])
        missing = [
            name for name in ctx.slots.missing(self.fields_for(frame))
            if name not in skipped
        ]

        if missing:
            name = missing[0]
            frame.state = f"ask_{name}"
            frame.local_slots["asking"] = name
            return self._prompt_for(ctx, name)

        frame.state = "confirm"
        frame.local_slots["asking"] = None
        return Outcome.begin(
            "confirm_prompt",
            field="confirmation",
            prompt=f"Please confirm, I have you traveling {self._details(ctx).describe()}. "
                   "Is this correct?",
        )

    def _prompt_for(self, ctx, name):
        if name in ("origin", "destination"):
            return Outcome.begin(
                "text_prompt",
                field=name,
                prompt=QUESTIONS[name],
                retry_prompt=RETRY_QUESTIONS[name],
                validator="city",
            )

        options = dict(
            field=name,
            prompt=QUESTIONS[name],
            retry_prompt=RETRY_QUESTIONS[name],
        )
        if name == "return_date":
            options["min_date"] = ctx.slots.get("travel_date")
        return Outcome.begin("date_prompt", **options)

    def _details(self, ctx):
        return BookingDetails(
            origin=ctx.slots.get("origin"),
            destination=ctx.slots.get("destination"),
            travel_date=ctx.slots.get("travel_date"),
            return_date=ctx.slots.get("return_date"),
        )

    def _finish(self, ctx, frame, details):
        ctx.slots.clear(BOOKING_FIELDS)
        frame.state = "done"
        return Outcome.complete(details)
