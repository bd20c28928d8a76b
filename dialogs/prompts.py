"""
Single-field prompts.

A prompt asks one question and keeps asking until the answer passes its
validator or the retry budget runs out:

    waiting -> validating -> done
                   |
                   +-> retrying -> validating -> ...
                   |
                   +-> done (exhausted)

On success the prompt completes with the validated value. When the user
fails validation more than `max_retries` times the prompt ends with an
`exhausted` outcome carrying PromptExhausted, and the owning dialog
decides what happens next.
"""

import re
import string
from datetime import date, datetime

import dateparser

from dialogs.base import Dialog, Outcome
from dialogs.errors import PromptExhausted


WAITING = "waiting"
VALIDATING = "validating"
RETRYING = "retrying"
DONE = "done"

DEFAULT_RETRY_PREFIX = "Sorry, I didn't understand that. "

YES_WORDS = {
    "yes", "y", "yeah", "yep", "yup", "sure", "ok", "okay",
    "correct", "confirm", "right", "absolutely",
}
NO_WORDS = {"no", "n", "nope", "nah", "wrong", "incorrect", "negative"}

CITY_PATTERN = re.compile(r"^[^\W\d_]+(?:[ \-'.]+[^\W\d_]+)*\.?$")


# -------------------------------------------------
# Validators: (text, ctx, options) -> (ok, value)
# -------------------------------------------------

def validate_text(text, ctx, options):
    value = (text or "").strip()
    return bool(value), value


def validate_city(text, ctx, options):
    value = " ".join((text or "").split())
    if not value or not CITY_PATTERN.match(value):
        return False, None
    return True, value


def parse_date(value, today: date, min_date=None):
    """
    Parse a user supplied date relative to `today`.
    Returns an ISO date string, or None when unparseable or too early.
    """
    if not value:
        return None

    base = datetime(today.year, today.month, today.day, 12, 0)
    parsed = dateparser.parse(
        str(value),
        languages=["en"],
        settings={
            "PREFER_DATES_FROM": "future",
            "RELATIVE_BASE": base,
            "RETURN_AS_TIMEZONE_AWARE": False,
        },
    )
    if parsed is None:
        return None

    result = parsed.date()
    if result < today:
        return None
    if min_date and result < date.fromisoformat(str(min_date)):
        return None
    return result.isoformat()


def validate_date(text, ctx, options):
    value = parse_date(text, ctx.today, options.get("min_date"))
    return value is not None, value


def parse_confirmation(text):
    words = (text or "").lower().translate(str.maketrans("", "", string.punctuation)).split()
    if not words:
        return None
    phrase = " ".join(words)
    for candidate in (phrase, words[0]):
        if candidate in YES_WORDS:
            return True
        if candidate in NO_WORDS:
            return False
    return None


def validate_confirmation(text, ctx, options):
    value = parse_confirmation(text)
    return value is not None, value


VALIDATORS = {
    "text": validate_text,
    "city": validate_city,
    "date": validate_date,
    "confirm": validate_confirmation,
}


def register_validator(name, fn):
    VALIDATORS[name] = fn


# -------------------------------------------------
# Prompt dialogs
# -------------------------------------------------

class Prompt(Dialog):
    """
    Options understood by every prompt:
      field        slot name, used in PromptExhausted
      prompt       the question
      retry_prompt the question after an invalid answer
      validator    key into VALIDATORS
      max_retries  overrides the turn's retry budget
    """

    default_validator = "text"

    def begin(self, ctx, frame):
        frame.state = WAITING
        frame.local_slots["failed_attempts"] = 0
        ctx.send(frame.options.get("prompt"))
        return Outcome.waiting()

    def step(self, ctx, frame):
        options = frame.options
        frame.state = VALIDATING

        validator = VALIDATORS[options.get("validator") or self.default_validator]
        ok, value = validator(ctx.text, ctx, options)
        if ok:
            frame.state = DONE
            return Outcome.complete(value)

        attempts = frame.local_slots.get("failed_attempts", 0) + 1
        frame.local_slots["failed_attempts"] = attempts

        max_retries = options.get("max_retries")
        if max_retries is None:
            max_retries = ctx.max_retries

        if attempts > max_retries:
            frame.state = DONE
            return Outcome.exhausted(PromptExhausted(options.get("field"), attempts))

        frame.state = RETRYING
        ctx.send(self.retry_text(options))
        return Outcome.waiting()

    def reprompt(self, ctx, frame):
        ctx.send(frame.options.get("prompt"))

    def retry_text(self, options):
        return options.get("retry_prompt") or DEFAULT_RETRY_PREFIX + (options.get("prompt") or "")


class TextPrompt(Prompt):
    dialog_id = "text_prompt"
    default_validator = "text"


class DatePrompt(Prompt):
    dialog_id = "date_prompt"
    default_validator = "date"


class ConfirmPrompt(Prompt):
    dialog_id = "confirm_prompt"
    default_validator = "confirm"

    def retry_text(self, options):
        if options.get("retry_prompt"):
            return options["retry_prompt"]
        return "Please answer yes or no. " + (options.get("prompt") or "")
