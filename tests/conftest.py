"""
Shared fixtures for the dialog engine test suites.
"""

import itertools
import threading
from datetime import datetime, timezone

import pytest

from dialogs.engine import DialogEngine, default_dialogs
from recognizers.base import IntentRecognizer, RecognitionUnavailable
from recognizers.result import NONE_INTENT, RecognizerResult
from session.context import Turn
from session.storage import MemoryConversationStore


# Every turn in the suite happens on this day unless a test says otherwise
NOW = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)


# -------------------------------------------------
# Recognizers
# -------------------------------------------------

class ScriptedRecognizer(IntentRecognizer):
    """Returns canned results keyed by the exact utterance."""

    name = "scripted"

    def __init__(self, responses=None, default=None):
        self.responses = dict(responses or {})
        self.default = default or RecognizerResult(top_intent=NONE_INTENT, score=0.9)
        self.calls = []
        self._lock = threading.Lock()

    def recognize(self, utterance):
        with self._lock:
            self.calls.append(utterance)
        return self.responses.get(utterance, self.default)


class BrokenRecognizer(IntentRecognizer):
    """NLU backend that is always down."""

    name = "broken"

    def __init__(self):
        self.calls = 0

    def recognize(self, utterance):
        self.calls += 1
        raise RecognitionUnavailable("backend returned 503")


def book_flight(score=0.95, **entities):
    return RecognizerResult(top_intent="BookFlight", entities=entities, score=score)


@pytest.fixture
def scripted_recognizer():
    return ScriptedRecognizer({
        "book a flight": book_flight(),
        "book a flight from Paris to Tokyo": book_flight(origin="Paris", destination="Tokyo"),
        "what's the weather like": RecognizerResult(top_intent="GetWeather", score=0.9),
    })


@pytest.fixture
def broken_recognizer():
    return BrokenRecognizer()


# -------------------------------------------------
# Engine
# -------------------------------------------------

@pytest.fixture
def store():
    return MemoryConversationStore()


@pytest.fixture
def make_engine(store, scripted_recognizer):
    def _make(recognizer=None, max_retries=2, threshold=0.5, dialogs=None):
        return DialogEngine(
            dialogs=dialogs or default_dialogs(),
            recognizer=recognizer or scripted_recognizer,
            store=store,
            threshold=threshold,
            max_retries=max_retries,
        )
    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def say():
    """say(engine, text, conversation_id="conv-1", turn_id=None) -> TurnResult"""
    counter = itertools.count(1)

    def _say(engine, text, conversation_id="conv-1", turn_id=None, timestamp=NOW):
        turn = Turn(
            conversation_id=conversation_id,
            text=text,
            timestamp=timestamp,
            turn_id=turn_id or f"turn-{next(counter)}",
        )
        return engine.process_turn(turn)

    return _say
