from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


BOOK_FLIGHT = "BookFlight"
GET_WEATHER = "GetWeather"
CANCEL = "Cancel"
HELP = "Help"
NONE_INTENT = "None"

KNOWN_INTENTS = (BOOK_FLIGHT, GET_WEATHER, CANCEL, HELP, NONE_INTENT)

# Canonical entity names every recognizer maps onto
ENTITY_NAMES = ("origin", "destination", "travel_date", "return_date", "round_trip")


@dataclass(frozen=True)
class RecognizerResult:
    """
    What the recognizer made of one utterance. Produced fresh per turn.
    """
    top_intent: str = NONE_INTENT
    entities: Mapping[str, Any] = field(default_factory=dict)
    score: float = 0.0
    available: bool = True

    def __post_init__(self):
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"score must be within [0, 1], got {self.score}")
        object.__setattr__(self, "entities", MappingProxyType(dict(self.entities)))

    @classmethod
    def unavailable(cls):
        return cls(top_intent=NONE_INTENT, entities={}, score=0.0, available=False)

    def intent_above(self, threshold: float) -> str:
        if self.top_intent == NONE_INTENT or self.score < threshold:
            return NONE_INTENT
        return self.top_intent


TRUE_WORDS = {"true", "yes", "1"}


def clean_entities(raw) -> dict:
    """
    Keep the canonical entities a backend returned in a usable shape:
    non-empty strings for cities and dates, a real bool for round_trip.
    """
    if not isinstance(raw, Mapping):
        return {}

    entities = {}
    for name in ENTITY_NAMES:
        value = raw.get(name)
        if name == "round_trip":
            if isinstance(value, str):
                value = value.strip().lower() in TRUE_WORDS
            if value is True:
                entities[name] = True
            continue
        if isinstance(value, str) and value.strip():
            entities[name] = value.strip()
    return entities
