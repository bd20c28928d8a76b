import logging

import requests

from recognizers.base import IntentRecognizer, RecognitionUnavailable
from recognizers.result import NONE_INTENT, RecognizerResult, clean_entities

logger = logging.getLogger(__name__)


class LuisRecognizer(IntentRecognizer):
    """
    Flight booking recognizer backed by the LUIS v3 prediction endpoint.

    The LUIS app is expected to expose the BookFlight / GetWeather /
    Cancel intents, `From` and `To` composite entities with an `Airport`
    child, and the prebuilt `datetimeV2` entity.
    """

    name = "luis"

    def __init__(self, application_id, endpoint_key, endpoint_host,
                 slot="production", timeout=5.0, session=None):
        if not (application_id and endpoint_key and endpoint_host):
            raise ValueError("LUIS needs an application id, endpoint key and endpoint host")

        host = endpoint_host
        if not host.startswith("http"):
            host = f"https://{host}"

        self.application_id = application_id
        self.endpoint_key = endpoint_key
        self.url = (
            f"{host.rstrip('/')}/luis/prediction/v3.0/apps/"
            f"{application_id}/slots/{slot}/predict"
        )
        self.timeout = timeout
        self.session = session or requests.Session()

    def recognize(self, utterance):
        try:
            resp = self.session.get(
                self.url,
                params={
                    "subscription-key": self.endpoint_key,
                    "query": utterance,
                    "show-all-intents": "false",
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise RecognitionUnavailable(f"LUIS request failed: {e}") from e

        prediction = data.get("prediction") if isinstance(data, dict) else None
        if not isinstance(prediction, dict):
            raise RecognitionUnavailable("LUIS response has no prediction")

        try:
            return parse_prediction(prediction)
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            raise RecognitionUnavailable(f"Unexpected LUIS prediction shape: {e}") from e


def parse_prediction(prediction: dict) -> RecognizerResult:
    top_intent = prediction.get("topIntent") or NONE_INTENT
    intents = prediction.get("intents") or {}
    score = float((intents.get(top_intent) or {}).get("score", 0.0))
    score = min(max(score, 0.0), 1.0)

    raw = prediction.get("entities") or {}
    entities = {}

    origin = _airport(raw.get("From"))
    if origin:
        entities["origin"] = origin

    destination = _airport(raw.get("To"))
    if destination:
        entities["destination"] = destination

    dates = _dates(raw.get("datetimeV2") or raw.get("datetime"))
    if dates:
        entities["travel_date"] = dates[0]
    if len(dates) > 1:
        entities["return_date"] = dates[1]
        entities["round_trip"] = True

    return RecognizerResult(top_intent=top_intent, entities=clean_entities(entities), score=score)


def _airport(composite):
    """
    `From` / `To` arrive as [{"Airport": [["Paris"]]}]; the list-entity
    value is the canonical airport name.
    """
    if not composite:
        return None
    first = composite[0]
    if isinstance(first, str):
        return first
    airport = (first or {}).get("Airport")
    if not airport:
        return None
    value = airport[0]
    if isinstance(value, list):
        value = value[0] if value else None
    return value


def _dates(datetimes):
    """
    Keep definite dates only. Ambiguous timex values come with several
    resolutions; the last one is the future candidate.
    """
    dates = []
    for item in datetimes or []:
        if item.get("type") not in ("date", "datetime"):
            continue
        for value in item.get("values") or []:
            resolution = value.get("resolution") or []
            if resolution:
                dates.append(str(resolution[-1].get("value", ""))[:10])
    return [d for d in dates if d]
