import json
import logging
from datetime import date

from google import genai
from google.genai import types

from recognizers.base import IntentRecognizer, RecognitionUnavailable
from recognizers.prompts.prompt_loader import load_developer_prompt, load_system_prompt
from recognizers.result import KNOWN_INTENTS, NONE_INTENT, RecognizerResult, clean_entities

logger = logging.getLogger(__name__)


class GeminiRecognizer(IntentRecognizer):
    """
    Intent recognition through a Gemini model asked for a JSON verdict.
    """

    name = "gemini"

    def __init__(self, api_key=None, model="models/gemini-2.5-flash", timeout=5.0,
                 client=None, today_fn=date.today):
        if client is None:
            if not api_key:
                raise ValueError("Gemini recognizer needs an API key")
            client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=int(timeout * 1000)),
            )
        self.client = client
        self.model = model
        self.today_fn = today_fn
        self.system_prompt = load_system_prompt()
        self.developer_prompt = load_developer_prompt()

    def build_prompt(self, utterance):
        prompt_parts = [
            "SYSTEM ROLE:\n" + self.system_prompt,
            "\nDEVELOPER RULES:\n" + self.developer_prompt,
            "\nCONTEXT:\nTODAY: " + self.today_fn().isoformat(),
            "\nUSER MESSAGE:\n" + utterance,
        ]
        return "\n\n".join(prompt_parts)

    def recognize(self, utterance):
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=self.build_prompt(utterance),
                config={
                    "temperature": 0.0,
                    "max_output_tokens": 300,
                    "response_mime_type": "application/json",
                },
            )
        except Exception as e:
            raise RecognitionUnavailable(f"Gemini call failed: {e}") from e

        return parse_verdict(response.text or "")


def parse_verdict(text: str) -> RecognizerResult:
    text = text.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[4:]

    try:
        data = json.loads(text)
    except ValueError as e:
        raise RecognitionUnavailable(f"Gemini returned non-JSON output: {text[:80]!r}") from e

    if not isinstance(data, dict):
        raise RecognitionUnavailable("Gemini verdict is not an object")

    try:
        return _result_from_verdict(data)
    except (AttributeError, TypeError) as e:
        raise RecognitionUnavailable(f"Unexpected Gemini verdict shape: {e}") from e


def _result_from_verdict(data: dict) -> RecognizerResult:
    intent = data.get("intent") or NONE_INTENT
    if intent not in KNOWN_INTENTS:
        logger.info("Gemini returned unknown intent %r", intent)
        intent = NONE_INTENT

    try:
        score = float(data.get("score", 0.0))
    except (TypeError, ValueError):
        score = 0.0
    score = min(max(score, 0.0), 1.0)

    raw = data.get("entities")
    if raw is not None and not isinstance(raw, dict):
        logger.info("Gemini returned entities as %s, ignoring them", type(raw).__name__)

    return RecognizerResult(top_intent=intent, entities=clean_entities(raw), score=score)
