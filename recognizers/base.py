import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

from recognizers.result import RecognizerResult

logger = logging.getLogger(__name__)


class RecognitionUnavailable(Exception):
    """
    The NLU backend is unreachable, misconfigured, or answered with
    something we could not read.
    """


class IntentRecognizer:
    """
    Maps a free-form utterance to a RecognizerResult.
    """

    name = "base"

    def recognize(self, utterance: str) -> RecognizerResult:
        raise NotImplementedError


class UnconfiguredRecognizer(IntentRecognizer):
    """
    Stand-in used when no NLU credentials are configured.
    Every call fails, so the engine runs on prompts alone.
    """

    name = "unconfigured"

    def __init__(self, reason="no recognizer credentials configured"):
        self.reason = reason

    def recognize(self, utterance):
        raise RecognitionUnavailable(self.reason)


class TimedRecognizer:
    """
    Runs a recognizer with a deadline and turns every failure into an
    unavailable result, so callers always get a RecognizerResult back.
    """

    def __init__(self, recognizer: IntentRecognizer, timeout: float, max_workers: int = 4):
        self.recognizer = recognizer
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="recognizer"
        )

    def recognize(self, utterance: str) -> RecognizerResult:
        future = self._executor.submit(self.recognizer.recognize, utterance)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning(
                "Recognizer %s timed out after %.1fs", self.recognizer.name, self.timeout
            )
        except RecognitionUnavailable as e:
            logger.warning("Recognizer %s unavailable: %s", self.recognizer.name, e)
        except Exception:
            logger.warning("Recognizer %s failed", self.recognizer.name, exc_info=True)
        return RecognizerResult.unavailable()

    def shutdown(self):
        self._executor.shutdown(wait=False)


def build_recognizer(settings) -> IntentRecognizer:
    """
    Pick the NLU backend from settings.

    `auto` falls back to UnconfiguredRecognizer when nothing is configured;
    naming a backend explicitly without its credentials is a config error.
    """
    backend = settings.recognizer_backend

    if backend == "none":
        return UnconfiguredRecognizer("recognizer disabled by configuration")

    if backend == "luis" and not settings.luis_configured:
        raise ValueError("RECOGNIZER_BACKEND=luis needs LuisAppId, LuisAPIKey and LuisAPIHostName")

    if backend == "gemini" and not settings.gemini_configured:
        raise ValueError("RECOGNIZER_BACKEND=gemini needs GEMINI_API_KEY")

    if backend == "luis" or (backend == "auto" and settings.luis_configured):
        from recognizers.luis import LuisRecognizer
        return LuisRecognizer(
            application_id=settings.luis_app_id,
            endpoint_key=settings.luis_api_key,
            endpoint_host=settings.luis_api_host,
            timeout=settings.recognizer_timeout,
        )

    if backend == "gemini" or (backend == "auto" and settings.gemini_configured):
        from recognizers.gemini import GeminiRecognizer
        return GeminiRecognizer(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            timeout=settings.recognizer_timeout,
        )

    logger.warning("No recognizer configured. Intents will not be recognized.")
    return UnconfiguredRecognizer()
