import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv


RECOGNIZER_BACKENDS = ("auto", "luis", "gemini", "none")


@dataclass(frozen=True)
class BotSettings:
    """
    Explicit configuration passed into the bot at construction.
    Nothing below the app entry point reads the environment.
    """
    port: int = 8080
    recognizer_backend: str = "auto"

    # LUIS prediction endpoint
    luis_app_id: Optional[str] = None
    luis_api_key: Optional[str] = None
    luis_api_host: Optional[str] = None

    # Gemini
    gemini_api_key: Optional[str] = None
    gemini_model: str = "models/gemini-2.5-flash"

    recognizer_threshold: float = 0.5
    recognizer_timeout: float = 5.0
    prompt_max_retries: int = 2

    db_path: str = "data/conversations.db"
    welcome_template: str = "index.html"
    log_level: str = "INFO"

    @property
    def luis_configured(self) -> bool:
        return bool(self.luis_app_id and self.luis_api_key and self.luis_api_host)

    @property
    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key)


def _read_number(env, name, default, cast):
    raw = env.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return cast(str(raw).strip())
    except ValueError:
        raise ValueError(f"{name} must be a {cast.__name__}, got {raw!r}")


def load_settings(env: Optional[Mapping[str, str]] = None) -> BotSettings:
    """
    Build settings from environment variables.

    The LUIS variable names match the ones the bot has always used
    (LuisAppId, LuisAPIKey, LuisAPIHostName).
    """
    if env is None:
        load_dotenv()
        env = os.environ

    backend = (env.get("RECOGNIZER_BACKEND") or "auto").strip().lower()
    if backend not in RECOGNIZER_BACKENDS:
        raise ValueError(
            f"RECOGNIZER_BACKEND must be one of {', '.join(RECOGNIZER_BACKENDS)}, got {backend!r}"
        )

    threshold = _read_number(env, "RECOGNIZER_THRESHOLD", 0.5, float)
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"RECOGNIZER_THRESHOLD must be within [0, 1], got {threshold}")

    timeout = _read_number(env, "RECOGNIZER_TIMEOUT", 5.0, float)
    if timeout <= 0:
        raise ValueError(f"RECOGNIZER_TIMEOUT must be positive, got {timeout}")

    max_retries = _read_number(env, "PROMPT_MAX_RETRIES", 2, int)
    if max_retries < 0:
        raise ValueError(f"PROMPT_MAX_RETRIES must not be negative, got {max_retries}")

    port = _read_number(env, "PORT", None, int)
    if port is None:
        port = _read_number(env, "port", 8080, int)

    return BotSettings(
        port=port,
        recognizer_backend=backend,
        luis_app_id=env.get("LuisAppId") or None,
        luis_api_key=env.get("LuisAPIKey") or None,
        luis_api_host=env.get("LuisAPIHostName") or None,
        gemini_api_key=env.get("GEMINI_API_KEY") or None,
        gemini_model=env.get("GEMINI_MODEL") or "models/gemini-2.5-flash",
        recognizer_threshold=threshold,
        recognizer_timeout=timeout,
        prompt_max_retries=max_retries,
        db_path=env.get("BOT_DB_PATH") or "data/conversations.db",
        welcome_template=env.get("WELCOME_TEMPLATE") or "index.html",
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )
