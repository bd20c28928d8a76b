from functools import lru_cache
from pathlib import Path

BASE_DIR = Path(__file__).parent


@lru_cache(maxsize=None)
def load_message(name):
    return (BASE_DIR / f"{name}.txt").read_text(encoding="utf-8").strip()


def load_welcome_message():
    return load_message("welcome")


def load_help_message():
    return load_message("help")
