"""Text formatting helpers for chat replies."""

import re
from typing import List, Optional


def format_seconds(seconds: Optional[int]) -> str:
    """Format a number of seconds as ``mm:ss``.

    Minutes are not wrapped into hours, so a 65 minute mix reads ``65:00``.
    """
    if not seconds or seconds < 0:
        seconds = 0
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


def pad_right(text: str, width: int) -> str:
    """Pad text with spaces to at least ``width`` characters."""
    return text.ljust(width)


def split_words(text: str) -> List[str]:
    """Split camelCase, snake_case, kebab-case and spaced text into words."""
    text = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", text)
    return [word for word in re.split(r"[^A-Za-z0-9]+", text) if word]


def screaming_snake_case(text: str) -> str:
    """``"repeat all"`` / ``"RepeatAll"`` / ``"repeat-all"`` -> ``"REPEAT_ALL"``."""
    return "_".join(word.upper() for word in split_words(text))


def lower_case(text: str) -> str:
    """``"REPEAT_ALL"`` -> ``"repeat all"``."""
    return " ".join(word.lower() for word in split_words(text))


def start_case(text: str) -> str:
    """``"no_media"`` -> ``"No Media"``."""
    return " ".join(word.capitalize() for word in split_words(text))
