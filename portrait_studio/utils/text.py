from __future__ import annotations

from typing import Any


def clamp_text(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 1] + '...'


def preview(value: Any, max_len: int) -> str:
    # Single-line excerpt of an arbitrary payload for records and logs.
    text = value if isinstance(value, str) else repr(value)
    return clamp_text(' '.join(text.split()), max_len)
