"""
MIT License — data URL helpers shared by the adapters and the Gemini provider.
"""

import re

DEFAULT_MIME_TYPE = "image/png"

_PREFIX = re.compile(r"^data:([^;]+);base64,")


def is_data_url(value: str) -> bool:
    return value.startswith("data:")


def mime_type(data_url: str) -> str:
    """Declared MIME type of a data URL, or ``image/png`` when there is none."""
    match = _PREFIX.match(data_url)
    return match.group(1) if match else DEFAULT_MIME_TYPE


def strip_encoding(data_url: str) -> str:
    """Raw base64 payload; input without a data URL prefix is returned as-is."""
    return _PREFIX.sub("", data_url, count=1)


def to_data_url(mime: str, payload: str) -> str:
    return f"data:{mime};base64,{payload}"
