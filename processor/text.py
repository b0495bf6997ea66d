"""Text helpers shared by extractors and processors."""
import re
from typing import Any, Pattern, Union

_WHITESPACE = re.compile(r'\s+')


def clean_text(value: Any) -> str:
    """
    Collapse whitespace and trim a value.

    Args:
        value: Any value; non-strings become an empty string

    Returns:
        Cleaned string
    """
    if not isinstance(value, str):
        return ''
    return _WHITESPACE.sub(' ', value).strip()


def first_match(text: str, pattern: Union[str, Pattern]) -> str:
    """Return the first capture group (or whole match) of pattern, cleaned."""
    if not text:
        return ''
    match = re.search(pattern, text)
    if not match:
        return ''
    group = match.group(1) if match.groups() else match.group(0)
    return clean_text(group or match.group(0))


def is_http_url(value: str) -> bool:
    return value.startswith('https://') or value.startswith('http://')
