# lego_scraper/utils/lookup.py
"""
Helpers for reading untyped JSON-like data (dicts, lists, scalars) without
caring whether intermediate keys exist.
"""
from typing import Any, Callable, Optional


def dig(data: Any, *path: Any) -> Any:
    """
    Follows a path of dict keys / list indexes into nested data.
    Returns None as soon as a step does not exist or has the wrong type.
    """
    current = data
    for key in path:
        if isinstance(key, int):
            if isinstance(current, list) and -len(current) <= key < len(current):
                current = current[key]
            else:
                return None
        elif isinstance(current, dict):
            current = current.get(key)
        else:
            return None
        if current is None:
            return None
    return current


def is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def first_of(*lookups: Callable[[], Any]) -> Any:
    """
    Evaluates lookups left to right and returns the first present value,
    or None when every lookup comes back empty.
    """
    for lookup in lookups:
        value = lookup()
        if is_present(value):
            return value
    return None


def clean_text(value: Any) -> Optional[str]:
    """Collapses whitespace; anything that is not a non-blank string becomes None."""
    if not isinstance(value, str):
        return None
    cleaned = " ".join(value.split())
    return cleaned or None
