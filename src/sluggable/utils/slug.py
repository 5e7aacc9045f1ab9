"""Utilities for turning free-form text into URL-safe slug tokens."""

from __future__ import annotations

import re
from typing import Pattern

from unidecode import unidecode

DEFAULT_SEPARATOR = "-"

_TOKEN_PATTERN: Pattern[str] = re.compile(r"[a-z0-9]+")


def urlize(text: str | None, separator: str = DEFAULT_SEPARATOR) -> str:
    """Normalize ``text`` into lowercase ``[a-z0-9]`` tokens joined by ``separator``.

    Non-ASCII characters are transliterated first, so ``"Crème Brûlée"``
    becomes ``"creme-brulee"``. Any run of other characters collapses into a
    single separator and the result never starts or ends with one. Applying
    the function to its own output returns the output unchanged.
    """
    ascii_text = unidecode(text or "").lower()
    return separator.join(_TOKEN_PATTERN.findall(ascii_text))


def camelize(slug: str, separator: str = DEFAULT_SEPARATOR) -> str:
    """Uppercase the first character and every character following ``separator``."""
    if not slug:
        return slug
    if not separator:
        return slug[0].upper() + slug[1:]
    pattern = re.compile(rf"^[a-z]|{re.escape(separator)}[a-z]")
    return pattern.sub(lambda match: match.group(0).upper(), slug)


def truncate(slug: str, max_length: int) -> str:
    """Hard-cut ``slug`` to ``max_length`` characters."""
    if len(slug) > max_length:
        return slug[:max_length]
    return slug


def trailing_counter(slug: str, separator: str = DEFAULT_SEPARATOR) -> int:
    """Return the numeric ``<separator><digits>`` suffix of ``slug`` or ``0``."""
    match = re.search(rf"{re.escape(separator)}(\d+)$", slug)
    if not match:
        return 0
    return int(match.group(1))
