from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable

# Positions of the scanner relative to the brackets.
IN_SEGMENT = 0
AFTER_OPEN = 1
AFTER_CLOSE = 2


def parse_key_path(name: str) -> list[str]:
    """
    Splits a form field name written in bracket notation into its path
    segments::

        >>> parse_key_path("meta[author]")
        ['meta', 'author']
        >>> parse_key_path("tags[]")
        ['tags', '']

    An empty segment (from ``[]``) means "append to a list".  Spaces are
    always dropped, and malformed brackets never raise: they only move the
    segment boundaries.

    :param name: the raw field name
    """
    keys = [""]
    pos = IN_SEGMENT

    for ch in name:
        if ch == " ":
            continue
        elif ch == "[":
            pos = AFTER_OPEN
        elif ch == "]":
            if pos == AFTER_OPEN:
                keys.append("")
            pos = AFTER_CLOSE
        else:
            if pos != IN_SEGMENT:
                keys.append("")
            keys[-1] += ch
            pos = IN_SEGMENT

    return keys


def format_key_path(path: Iterable[str]) -> str:
    """Joins path segments back into bracket notation, so that
    ``format_key_path(["a", "b", ""])`` gives ``"a[b][]"``.
    """
    segments = list(path)
    if not segments:
        return ""
    return segments[0] + "".join("[%s]" % s for s in segments[1:])
