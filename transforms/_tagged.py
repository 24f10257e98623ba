#!/usr/bin/env python3
"""
_tagged.py — tagged-template capitalisation shared by the upper_* transforms.

A template is held as two parallel lists: the literal ``strings`` and the
interpolated ``values`` that sit between them (always one fewer value than
strings). ``upper`` glues them back together with every value capitalised.

Modes:
    first  — uppercase the first character of the whole value
    words  — uppercase the first character of every space-separated word
"""

import re

MODES         = ("first", "words")
DEFAULT_MODE  = "words"

PLACEHOLDER_RE = re.compile(r"\$\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}")


def capitalize(word: str) -> str:
    """Uppercase the first character of *word*, leave the rest alone."""
    return word[:1].upper() + word[1:]


def capitalize_words(value: str) -> str:
    # split(" ") keeps empty words, so runs of spaces come back out as-is
    return " ".join(capitalize(word) for word in value.split(" "))


def _capitalizer(mode: str):
    if mode == "first":
        return capitalize
    if mode == "words":
        return capitalize_words
    raise ValueError(f"Unknown mode {mode!r} (expected one of: {', '.join(MODES)})")


def upper(strings, values, mode: str = DEFAULT_MODE) -> str:
    """
    Rebuild a template from its literal *strings* and interpolated *values*,
    capitalising each value on the way.

    ``len(strings)`` must be ``len(values) + 1``; this is not checked.
    """
    cap = _capitalizer(mode)
    out = strings[0]
    for index in range(1, len(strings)):
        out += cap(str(values[index - 1]))
        out += strings[index]
    return out


def split_template(text: str):
    """
    Split ``${name}`` template text into ``(segments, names)``.

        >>> split_template("Hi ${name}!")
        (['Hi ', '!'], ['name'])
    """
    parts = PLACEHOLDER_RE.split(text)
    return parts[0::2], parts[1::2]


def upper_template(template, mode: str = DEFAULT_MODE) -> str:
    """Apply ``upper`` to anything exposing ``.strings`` and ``.values``,
    such as a t-string ``string.templatelib.Template``."""
    return upper(list(template.strings), list(template.values), mode)
