#!/usr/bin/env python3
"""
Capitalise the first letter of every space-separated word, leaving the rest
of each word untouched ("es6 workshop" → "Es6 Workshop", "iPhone" becomes
"IPhone"). Unlike str.title() it never lowercases anything.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from _tagged import capitalize_words


def transform(text: str) -> str:
    return capitalize_words(text)
