#!/usr/bin/env python3
"""
Uppercase only the very first character of the clipboard text.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from _tagged import capitalize


def transform(text: str) -> str:
    return capitalize(text)
