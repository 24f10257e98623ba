#!/usr/bin/env python3
"""
Fill ${name} placeholders in the clipboard text from a YAML variables file,
capitalising every substituted value.

Example, with variables.yaml holding  name: kyle  and  classname: es6 workshop
    "Hello ${name}, welcome to the ${classname}!"
        → "Hello Kyle, welcome to the Es6 Workshop!"

Set MODE = first to capitalise only the first letter of each value.
Literal text around the placeholders is never touched.
"""

# ── Configuration ─────────────────────────────────────────────────────────────

VARIABLES_FILE = "variables.yaml"   # relative paths resolve next to this file
MODE           = "words"            # words | first

# ─────────────────────────────────────────────────────────────────────────────

import sys
from pathlib import Path

import yaml

sys.path.insert(0, str(Path(__file__).parent))

from _tagged import split_template, upper


def _load_variables(path: Path) -> dict:
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} must be a YAML mapping of name: value")
    return {str(key): value for key, value in data.items()}


def transform(text: str) -> str:
    segments, names = split_template(text)
    if not names:
        return text

    path = Path(VARIABLES_FILE)
    if not path.is_absolute():
        path = Path(__file__).parent / path

    try:
        variables = _load_variables(path)
    except FileNotFoundError:
        return f"[upper_template] Variables file not found: {path}"
    except yaml.YAMLError as exc:
        return f"[upper_template] YAML parse error: {exc}"
    except ValueError as exc:
        return f"[upper_template] {exc}"

    missing = sorted({n for n in names if n not in variables})
    if missing:
        return f"[upper_template] Undefined variable(s): {', '.join(missing)}"

    # "name:" with nothing after it loads as None
    empty = sorted({n for n in names if variables[n] is None})
    if empty:
        return f"[upper_template] Variable(s) with no value: {', '.join(empty)}"

    return upper(segments, [variables[n] for n in names], MODE)
