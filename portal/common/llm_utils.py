"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
from typing import List, Optional


def strip_code_fences(raw: str) -> str:
    """Drop markdown code fence lines (```json, ```) from an LLM response."""
    text = raw.strip()
    if "```" not in text:
        return text
    lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
    return "\n".join(lines).strip()


def parse_llm_list(raw: str) -> Optional[List[str]]:
    """Parse a JSON array of strings from an LLM response.

    Tries the fence-stripped text first, then the substring between the
    first '[' and the last ']'. Non-string items are converted with str().
    Returns None when no JSON array can be read, so callers can fall back
    to a looser parser.
    """
    if not raw:
        return None

    candidates = [strip_code_fences(raw)]
    start = raw.find("[")
    end = raw.rfind("]") + 1
    if start >= 0 and end > start:
        candidates.append(raw[start:end])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]

    return None
