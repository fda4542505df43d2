"""
Annotation Decoder

Reads the trailing referenced-records annotation from generated text:

    ... answer text ...
    RELEVANT_RESOURCES: ["Name 1", "Name 2"]

The marker is matched case-insensitively and may be wrapped in markdown
emphasis or heading characters. A list opening with "[" is read as JSON
first, then as a bracketed list of quoted or bare items. Anything else is
read as bullet lines or a comma-separated remainder.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..common.errors import AnnotationParseError
from ..common.llm_utils import parse_llm_list, strip_code_fences

MARKER = "RELEVANT_RESOURCES"

_MARKER_RE = re.compile(r"[*#_\s]*RELEVANT_RESOURCES[*_]*\s*:?[*_]*", re.IGNORECASE)
_BRACKET_RE = re.compile(r"\[(.*?)\]", re.DOTALL)
_ITEM_RE = re.compile(r'\s*(?:"([^"]+)"|\'([^\']+)\'|([^,]+))')
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+?)\s*$")


@dataclass
class Annotation:
    """Answer text with the annotation removed, plus the names it listed"""
    body: str
    names: List[str] = field(default_factory=list)
    found: bool = False


def split_annotation(text: str) -> Tuple[str, Optional[str]]:
    """
    Split text at the first annotation marker.

    Returns:
        (body, remainder) where remainder is None when there is no marker
    """
    match = _MARKER_RE.search(text)
    if match is None:
        return text.strip(), None
    return text[:match.start()].rstrip(), text[match.end():].strip()


def _clean(name: str) -> str:
    return name.strip().strip("\"'`*").strip()


def _dedupe(names: List[str]) -> List[str]:
    seen = set()
    result = []
    for name in names:
        key = name.casefold()
        if name and key not in seen:
            seen.add(key)
            result.append(name)
    return result


def _parse_bracketed(remainder: str) -> Optional[List[str]]:
    match = _BRACKET_RE.search(remainder)
    if match is None:
        return None
    names = []
    for m in _ITEM_RE.finditer(match.group(1)):
        name = _clean(m.group(1) or m.group(2) or m.group(3) or "")
        if name:
            names.append(name)
    return names


def _parse_loose(remainder: str) -> List[str]:
    lines = [l for l in remainder.splitlines() if l.strip()]
    bullets = [_BULLET_RE.match(l) for l in lines]
    if bullets and all(bullets):
        return [_clean(b.group(1)) for b in bullets if _clean(b.group(1))]
    if len(lines) == 1:
        return [_clean(part) for part in lines[0].split(",") if _clean(part)]
    return []


def decode_annotation(text: str) -> Annotation:
    """
    Decode the annotation at the end of generated text.

    Raises:
        AnnotationParseError: the marker is present but no names follow it
    """
    body, remainder = split_annotation(text or "")
    if remainder is None:
        return Annotation(body=body)

    names = None
    # Brackets elsewhere (e.g. "- Field Guide [PDF]") belong to a name, not a list
    if strip_code_fences(remainder).startswith("["):
        names = parse_llm_list(remainder)
        if names is None:
            names = _parse_bracketed(remainder)
    if names is None:
        names = _parse_loose(remainder)

    names = _dedupe([_clean(n) for n in names])
    if not names and re.sub(r"\s", "", remainder) != "[]":
        raise AnnotationParseError(f"Could not read resource names after {MARKER}: {remainder[:80]!r}")

    return Annotation(body=body, names=names, found=True)
