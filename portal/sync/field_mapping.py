"""
Field Mapping

Declarative table from source property names to Record fields.
For each target field the candidate property names are tried in order and
the first one holding a non-empty value wins; otherwise the field default
applies. Required fields without a value raise RecordMappingError.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..common.errors import RecordMappingError
from ..common.schemas.record import RecordDraft, Visibility
from .handlers.base import RawRecord

logger = logging.getLogger("portal.sync.field_mapping")


@dataclass(frozen=True)
class FieldSpec:
    """How one Record field is read from source properties"""
    target: str
    candidates: Tuple[str, ...]
    kind: str = "text"  # text, tags, date, visibility
    default: Any = None
    required: bool = False


FIELD_SPECS: Tuple[FieldSpec, ...] = (
    FieldSpec("name", ("Name", "Title", "Resource Name"), required=True),
    FieldSpec("type", ("Content Type", "Type"), default="Unknown"),
    FieldSpec("products", ("Smart Mooring Sensor(s)", "Product", "Products"), kind="tags", default=()),
    FieldSpec("audiences", ("Market Segment(s)", "Audience", "Audiences"), kind="tags", default=()),
    FieldSpec("solutions", ("Solution", "Solutions"), kind="tags", default=()),
    FieldSpec("stage", ("Stage in Buyer's Journey", "Messaging Stage", "Stage"), default="Unknown"),
    FieldSpec(
        "visibility",
        ("Internal Use Only?", "Content Visibility", "Visibility"),
        kind="visibility",
        default=Visibility.BOTH,
    ),
    FieldSpec("summary", ("Description", "Summary"), default=""),
    FieldSpec("body", ("Detailed Description", "Body"), default=None),
    FieldSpec("url", ("URL/Link", "URL", "Link"), default="#"),
    FieldSpec("date", ("Date", "Publish Date"), kind="date", default=None),
)

_INTERNAL_WORDS = {"internal", "internal only", "yes", "true"}
_EXTERNAL_WORDS = {"external", "external only", "public"}
_BOTH_WORDS = {"both", "no", "false"}


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return not any(not _is_empty(v) for v in value)
    return False


def _to_text(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v).strip() for v in value if not _is_empty(v))
    return str(value).strip()


def _to_tags(value: Any) -> List[str]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        value = [value]
    tags = []
    for v in value:
        tag = str(v).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _to_date(value: Any) -> Optional[str]:
    text = str(value).strip()[:10]
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        logger.debug("Ignoring unparseable date %r", value)
        return None


def normalize_visibility(value: Any) -> Optional[Visibility]:
    """
    Map a visibility-ish value onto Visibility.

    A checked "Internal Use Only?" box means internal; unchecked means both.
    Returns None for values that carry no recognizable meaning.
    """
    if isinstance(value, bool):
        return Visibility.INTERNAL if value else Visibility.BOTH
    if isinstance(value, (list, tuple)):
        value = value[0] if len(value) == 1 else ""
    word = str(value).strip().lower()
    if word in _INTERNAL_WORDS:
        return Visibility.INTERNAL
    if word in _EXTERNAL_WORDS:
        return Visibility.EXTERNAL
    if word in _BOTH_WORDS:
        return Visibility.BOTH
    return None


def _convert(spec: FieldSpec, value: Any) -> Any:
    if spec.kind == "tags":
        return _to_tags(value)
    if spec.kind == "date":
        return _to_date(value)
    if spec.kind == "visibility":
        return normalize_visibility(value)
    return _to_text(value)


def _default(spec: FieldSpec) -> Any:
    if isinstance(spec.default, tuple):
        return list(spec.default)
    return spec.default


def resolve_field(spec: FieldSpec, fields: Dict[str, Any]) -> Any:
    """First candidate with a usable value wins, else the field default"""
    for name in spec.candidates:
        value = fields.get(name)
        if _is_empty(value):
            continue
        converted = _convert(spec, value)
        if converted is None or converted == [] or converted == "":
            continue
        return converted
    return _default(spec)


def map_record(raw: RawRecord, specs: Tuple[FieldSpec, ...] = FIELD_SPECS) -> RecordDraft:
    """
    Map one RawRecord into a RecordDraft.

    Raises:
        RecordMappingError: a required field is missing or the result is invalid
    """
    external_id = (raw.external_id or "").strip()
    if not external_id:
        raise RecordMappingError("Record has no external id")

    values: Dict[str, Any] = {"external_id": external_id}
    for spec in specs:
        value = resolve_field(spec, raw.fields)
        if spec.required and _is_empty(value):
            raise RecordMappingError(
                f"Record {external_id} has no value for required field '{spec.target}'",
                external_id=external_id,
            )
        values[spec.target] = value

    try:
        return RecordDraft(**values)
    except PydanticValidationError as e:
        raise RecordMappingError(f"Record {external_id} is invalid: {e}", external_id=external_id) from e
