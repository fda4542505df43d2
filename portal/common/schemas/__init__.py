"""
Resource Portal Schemas

Record model and the text renderings used for embedding and prompting.
"""

from .record import (
    Record,
    RecordDraft,
    Visibility,
    UsageCounter,
    CONTENT_FIELDS,
    COUNTER_FIELDS,
)
from .templates import (
    render_embedding_text,
    render_prompt_block,
    render_prompt_context,
    PROMPT_BLOCK_SEPARATOR,
)

__all__ = [
    "Record",
    "RecordDraft",
    "Visibility",
    "UsageCounter",
    "CONTENT_FIELDS",
    "COUNTER_FIELDS",
    "render_embedding_text",
    "render_prompt_block",
    "render_prompt_context",
    "PROMPT_BLOCK_SEPARATOR",
]
