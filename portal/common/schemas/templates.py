"""
Record Text Templates

Renders a Record into the two texts the retriever needs:
the embedding text (what gets vectorized) and the prompt block
(what the answer model reads).
"""

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from .record import RecordDraft


PROMPT_BLOCK_TEMPLATE = """
RESOURCE: {name}
DESCRIPTION: {description}
{detailed}TYPE: {type}
PRODUCT: {products}
AUDIENCE: {audiences}
MESSAGING STAGE: {stage}
LINK: {url}
"""

PROMPT_BLOCK_SEPARATOR = "\n----------------------------------\n"


def _join_tags(tags: List[str]) -> str:
    return " ".join(t for t in tags if t)


def render_embedding_text(record: "RecordDraft") -> str:
    """
    Render the text a record is embedded from.

    Field order is fixed: name, body (falling back to summary), type,
    products, audiences, solutions, stage. Empty parts are dropped.
    """
    body = record.body if record.body and record.body.strip() else record.summary
    parts = [
        record.name,
        body,
        record.type,
        _join_tags(record.products),
        _join_tags(record.audiences),
        _join_tags(record.solutions),
        record.stage,
    ]
    return " ".join(p.strip() for p in parts if p and p.strip())


def render_prompt_block(record: "RecordDraft") -> str:
    """Render one record for the answer prompt"""
    detailed = ""
    if record.body and record.body.strip():
        detailed = f"DETAILED DESCRIPTION: {record.body.strip()}\n"

    return PROMPT_BLOCK_TEMPLATE.format(
        name=record.name,
        description=record.summary or "No description provided",
        detailed=detailed,
        type=record.type or "Unknown",
        products=", ".join(record.products) or "Unknown",
        audiences=", ".join(record.audiences) or "Unknown",
        stage=record.stage or "Unknown",
        url=record.url or "No link available",
    )


def render_prompt_context(records: List["RecordDraft"]) -> str:
    """Render all records for the answer prompt, in the given order"""
    return PROMPT_BLOCK_SEPARATOR.join(render_prompt_block(r) for r in records)
