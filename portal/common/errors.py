"""
Error taxonomy shared by the sync and retriever pipelines.
"""

from typing import Optional


class PortalError(Exception):
    """Base class for all portal errors."""
    pass


class SourceFetchError(PortalError):
    """The content source was unreachable or rejected the request."""
    pass


class RecordMappingError(PortalError):
    """A single source record could not be mapped into a Record."""

    def __init__(self, message: str, external_id: Optional[str] = None):
        super().__init__(message)
        self.external_id = external_id


class EmbeddingCallError(PortalError):
    """The embedding function failed for one text."""
    pass


class DimensionMismatchError(PortalError):
    """Two vectors of different dimension met. Programmer error."""
    pass


class GenerationError(PortalError):
    """The generation function failed or signalled an error."""
    pass


class IncompleteStreamError(GenerationError):
    """The generation stream ended without a terminal signal."""
    pass


class AnnotationParseError(PortalError):
    """A RELEVANT_RESOURCES marker was found but no list could be read."""
    pass


class ValidationError(PortalError):
    """Malformed question or filter input."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidTransitionError(PortalError):
    """A question run was asked to move backwards or skip a state."""
    pass
