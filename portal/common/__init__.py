"""
Resource Portal Common Module

Shared infrastructure for the sync and retriever pipelines.
"""

from .config import PortalConfig, load_config
from .embedding_service import EmbeddingService
from .llm_client import LLMClient, StreamEvent
from .record_store import RecordStore

__all__ = [
    "PortalConfig",
    "load_config",
    "EmbeddingService",
    "LLMClient",
    "StreamEvent",
    "RecordStore",
]
