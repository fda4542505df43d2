"""
Resource Portal

Mirrors a Notion resource library into an in-process store and answers
free-text questions about it.

Philosophy:
- The external source is the source of truth; the store is a full mirror
- Every record has one embeddable text, rebuilt on each embedding pass
- Answers cite resources by name; names are mapped back to record ids
- A failed sync never costs previously served content

Usage:
    from portal.common import load_config, EmbeddingService, RecordStore
    from portal.sync import ContentReconciler, NotionSource
    from portal.retriever import AnswerPipeline, ResourceQueryEngine
"""

__version__ = "0.1.0"
