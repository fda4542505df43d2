"""
Resource Sync

Mirrors the external content source into the local RecordStore.
"""

from .field_mapping import FIELD_SPECS, FieldSpec, map_record
from .handlers import BaseSource, FileSource, NotionSource, RawRecord, create_source
from .reconciler import ContentReconciler, ReconcileReport, should_sync

__all__ = [
    "FIELD_SPECS",
    "FieldSpec",
    "map_record",
    "BaseSource",
    "FileSource",
    "NotionSource",
    "RawRecord",
    "create_source",
    "ContentReconciler",
    "ReconcileReport",
    "should_sync",
]
