#!/usr/bin/env python3
"""
Resource Sync Script

Runs one reconciliation against the configured content source and,
optionally, a full embedding pass over the result.

Usage:
    python scripts/sync_resources.py [--dry-run] [--embed] [--fixture PATH]
"""

import sys
import asyncio
import argparse
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


async def run(args) -> int:
    from portal.common.config import load_config
    from portal.common.errors import RecordMappingError, SourceFetchError
    from portal.server import build_services
    from portal.sync.field_mapping import map_record
    from portal.sync.handlers import FileSource

    config = load_config()
    if args.batch_size:
        config.embedding.batch_size = args.batch_size

    source = FileSource(args.fixture) if args.fixture else None
    services = build_services(config, source=source)
    print(f"[Sync] Content source: {services.source.source_name}")

    try:
        if args.dry_run:
            print("[Sync] DRY RUN - the store will not be touched")
            try:
                raw_records = await services.source.fetch_all()
            except SourceFetchError as e:
                print(f"[Sync] ERROR: Failed to fetch records: {e}")
                return 1

            for raw in raw_records:
                try:
                    draft = map_record(raw)
                except RecordMappingError as e:
                    print(f"[Sync] SKIP {raw.external_id or '<no id>'}: {e}")
                    continue
                print(f"[Sync] {draft.external_id}: {draft.name} ({draft.type}, {draft.visibility.value})")
            print(f"[Sync] Fetched {len(raw_records)} records")
            return 0

        try:
            report = await services.reconciler.reconcile()
        except SourceFetchError as e:
            print(f"[Sync] ERROR: Sync failed: {e}")
            return 1

        print(
            f"[Sync] Complete: {report.created} created, {report.updated} updated, "
            f"{report.unchanged} unchanged, {report.removed} removed, {report.skipped} skipped"
        )
        for error in report.errors:
            print(f"[Sync] WARNING: {error}")

        if args.embed:
            if not services.embedding_service.is_available:
                print("[Sync] ERROR: Embedding service not available")
                return 1
            print(f"[Sync] Embedding {len(services.store)} records (model: {config.embedding.model})...")
            embedded = await services.index.ensure_fresh()
            dimension = embedded[0].dimension if embedded else 0
            print(f"[Sync] Embedded {len(embedded)}/{len(services.store)} records (dimension {dimension})")

        return 0
    finally:
        await services.source.close()


def main():
    parser = argparse.ArgumentParser(description="Sync resources from the content source")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and map records without storing them")
    parser.add_argument("--embed", action="store_true", help="Run a full embedding pass after syncing")
    parser.add_argument("--fixture", type=str, default=None, help="Read records from this JSON file instead")
    parser.add_argument("--batch-size", type=int, default=None, help="Records per embedding batch")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
