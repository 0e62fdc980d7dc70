#!/usr/bin/env python3
"""
Embedding Backfill Utility
Embeds saved records whose embedding failed at save time, so semantic search can find them.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from recall.core import config
from recall.core.dao import embedding_source_text
from recall.vector.embeddings import EmbeddingsService


def backfill(store, embeddings: EmbeddingsService, limit: int = 500) -> int:
    """Embed up to limit records lacking an embedding. Returns how many were updated."""
    records = store.list_missing_embeddings(limit=limit)
    print(f"Found {len(records)} records without embeddings")

    embedded_count = 0
    for record in records:
        result = embeddings.generate_embedding(embedding_source_text(record.text, record.generated_output))
        if not result.ok:
            print(f"ERROR: Failed to embed record {record.id}: {result.error}")
            continue

        if store.set_embedding(record.id, result.vector, result.model):
            embedded_count += 1

        if embedded_count and embedded_count % 10 == 0:
            print(f"  ... embedded {embedded_count}/{len(records)} records")

    return embedded_count


def main(argv=None):
    parser = argparse.ArgumentParser(description="Backfill missing record embeddings")
    parser.add_argument("--limit", type=int, default=500, help="Maximum records to process (default 500)")
    args = parser.parse_args(argv)

    issues = config.validate_config()
    provider_issues = [i for i in issues if "EMBED" in i]
    if provider_issues:
        for issue in provider_issues:
            print(f"ERROR: {issue}")
        return 1

    print("Starting embedding backfill...")
    embedded_count = backfill(config.get_candidate_store(), EmbeddingsService(), limit=args.limit)
    print(f"✓ Backfilled {embedded_count} embeddings")
    return 0


if __name__ == "__main__":
    sys.exit(main())
