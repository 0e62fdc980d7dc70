#!/usr/bin/env python3
"""
Reference Data Sync
Re-fetches user profiles and websites from the source, refreshes the cache,
and records a sync status.
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from recall.core import config
from recall.core.cache import ReferenceDataCache
from recall.core.reference import ReferenceDataService
from recall.core.sync import SyncOrchestrator


def build_orchestrator() -> SyncOrchestrator:
    cache = ReferenceDataCache(config.get_cache_store(), default_ttl=config.CACHE_TTL_SEC)
    service = ReferenceDataService(config.get_reference_source(), cache, config.get_reference_tables())
    return SyncOrchestrator(service, cache)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Sync cached reference data from the external source",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s              # Run a full sync
  %(prog)s --status     # Show the last recorded sync status

Environment variables:
- AIRTABLE_API_KEY, AIRTABLE_BASE_ID (required)
- CACHE_PROVIDER=sqlite (default; memory does not outlive this process)
        """
    )
    parser.add_argument("--status", action="store_true", help="Print the last sync status instead of syncing")
    args = parser.parse_args(argv)

    orchestrator = build_orchestrator()

    if args.status:
        status = orchestrator.get_sync_status()
        if status is None:
            print("No sync status recorded (never run, or expired)")
            return 1
        print(json.dumps(status.to_dict(), indent=2))
        return 0

    status = orchestrator.sync_all()
    print(json.dumps(status.to_dict(), indent=2))

    if status.success:
        print(f"✓ Synced {status.profiles_count} profiles and {status.websites_count} websites")
        return 0

    for error in status.errors:
        print(f"ERROR: {error}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
