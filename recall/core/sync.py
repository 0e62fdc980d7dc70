"""
Bulk refresh of cached reference data, with a status summary kept in the cache.
"""

import time
from typing import Callable, Optional

from .cache import ReferenceDataCache
from .config import SYNC_STATUS_KEY, SYNC_STATUS_TTL_SEC
from .reference import ReferenceDataService
from .schema import SyncStatus
from util.logging import logger


class SyncOrchestrator:
    """
    Re-fetches every reference-data kind from the source and re-caches it.

    Kinds are refreshed one after another; a failing kind is recorded in the
    status and does not stop the others. Running it again simply repeats the
    refresh.
    """

    def __init__(self, reference_service: ReferenceDataService, cache: ReferenceDataCache,
                 clock: Callable[[], float] = time.time,
                 status_ttl: int = SYNC_STATUS_TTL_SEC):
        self.reference_service = reference_service
        self.cache = cache
        self.clock = clock
        self.status_ttl = status_ttl

    def sync_all(self) -> SyncStatus:
        start_time = time.monotonic()
        errors = []

        logger.info("Starting full reference-data sync")

        profiles_count = 0
        try:
            profiles_count = len(self.reference_service.list_user_profiles(use_cache=False))
        except Exception as e:
            errors.append(f"Profiles sync failed: {e}")

        websites_count = 0
        try:
            websites_count = len(self.reference_service.list_websites(use_cache=False))
        except Exception as e:
            errors.append(f"Websites sync failed: {e}")

        status = SyncStatus(
            last_sync_at=self.clock(),
            profiles_count=profiles_count,
            websites_count=websites_count,
            success=not errors,
            errors=errors
        )

        # Single overwrite; the status is never partially updated
        self.cache.put(SYNC_STATUS_KEY, status.to_dict(), ttl=self.status_ttl)

        logger.log_sync_run(profiles_count, websites_count, errors, (time.monotonic() - start_time) * 1000)
        return status

    def get_sync_status(self) -> Optional[SyncStatus]:
        """Last recorded sync status, if still cached."""
        data = self.cache.get(SYNC_STATUS_KEY)
        if not isinstance(data, dict):
            return None
        try:
            return SyncStatus.from_dict(data)
        except (KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable sync status: {e}")
            return None
