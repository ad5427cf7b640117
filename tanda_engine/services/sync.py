"""Background reconciliation of the tanda cache with the Ledger"""

import logging
from typing import List, Optional

from tanda_engine.domain.exceptions import DomainException
from tanda_engine.domain.models import Tanda
from tanda_engine.domain.reconciliation import merge
from tanda_engine.infrastructure.clients.ledger import Ledger
from tanda_engine.infrastructure.observability.metrics import sync_failure_counter
from tanda_engine.services.tanda_cache import TandaCache

logger = logging.getLogger(__name__)


class TandaSyncService:
    def __init__(self, ledger: Ledger, cache: TandaCache):
        self.ledger = ledger
        self.cache = cache

    async def refresh(self) -> Optional[List[Tanda]]:
        """
        Fetch the Ledger's list and merge it into the cache.

        The merge runs against the cache as it is when the fetch returns, so
        tandas created locally while the request was in flight survive.
        Failures are swallowed: the local cache stays valid and is retried
        on the next load. Returns the merged list, or None on failure.
        """
        try:
            remote = await self.ledger.get_tandas()
        except DomainException as e:
            sync_failure_counter.inc()
            logger.warning(f"Background sync failed: {e}")
            return None

        merged = merge(self.cache.all(), remote)
        self.cache.replace_all(merged)
        logger.info("Tanda cache synced", extra={"remote": len(remote), "merged": len(merged)})
        return merged
