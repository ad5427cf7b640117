"""Merge of the offline-first tanda cache with the Ledger's authoritative list"""

from typing import List

from tanda_engine.domain.models import Tanda, TandaStatus


def merge(local_tandas: List[Tanda], remote_tandas: List[Tanda]) -> List[Tanda]:
    """
    Merge local and remote tanda lists.

    The remote list wins for every id it contains. Local entries the Ledger
    does not know about (typically provisional `local_` tandas created while
    offline) are kept and appended after the remote entries, so a stale
    local copy never shadows the Ledger and an unsynced tanda is never lost.

    Ordering: remote order first, then local-only entries in local order.
    """
    remote_ids = {t.id for t in remote_tandas}
    local_only = [t for t in local_tandas if t.id not in remote_ids]
    return [*remote_tandas, *local_only]


def active_tandas(tandas: List[Tanda]) -> List[Tanda]:
    """Tandas still in play (waiting for members or running)"""
    return [t for t in tandas if t.status in (TandaStatus.WAITING, TandaStatus.ACTIVE)]
