"""Unit tests for merging the local tanda cache with the Ledger list"""

from conftest import make_tanda
from tanda_engine.domain.models import TandaStatus
from tanda_engine.domain.reconciliation import active_tandas, merge


def _ids(tandas):
    return [t.id for t in tandas]


def test_local_only_tanda_survives_merge():
    """Test local-only tandas are never dropped"""
    local = [make_tanda("A"), make_tanda("B")]
    remote = [make_tanda("A")]

    merged = merge(local, remote)

    assert _ids(merged) == ["A", "B"]


def test_remote_copy_wins_over_stale_local_copy():
    """Test remote copies replace local ones"""
    local = [make_tanda("A", current_cycle=1)]
    remote = [make_tanda("A", current_cycle=2)]

    merged = merge(local, remote)

    assert len(merged) == 1
    assert merged[0].current_cycle == 2


def test_merge_orders_remote_first_then_local_only():
    """Test merge ordering"""
    local = [make_tanda("local_1"), make_tanda("A"), make_tanda("local_2")]
    remote = [make_tanda("C"), make_tanda("A")]

    assert _ids(merge(local, remote)) == ["C", "A", "local_1", "local_2"]


def test_merge_is_idempotent():
    """Test merging twice changes nothing"""
    local = [make_tanda("A"), make_tanda("local_1")]
    remote = [make_tanda("A"), make_tanda("B")]

    once = merge(local, remote)
    twice = merge(once, remote)

    assert _ids(once) == _ids(twice) == ["A", "B", "local_1"]


def test_merge_with_empty_sides():
    """Test merge with an empty side"""
    assert merge([], []) == []
    assert _ids(merge([make_tanda("A")], [])) == ["A"]
    assert _ids(merge([], [make_tanda("A")])) == ["A"]


def test_active_tandas_excludes_completed():
    """Test active filter"""
    tandas = [
        make_tanda("A", status=TandaStatus.WAITING),
        make_tanda("B", status=TandaStatus.ACTIVE),
        make_tanda("C", status=TandaStatus.COMPLETED),
    ]

    assert _ids(active_tandas(tandas)) == ["A", "B"]
