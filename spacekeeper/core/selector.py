"""Eviction candidate selection.

Picks the least recently touched transfers on the same volume and group as
the one that needs space, accumulating their full size until the deficit is
covered. Greedy accumulation may overshoot the deficit by part of the last
candidate; it never stops short while candidates remain.
"""

from typing import Hashable, Iterable, Optional

from spacekeeper.core.models import EvictionPlan, Transfer


def activity_sort_key(transfer: Transfer):
    """Oldest first; transfers with no recorded activity come before all others."""
    stamp = transfer.last_activity
    if stamp is None:
        return (0, 0.0)
    return (1, stamp)


def select_eviction_candidates(
    transfers: Iterable[Transfer],
    target: Optional[Transfer],
    volume_identity: Hashable,
    group_id: int,
    deficit: int,
) -> EvictionPlan:
    """Build the eviction plan for ``deficit`` bytes.

    Args:
        transfers: All transfers known to the engine, in insertion order.
            Copied before use so the caller's collection may change meanwhile.
        target: The transfer that needs space. Never a candidate. None when the
            transfer is not in the engine yet (RPC add).
        volume_identity: Volume the space is needed on.
        group_id: Only transfers in this group are considered.
        deficit: Bytes that must be reclaimed.

    Returns:
        EvictionPlan with candidates in deletion order. ``sufficient`` is False
        when the scoped transfers cannot cover the deficit, including when
        there are none at all.
    """
    snapshot = list(transfers)

    if deficit <= 0:
        return EvictionPlan(candidates=[], total_reclaimable=0, deficit=0)

    scoped = [
        t for t in snapshot
        if t is not target
        and (target is None or t.transfer_id != target.transfer_id)
        and t.volume_identity == volume_identity
        and t.group_id == group_id
    ]
    # sorted() is stable, so equal keys keep snapshot (insertion) order
    scoped = sorted(scoped, key=activity_sort_key)

    candidates = []
    reclaimable = 0
    for t in scoped:
        if reclaimable >= deficit:
            break
        reclaimable += t.size_when_done
        candidates.append(t)

    return EvictionPlan(candidates=candidates, total_reclaimable=reclaimable, deficit=deficit)
