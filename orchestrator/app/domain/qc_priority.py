"""QC review queue ranking. Pure functions: same listings and ``now`` give the same queue."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable

from orchestrator.app.constants import QC_LISTING_STATUSES, ListingStatus
from orchestrator.app.domain.models import Listing, QCQueueEntry

RUSH_BONUS = 100
IN_QC_BONUS = 50
RUSH_HIGH_AFTER_HOURS = 2
MEDIUM_AFTER_HOURS = 4

PRIORITY_HIGH = "high"
PRIORITY_MEDIUM = "medium"
PRIORITY_LOW = "low"


def hours_waiting(updated_at: datetime, now: datetime) -> int:
    seconds = (now - updated_at).total_seconds()
    return max(0, int(seconds // 3600))


def priority_level(is_rush: bool, waited: int) -> str:
    if is_rush and waited > RUSH_HIGH_AFTER_HOURS:
        return PRIORITY_HIGH
    if waited > MEDIUM_AFTER_HOURS:
        return PRIORITY_MEDIUM
    return PRIORITY_LOW


def score_listing(listing: Listing, now: datetime) -> QCQueueEntry:
    waited = hours_waiting(listing.updated_at, now)
    score = waited
    if listing.is_rush:
        score += RUSH_BONUS
    if listing.ops_status == ListingStatus.IN_QC:
        score += IN_QC_BONUS
    return QCQueueEntry(
        listing_id=listing.id,
        priority_score=score,
        priority_level=priority_level(listing.is_rush, waited),
        hours_waiting=waited,
        is_rush=listing.is_rush,
        ops_status=listing.ops_status,
    )


def build_qc_queue(listings: Iterable[Listing], now: datetime) -> list[QCQueueEntry]:
    """Rank listings awaiting QC, highest score first.

    ``sorted`` is stable, so equal scores keep the order the listings were fetched in
    (rush first, then oldest ``updated_at`` first).
    """
    entries = [score_listing(listing, now) for listing in listings if listing.ops_status in QC_LISTING_STATUSES]
    return sorted(entries, key=lambda entry: -entry.priority_score)
