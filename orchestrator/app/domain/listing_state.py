"""Listing production-status workflow.

``LISTING_TRANSITIONS`` is the single adjacency table for non-privileged actors.
Privileged actors bypass it entirely (administrative override). Milestone stamping
lives here too so every writer stamps the same fields for the same edge.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from orchestrator.app.constants import ActorType, ListingStatus
from orchestrator.app.domain.models import Actor, Listing

S = ListingStatus

_HOLDABLE = frozenset(
    {
        S.PENDING,
        S.SCHEDULED,
        S.IN_PROGRESS,
        S.STAGED,
        S.AWAITING_EDITING,
        S.IN_EDITING,
        S.PROCESSING,
    }
)

LISTING_TRANSITIONS: dict[ListingStatus, frozenset[ListingStatus]] = {
    S.PENDING: frozenset({S.SCHEDULED, S.ON_HOLD, S.CANCELLED}),
    S.SCHEDULED: frozenset({S.IN_PROGRESS, S.PENDING, S.ON_HOLD, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.STAGED, S.PROCESSING, S.ON_HOLD, S.CANCELLED}),
    S.STAGED: frozenset({S.PROCESSING, S.AWAITING_EDITING, S.IN_EDITING, S.READY_FOR_QC, S.ON_HOLD, S.CANCELLED}),
    S.PROCESSING: frozenset({S.AWAITING_EDITING, S.READY_FOR_QC, S.ON_HOLD, S.CANCELLED}),
    S.AWAITING_EDITING: frozenset({S.IN_EDITING, S.ON_HOLD, S.CANCELLED}),
    S.IN_EDITING: frozenset({S.READY_FOR_QC, S.AWAITING_EDITING, S.ON_HOLD, S.CANCELLED}),
    S.READY_FOR_QC: frozenset({S.IN_QC}),
    S.IN_QC: frozenset({S.DELIVERED, S.IN_EDITING}),
    S.ON_HOLD: _HOLDABLE | {S.CANCELLED},
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
}


def allowed_targets(current: ListingStatus) -> frozenset[ListingStatus]:
    return LISTING_TRANSITIONS.get(current, frozenset())


def is_allowed_transition(current: ListingStatus, target: ListingStatus, *, privileged: bool = False) -> bool:
    if privileged:
        return True
    return target in allowed_targets(current)


def milestone_changes(listing: Listing, target: ListingStatus, actor: Actor, now: datetime) -> dict[str, Any]:
    """Field updates that accompany moving ``listing`` to ``target``."""
    changes: dict[str, Any] = {
        "ops_status": target,
        "updated_at": now,
        "stage_entered_at": now,
    }
    if target == S.IN_EDITING:
        changes["editing_started_at"] = now
        if listing.editor_id is None and actor.type == ActorType.STAFF and actor.id:
            changes["editor_id"] = actor.id
    if listing.ops_status == S.IN_EDITING and target == S.READY_FOR_QC:
        changes["editing_completed_at"] = now
    if target == S.DELIVERED:
        changes["delivered_at"] = now
    return changes
