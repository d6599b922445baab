# Overview: Shared transition rules for approvable documents (sales transactions, visits).

"""
Approval lifecycle shared by SalesTransaction and Visit.

    pending --approve--> approved      (terminal)
    pending --cancel---> cancelled     (transactions, terminal)
    pending --reject---> rejected      (visits, terminal)

Archiving is orthogonal: it flips lifecycle_state to archived and never
touches status. Archived documents cannot transition.
"""

from __future__ import annotations

from ..errors import InvalidTransition
from ..models.catalog import LIFECYCLE_ACTIVE, LIFECYCLE_ARCHIVED
from ..time_utils import utcnow


STATUS_PENDING = "pending"


def ensure_transition(entity, action: str, *, kind: str) -> None:
    """Raise InvalidTransition unless `entity` may leave pending via `action`."""
    if entity.lifecycle_state == LIFECYCLE_ARCHIVED:
        raise InvalidTransition(
            f"Cannot {action} an archived {kind}",
            details={"id": entity.id, "lifecycle_state": entity.lifecycle_state},
        )
    if entity.status != STATUS_PENDING:
        raise InvalidTransition(
            f"Cannot {action} {kind} with status {entity.status}",
            details={"id": entity.id, "status": entity.status, "action": action},
        )


def mark_approved(entity, actor_id: int, approved_status: str = "approved") -> None:
    entity.status = approved_status
    entity.approved_by = actor_id
    entity.approved_at = utcnow()


def mark_archived(entity, *, kind: str) -> None:
    if entity.lifecycle_state != LIFECYCLE_ACTIVE:
        raise InvalidTransition(
            f"{kind.capitalize()} is already archived",
            details={"id": entity.id},
        )
    entity.lifecycle_state = LIFECYCLE_ARCHIVED
    entity.archived_at = utcnow()
