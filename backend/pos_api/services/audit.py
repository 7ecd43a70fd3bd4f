"""
Audit logging service.
Records order and payment changes in the caller's transaction.
"""

import json
from typing import Any, Optional

from sqlalchemy.orm import Session

from pos_api.models import AuditLog


def log_change(
    db: Session,
    *,
    outlet_id: int,
    entity_type: str,
    entity_id: int,
    action: str,
    actor: Optional[dict[str, Any]] = None,
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
) -> AuditLog:
    """
    Log a change to an entity.

    Args:
        db: Database session
        outlet_id: Outlet the entity belongs to
        entity_type: "order" or "payment"
        entity_id: ID of the entity
        action: One of AuditAction
        actor: ``{"user_id", "role"}`` of the staff member, None for
            customers and system jobs
        old_values: Previous state
        new_values: New state

    Returns:
        Created AuditLog entry
    """
    actor = actor or {}
    audit_entry = AuditLog(
        outlet_id=outlet_id,
        actor_id=actor.get("user_id"),
        actor_role=actor.get("role"),
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        old_values=json.dumps(old_values, default=str) if old_values else None,
        new_values=json.dumps(new_values, default=str) if new_values else None,
    )

    db.add(audit_entry)
    # Don't commit here - let the caller handle the transaction
    return audit_entry
