from __future__ import annotations
from typing import Any, Dict, Optional
from pos_rbac import get_db
from pos_rbac.models.audit import ActivityLog


def add_activity(
    user_id: Optional[int],
    action: str,
    code: Optional[str] = None,
    entity: Optional[str] = None,
    entity_id: Optional[Any] = None,
    details: Optional[Dict[str, Any]] = None,
):
    """Persist an activity log entry within the current DB session.

    Parameters:
      user_id: acting user (0 when unknown, e.g. seed scripts)
      action: human readable sentence shown in the activity screen
      code: short action code e.g. ROLE.CREATE, ROLE.PERM.GRANT, MENU.ASSIGN
      entity: optional entity name (Role, Permission, MenuSection)
      entity_id: optional primary key
      details: additional JSON-safe dictionary (will be shallow copied)
    """
    session = get_db()
    log = ActivityLog(
        user_id=user_id or 0,
        action=action,
        action_code=code,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        details=dict(details or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
