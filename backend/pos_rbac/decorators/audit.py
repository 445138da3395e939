from __future__ import annotations
"""Activity logging decorator for single-row admin endpoints.

Usage examples:

@audit_log('PERMISSION.CREATE', 'Created permission: {name}', entity='Permission', entity_id_key='id',
           detail_keys=['name', 'category'])
def create_permission():
    ... return {'id': perm.id, 'name': perm.name, 'category': perm.category}, 201

Parameters:
  code: required short action code (e.g. PERMISSION.CREATE)
  message: human readable sentence; ``str.format`` is applied with the returned JSON
  entity: optional entity label (Permission, MenuSection)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: name of the path parameter to use for entity_id (fallback if entity_id_key absent).
  detail_keys: list of keys to project from returned JSON into the details dict.

Multi-row operations (role create/edit, grants, menu assignment) log from the
service layer instead, inside their own transaction.

Return handling:
  Flask view functions commonly return one of:
    dict
    (dict, status)
    (dict, status, headers)
  The decorator extracts the first element as the JSON payload while preserving the original return value.
  Error statuses (>= 400) are not logged.
"""

import logging
from functools import wraps
from typing import Any, Iterable, Optional

from flask import g
from pos_rbac.services.audit import add_activity
from pos_rbac import get_db

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, status) where data is the JSON-able dict for inspection."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    return rv, 200


def audit_log(
    code: str,
    message: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    detail_keys: Optional[Iterable[str]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            rv = fn(*args, **kwargs)
            data, status = _extract_payload(rv)
            if status >= 400:
                return rv
            data = data if isinstance(data, dict) else {}
            entity_id = None
            if entity_id_key and entity_id_key in data:
                entity_id = data.get(entity_id_key)
            elif entity_id_arg and entity_id_arg in kwargs:
                entity_id = kwargs.get(entity_id_arg)
            details = {k: data.get(k) for k in (detail_keys or []) if k in data}
            try:
                text = message.format(**data)
            except (KeyError, IndexError):
                text = code
            ctx = g.get('auth_context')
            session = get_db()
            try:
                add_activity(ctx.user_id if ctx else 0, text, code, entity, entity_id, details)
                session.commit()
            except Exception:
                # The main change is already committed; losing the log row must not fail the request
                session.rollback()
                logger.exception('Activity log write failed for %s', code)
            return rv
        return wrapper
    return outer
