from __future__ import annotations
"""Reusable validation helpers for role, permission and menu section input.

Each helper returns a list of error messages instead of raising, so a caller can
collect every problem in a form before deciding to reject it.
"""
import re
from typing import Any, Iterable, List, Optional, Tuple

ROLE_NAME_RE = re.compile(r'^[A-Za-z0-9\s\-_]+$')
PERMISSION_NAME_RE = re.compile(r'^[A-Za-z0-9_]+$')
SECTION_KEY_RE = re.compile(r'^[a-z_]+$')
REDIRECT_URL_RE = re.compile(r'^[A-Za-z0-9/.\-_]+$')

ROLE_NAME_MIN = 2
ROLE_NAME_MAX = 100


def validate_role_name(name: Optional[str]) -> List[str]:
    if not name:
        return ['Role name is required']
    if len(name) < ROLE_NAME_MIN:
        return [f'Role name must be at least {ROLE_NAME_MIN} characters long']
    if len(name) > ROLE_NAME_MAX:
        return [f'Role name must be at most {ROLE_NAME_MAX} characters long']
    if not ROLE_NAME_RE.match(name):
        return ['Role name can only contain letters, numbers, spaces, hyphens, and underscores']
    return []


def validate_permission_name(name: Optional[str]) -> List[str]:
    if not name:
        return ['Permission name is required']
    if not PERMISSION_NAME_RE.match(name):
        return ['Permission name can only contain letters, numbers, and underscores']
    return []


def validate_section_key(key: Optional[str]) -> List[str]:
    if not key:
        return ['Section key is required']
    if not SECTION_KEY_RE.match(key):
        return ['Section key must contain only lowercase letters and underscores']
    return []


def validate_redirect_url(url: Optional[str]) -> List[str]:
    if not url:
        return ['Redirect URL is required']
    if not REDIRECT_URL_RE.match(url):
        return ['Redirect URL contains invalid characters']
    return []


def coerce_ids(raw: Iterable[Any], label: str) -> Tuple[List[int], List[str]]:
    """Convert submitted ids to ints, dropping duplicates but keeping order."""
    ids: List[int] = []
    for value in raw or []:
        if isinstance(value, bool):
            return [], [f'Invalid {label} id: {value!r}']
        try:
            ident = int(value)
        except (TypeError, ValueError):
            return [], [f'Invalid {label} id: {value!r}']
        if ident not in ids:
            ids.append(ident)
    return ids, []


def clean_text(value: Any) -> str:
    return str(value).strip() if value is not None else ''


def parse_flag(value: Any) -> bool:
    # Form posts send "on"/"1"; JSON clients send booleans
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'on', 'yes')
    return bool(value)

__all__ = [
    'validate_role_name', 'validate_permission_name', 'validate_section_key', 'validate_redirect_url',
    'coerce_ids', 'clean_text', 'parse_flag',
]
