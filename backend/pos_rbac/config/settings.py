"""Environment driven settings for the app factory.

Values are read once per ``create_app`` call; tests pass an override dict instead
of touching the environment.
"""
from __future__ import annotations
from typing import Any, Dict, Tuple
import os

DEFAULT_ADMIN_ROLE_NAMES = ('Admin', 'admin', 'Administrator', 'administrator')
DEFAULT_PROTECTED_ROLE_NAMES = ('admin', 'administrator', 'super admin')


def _split_names(raw: str | None, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if raw is None:
        return default
    return tuple(n.strip() for n in raw.split(',') if n.strip())


def load_settings() -> Dict[str, Any]:
    return {
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'dev-secret'),
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///dev.db'),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO').upper(),
        # Role names treated as super admin even without the is_super_admin flag
        'RBAC_ADMIN_ROLE_NAMES': _split_names(os.getenv('RBAC_ADMIN_ROLE_NAMES'), DEFAULT_ADMIN_ROLE_NAMES),
        # Compared lowercase
        'RBAC_PROTECTED_ROLE_NAMES': _split_names(os.getenv('RBAC_PROTECTED_ROLE_NAMES'), DEFAULT_PROTECTED_ROLE_NAMES),
    }
