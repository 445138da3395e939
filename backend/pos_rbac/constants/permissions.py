"""Central definitions to avoid typos in permission names and default seed data.
Extend cautiously; never rename names silently, add new ones and migrate grants instead.
"""
from __future__ import annotations
from typing import Dict, List, Tuple

WILDCARD_PERMISSION = '*'

MANAGE_ROLES = 'manage_roles'
MANAGE_USERS = 'manage_users'
ASSIGN_MENU_ROLES = 'assign_menu_roles'
MANAGE_MENU_SECTIONS = 'manage_menu_sections'
CREATE_MENU_SECTIONS = 'create_menu_sections'
EDIT_MENU_SECTIONS = 'edit_menu_sections'
DELETE_MENU_SECTIONS = 'delete_menu_sections'

# category -> [(name, description)]
DEFAULT_PERMISSIONS: Dict[str, List[Tuple[str, str]]] = {
    'General': [
        ('view_dashboard', 'View dashboard'),
        ('manage_settings', 'Manage system settings'),
    ],
    'Inventory': [
        ('manage_categories', 'Add, edit, delete categories'),
        ('manage_products', 'Add, edit, delete products'),
    ],
    'Sales': [
        ('manage_sales', 'View sales history and details'),
        ('process_sales', 'Process sales transactions'),
    ],
    'Administration': [
        (MANAGE_USERS, 'Add, edit, delete users'),
        (MANAGE_ROLES, 'Add, edit, delete roles and assign permissions'),
        (ASSIGN_MENU_ROLES, 'Assign navigation menu sections to roles'),
    ],
    'Menu': [
        (MANAGE_MENU_SECTIONS, 'Full control over navigation menu sections'),
        (CREATE_MENU_SECTIONS, 'Create navigation menu sections'),
        (EDIT_MENU_SECTIONS, 'Edit navigation menu sections'),
        (DELETE_MENU_SECTIONS, 'Delete navigation menu sections'),
    ],
}


def build_all_permission_names() -> List[str]:
    return [name for perms in DEFAULT_PERMISSIONS.values() for name, _ in perms]

ALL_PERMISSION_NAMES = build_all_permission_names()

ROLE_PRESETS: Dict[str, List[str]] = {
    'Admin': [WILDCARD_PERMISSION],
    'Cashier': ['view_dashboard', 'manage_sales', 'process_sales'],
}

SUPER_ADMIN_ROLE = 'Admin'

# (section_key, section_name, icon, sort_order)
DEFAULT_MENU_SECTIONS: List[Tuple[str, str, str, int]] = [
    ('dashboard', 'Dashboard', 'bi-speedometer2', 1),
    ('sales', 'Sales', 'bi-cart', 2),
    ('inventory', 'Inventory', 'bi-box-seam', 3),
    ('reports', 'Reports', 'bi-graph-up', 4),
    ('admin', 'Administration', 'bi-gear', 5),
]

CASHIER_MENU = {'dashboard': {'visible': True, 'priority': False}, 'sales': {'visible': True, 'priority': True}}
