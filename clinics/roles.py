"""
Role constants and role predicates.

Roles are stored on :class:`clinics.models.UserPermission`.  Legacy
values are still present in the data, so every comparison goes through
:func:`normalize_role` first.
"""
from __future__ import annotations

from typing import Iterable, Optional

ADMIN = 'admin'
CLINIC_ADMIN = 'clinic_admin'
MANAGER = 'manager'
THERAPIST = 'therapist'
STAFF = 'staff'
CUSTOMER = 'customer'

ROLES = frozenset({ADMIN, CLINIC_ADMIN, MANAGER, THERAPIST, STAFF, CUSTOMER})

# Headquarters roles: organisation-wide visibility (still bound by clinic scope)
HQ_ROLES = frozenset({ADMIN})
CROSS_CLINIC_ROLES = frozenset({ADMIN})
ADMIN_UI_ROLES = frozenset({ADMIN, CLINIC_ADMIN})
CLINIC_ADMIN_ROLES = frozenset({ADMIN, CLINIC_ADMIN, MANAGER})
STAFF_ROLES = frozenset({ADMIN, CLINIC_ADMIN, MANAGER, THERAPIST, STAFF})

DEPRECATED_ROLE_MAPPING = {
    'clinic_manager': CLINIC_ADMIN,
}


def normalize_role(role: Optional[str]) -> Optional[str]:
    """Map a deprecated role to its canonical name; other values pass through."""
    if role is None:
        return None
    return DEPRECATED_ROLE_MAPPING.get(role, role)


def normalize_roles(roles: Optional[Iterable[str]]) -> frozenset[str]:
    return frozenset(normalize_role(r) for r in (roles or ()) if r)


def is_hq_role(role: Optional[str]) -> bool:
    return normalize_role(role) in HQ_ROLES


def can_access_cross_clinic(role: Optional[str]) -> bool:
    return normalize_role(role) in CROSS_CLINIC_ROLES


def can_access_admin_ui(role: Optional[str]) -> bool:
    return normalize_role(role) in ADMIN_UI_ROLES


def can_manage_clinic_settings(role: Optional[str]) -> bool:
    return normalize_role(role) in CLINIC_ADMIN_ROLES


def is_staff_role(role: Optional[str]) -> bool:
    return normalize_role(role) in STAFF_ROLES
