# permissions/roles.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from rest_framework.permissions import BasePermission


# =========================================================
# ROLE CONSTANTS (STAFF JOB ROLES)
# =========================================================
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"  # branch manager
ROLE_SALESMAN = "salesman"

STAFF_ROLES = {
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_SALESMAN,
}

# Roles that see every branch. Everyone else is scoped to user.branch.
CROSS_BRANCH_ROLES = {ROLE_ADMIN}


# =========================================================
# CAPABILITIES (THE REAL PERMISSION LANGUAGE)
# =========================================================
# Views and services protect capabilities, not raw roles.
CAP_PAYMENTS_RECORD = "payments.record"
CAP_LEDGER_VIEW = "ledger.view"

CAP_INVOICES_CREATE = "invoices.create"

CAP_ENTITIES_MANAGE_CUSTOMERS = "entities.manage_customers"
CAP_ENTITIES_MANAGE_SUPPLIERS = "entities.manage_suppliers"

CAP_BRANCHES_MANAGE = "branches.manage"

ALL_CAPABILITIES = {
    CAP_PAYMENTS_RECORD,
    CAP_LEDGER_VIEW,
    CAP_INVOICES_CREATE,
    CAP_ENTITIES_MANAGE_CUSTOMERS,
    CAP_ENTITIES_MANAGE_SUPPLIERS,
    CAP_BRANCHES_MANAGE,
}


# =========================================================
# ROLE → CAPABILITY MAP
# =========================================================
ROLE_CAPABILITIES: dict[str, set[str]] = {
    ROLE_ADMIN: {
        *ALL_CAPABILITIES,
    },
    ROLE_MANAGER: {
        CAP_PAYMENTS_RECORD,
        CAP_LEDGER_VIEW,
        CAP_INVOICES_CREATE,
        CAP_ENTITIES_MANAGE_CUSTOMERS,
    },
    ROLE_SALESMAN: {
        CAP_LEDGER_VIEW,
        CAP_INVOICES_CREATE,
        CAP_ENTITIES_MANAGE_CUSTOMERS,
        # recording payments against supplier/customer balances is not a
        # counter job; managers and admins do it
    },
}


# =========================================================
# Helpers
# =========================================================
def get_user_role(user) -> Optional[str]:
    return getattr(user, "role", None)


def capabilities_for_role(role: Optional[str]) -> set[str]:
    return set(ROLE_CAPABILITIES.get(role, set()))


def is_enabled(user) -> bool:
    """Inactive or not-yet-approved accounts hold no capabilities."""
    return bool(getattr(user, "is_active", True) and getattr(user, "is_approved", True))


def effective_capabilities_for(user) -> set[str]:
    if not is_enabled(user):
        return set()
    return capabilities_for_role(get_user_role(user))


# =========================================================
# ACTING USER (explicit caller identity for services)
# =========================================================
@dataclass(frozen=True)
class ActingUser:
    """
    Caller identity passed into every core payment/ledger operation.

    Services never read request/session state; views build this once
    from request.user and hand it down.
    """

    id: str
    role: str
    branch_id: Optional[str] = None

    @classmethod
    def from_user(cls, user) -> "ActingUser":
        branch_id = getattr(user, "branch_id", None)
        return cls(
            id=str(user.pk),
            role=(get_user_role(user) or "") if is_enabled(user) else "",
            branch_id=str(branch_id) if branch_id else None,
        )

    @property
    def capabilities(self) -> set[str]:
        return capabilities_for_role(self.role)

    def has_capability(self, capability: str) -> bool:
        return capability in self.capabilities

    @property
    def is_privileged(self) -> bool:
        return self.role in CROSS_BRANCH_ROLES

    def can_access_branch(self, branch_id) -> bool:
        if self.is_privileged:
            return True
        if not self.branch_id or branch_id is None:
            return False
        return str(branch_id) == self.branch_id


# =========================================================
# Base Role Permission (Internal Use)
# =========================================================
class BaseRolePermission(BasePermission):
    """
    Base permission for role-based access control.

    Subclasses must define:
    - allowed_roles (set)
    """

    allowed_roles: set[str] = set()

    def has_permission(self, request, view):
        user = request.user

        if not user or not user.is_authenticated:
            return False

        if not is_enabled(user):
            return False

        user_role = get_user_role(user)
        if not user_role:
            return False

        return user_role in self.allowed_roles


# =========================================================
# Capability Permissions
# =========================================================
class HasCapability(BasePermission):
    """
    Require a specific capability.

    Usage:
        permission_classes = [IsAuthenticated, HasCapability]
        view.required_capability = CAP_PAYMENTS_RECORD
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        required = getattr(view, "required_capability", None)
        if not required:
            # If not set, deny-by-default to avoid accidental open endpoints
            return False

        return required in effective_capabilities_for(user)


# =========================================================
# Role Permissions
# =========================================================
class IsAdmin(BaseRolePermission):
    allowed_roles = {ROLE_ADMIN}


class IsManagerOrAdmin(BaseRolePermission):
    allowed_roles = {ROLE_MANAGER, ROLE_ADMIN}


class IsStaff(BaseRolePermission):
    allowed_roles = STAFF_ROLES
