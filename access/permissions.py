"""
Capability-based permission classes.

Views declare the permission names they need with
:func:`RequirePermissions`; the guard checks them against the caller's
cached effective set (``User.permissions``), where ``admin`` grants
everything.
"""
from typing import Iterable

from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission

from .permset import ADMIN, PermissionSet


def caller_permissions(request) -> PermissionSet:
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return PermissionSet.empty()
    return PermissionSet.of(getattr(user, "permissions", None) or [])


class HasPermissions(BasePermission):
    """Base guard; subclasses set ``required`` and ``require_all``."""
    required: tuple = ()
    require_all = False

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated):
            return False
        if not self.required:
            return True
        granted = caller_permissions(request)
        if self.require_all:
            return granted.allows_all(self.required)
        return granted.allows_any(self.required)


def RequirePermissions(permissions: Iterable[str], require_all: bool = False):
    """Build a permission class requiring any (or all) of ``permissions``."""
    required = tuple(permissions)
    joined = ", ".join(required)
    message = (f"Insufficient permissions. Required: {joined}" if require_all or len(required) == 1
               else f"Insufficient permissions. Required one of: {joined}")
    return type(
        "RequirePermissions",
        (HasPermissions,),
        {"required": required, "require_all": require_all, "message": message},
    )


def RequirePermission(permission: str):
    return RequirePermissions([permission], require_all=True)


IsAdmin = RequirePermission(ADMIN)


def get_staff_for_request(request):
    """Return the caller's staff record or refuse the operation."""
    staff = getattr(request.user, "staff_member", None) if request.user else None
    if staff is None:
        raise PermissionDenied("A staff record is required for this operation")
    return staff


def check_permissions(request, permissions: Iterable[str], require_all: bool = False) -> None:
    """Inline variant of :func:`RequirePermissions` for per-method checks."""
    guard = RequirePermissions(permissions, require_all=require_all)()
    if not guard.has_permission(request, None):
        raise PermissionDenied(guard.message)
