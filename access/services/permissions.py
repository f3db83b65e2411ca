"""
Permission resolution.

The effective permission set of a user is the union of

* the permissions of every active, unexpired role assignment whose role is
  active,
* the user's direct permissions, and
* every active temporary permission that has not yet expired,

collapsed to the ``admin`` wildcard when ``admin`` appears in any source.

The result is denormalised onto ``User.permissions`` by
:func:`refresh_user_permissions` so that the capability guard can read it
without joins.  Nothing invalidates that column automatically: every
service that changes roles, assignments, temporary permissions or direct
permissions calls :func:`refresh_user_permissions` inside its own
transaction.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound

from access.models import StaffRoleAssignment, TemporaryPermission
from access.permset import PermissionSet
from access.services.notifications import notify_permissions_changed

logger = logging.getLogger(__name__)

User = get_user_model()


def active_assignments(now=None):
    """Assignments that currently contribute permissions."""
    now = now or timezone.now()
    return StaffRoleAssignment.objects.filter(
        Q(expires_at__isnull=True) | Q(expires_at__gt=now),
        is_active=True,
        role__is_active=True,
    )


def active_temporary_permissions(now=None):
    now = now or timezone.now()
    return TemporaryPermission.objects.filter(is_active=True, expires_at__gt=now)


def get_user_permissions(user_id) -> PermissionSet:
    """Compute the effective permission set.  Unknown users get an empty set."""
    user = User.objects.filter(id=user_id).only('id', 'direct_permissions').first()
    if not user:
        return PermissionSet.empty()

    now = timezone.now()
    direct = user.direct_permissions or []
    role_perms: List[str] = []
    for perms in active_assignments(now).filter(staff_member__user_id=user_id).values_list('role__permissions', flat=True):
        role_perms.extend(perms or [])
    temporary = active_temporary_permissions(now).filter(user_id=user_id).values_list('permission', flat=True)
    return PermissionSet.of(direct, role_perms, temporary)


def has_permission(user_id, permission: str) -> bool:
    return get_user_permissions(user_id).allows(permission)


def has_any_permission(user_id, permissions: Iterable[str]) -> bool:
    return get_user_permissions(user_id).allows_any(permissions)


def has_all_permissions(user_id, permissions: Iterable[str]) -> bool:
    return get_user_permissions(user_id).allows_all(permissions)


def refresh_user_permissions(user_id) -> Optional[PermissionSet]:
    """Recompute the effective set and persist it onto the user row.

    Returns None when the user does not exist.  A realtime notice is sent
    once the surrounding transaction commits.
    """
    if user_id is None:
        return None
    effective = get_user_permissions(user_id)
    stored = effective.to_list()
    updated = User.objects.filter(id=user_id).update(
        permissions=stored,
        permissions_refreshed_at=timezone.now(),
    )
    if not updated:
        return None
    logger.debug('refreshed permissions for user %s: %d entries', user_id, len(stored))
    transaction.on_commit(lambda: notify_permissions_changed(user_id, stored))
    return effective


def _get_user_or_404(user_id):
    user = User.objects.select_for_update().filter(id=user_id).first()
    if not user:
        raise NotFound(f"User with ID '{user_id}' not found")
    return user


@transaction.atomic
def add_user_permission(user_id, permission: str) -> List[str]:
    """Add a direct permission.  Adding one already present is a no-op."""
    user = _get_user_or_404(user_id)
    current = list(user.direct_permissions or [])
    if permission not in current:
        current.append(permission)
        user.direct_permissions = current
        user.save(update_fields=['direct_permissions'])
        logger.info('direct permission %s added to user %s', permission, user_id)
    refresh_user_permissions(user_id)
    return current


@transaction.atomic
def remove_user_permission(user_id, permission: str) -> List[str]:
    """Remove a direct permission.  Removing one that is absent is a no-op."""
    user = _get_user_or_404(user_id)
    current = list(user.direct_permissions or [])
    if permission in current:
        current = [p for p in current if p != permission]
        user.direct_permissions = current
        user.save(update_fields=['direct_permissions'])
        logger.info('direct permission %s removed from user %s', permission, user_id)
    refresh_user_permissions(user_id)
    return current


@transaction.atomic
def set_user_permissions(user_id, permissions: Iterable[str]) -> List[str]:
    """Replace the direct permission list (order kept, duplicates dropped)."""
    user = _get_user_or_404(user_id)
    cleaned = list(dict.fromkeys(p for p in permissions if p))
    user.direct_permissions = cleaned
    user.save(update_fields=['direct_permissions'])
    refresh_user_permissions(user_id)
    return cleaned


def users_with_permission(permission: str) -> List[int]:
    """Ids of users whose cached set grants ``permission``."""
    return users_with_any_permission([permission])


def users_with_any_permission(permissions: Iterable[str]) -> List[int]:
    wanted = list(permissions)
    ids = []
    for uid, cached in User.objects.filter(is_active=True).values_list('id', 'permissions').iterator():
        if PermissionSet.of(cached or []).allows_any(wanted):
            ids.append(uid)
    return ids
