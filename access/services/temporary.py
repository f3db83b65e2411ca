"""
Temporary permission ledger.

Each grant moves through ``issued -> (extended)* -> revoked | expired |
deactivated``; deletion removes a grant together with its audit trail.
Every transition writes one :class:`PermissionAuditEntry` and refreshes
the grantee's cached permissions inside the same transaction.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from access.exceptions import Conflict
from access.models import PermissionAuditEntry, StaffMember, TemporaryPermission
from access.services.permissions import (
    active_temporary_permissions,
    has_any_permission,
    refresh_user_permissions,
)

logger = logging.getLogger(__name__)

User = get_user_model()

GRANT_PERMISSIONS = ['grant_temporary_permissions', 'admin']
MANAGE_PERMISSIONS = ['manage_temporary_permissions', 'admin']


def humanize_duration(start: datetime, end: datetime) -> str:
    """Round a span up to whole days, weeks, months or years."""
    days = math.ceil(abs((end - start).total_seconds()) / 86400)
    if days <= 1:
        return '1 day'
    if days < 7:
        return f'{days} days'
    if days < 30:
        return f'{math.ceil(days / 7)} weeks'
    if days < 365:
        return f'{math.ceil(days / 30)} months'
    return f'{math.ceil(days / 365)} years'


def _get_staff(staff_id) -> StaffMember:
    staff = StaffMember.objects.select_related('user').filter(id=staff_id).first()
    if not staff:
        raise NotFound(f"Staff member with ID '{staff_id}' not found")
    return staff


def _require(staff: StaffMember, permissions, message: str) -> None:
    if not has_any_permission(staff.user_id, permissions):
        raise PermissionDenied(message)


def _get_locked(permission_id) -> TemporaryPermission:
    grant = TemporaryPermission.objects.select_for_update().filter(id=permission_id).first()
    if not grant:
        raise NotFound(f"Temporary permission with ID '{permission_id}' not found")
    return grant


def _audit(grant: TemporaryPermission, action: str, performed_by, reason: str, metadata: Optional[Dict[str, Any]] = None):
    return PermissionAuditEntry.objects.create(
        action=action,
        performed_by=str(performed_by),
        reason=reason,
        temporary_permission=grant,
        metadata=metadata or {},
    )


@transaction.atomic
def create_temporary_permission(*, user_id, permission: str, expires_at: datetime, reason: str,
                                granted_by_staff_id) -> TemporaryPermission:
    user = User.objects.select_for_update().filter(id=user_id).first()
    if not user:
        raise NotFound(f"User with ID '{user_id}' not found")
    grantor = _get_staff(granted_by_staff_id)
    _require(grantor, GRANT_PERMISSIONS, 'You do not have permission to grant temporary permissions')

    now = timezone.now()
    if expires_at <= now:
        raise ValidationError({'expiresAt': 'Expiration must be in the future'})
    if active_temporary_permissions(now).filter(user=user, permission=permission).exists():
        raise Conflict(f"User already has an active temporary permission for '{permission}'")

    grant = TemporaryPermission.objects.create(
        user=user,
        permission=permission,
        granted_by=grantor,
        granted_at=now,
        expires_at=expires_at,
        reason=reason,
        is_active=True,
    )
    _audit(
        grant,
        PermissionAuditEntry.ACTION_GRANTED,
        grantor.id,
        f'Temporary permission granted: {reason}',
        {'grantedBy': grantor.display_name, 'duration': humanize_duration(now, expires_at)},
    )
    refresh_user_permissions(user.id)
    logger.info('temporary permission %s granted to user %s by staff %s until %s',
                permission, user.id, grantor.id, expires_at.isoformat())
    return grant


def list_temporary_permissions(*, user_id=None, permission=None, is_active=None, granted_by=None):
    qs = TemporaryPermission.objects.select_related('user', 'granted_by__user')
    if user_id:
        qs = qs.filter(user_id=user_id)
    if permission:
        qs = qs.filter(permission=permission)
    if is_active is not None:
        qs = qs.filter(is_active=is_active)
    if granted_by:
        qs = qs.filter(granted_by_id=granted_by)
    return qs.order_by('-created_at', '-id')


def get_temporary_permission(permission_id) -> TemporaryPermission:
    grant = (
        TemporaryPermission.objects.select_related('user', 'granted_by__user')
        .filter(id=permission_id).first()
    )
    if not grant:
        raise NotFound(f"Temporary permission with ID '{permission_id}' not found")
    return grant


def active_permissions_for_user(user_id):
    return (
        active_temporary_permissions().filter(user_id=user_id)
        .select_related('granted_by__user')
        .order_by('expires_at')
    )


@transaction.atomic
def update_temporary_permission(permission_id, *, staff_id, reason: Optional[str] = None,
                                is_active: Optional[bool] = None) -> TemporaryPermission:
    grant = _get_locked(permission_id)
    staff = _get_staff(staff_id)
    _require(staff, MANAGE_PERMISSIONS, 'You do not have permission to modify temporary permissions')

    update_fields = ['updated_at']
    if reason is not None:
        grant.reason = reason
        update_fields.append('reason')

    if is_active and not grant.is_active:
        now = timezone.now()
        if grant.expires_at <= now:
            raise Conflict('Cannot reactivate an expired temporary permission')
        clash = (
            active_temporary_permissions(now)
            .filter(user_id=grant.user_id, permission=grant.permission)
            .exclude(id=grant.id)
        )
        if clash.exists():
            raise Conflict(f"User already has an active temporary permission for '{grant.permission}'")

    changed = False
    if is_active is not None:
        changed = grant.reactivate() if is_active else grant.deactivate()
        if changed:
            update_fields.append('is_active')
    grant.save(update_fields=update_fields)

    if changed:
        action = PermissionAuditEntry.ACTION_ACTIVATED if grant.is_active else PermissionAuditEntry.ACTION_DEACTIVATED
        verb = 'activated' if grant.is_active else 'deactivated'
        _audit(grant, action, staff.id, f'Permission {verb}: {reason}' if reason else f'Permission {verb}')
        refresh_user_permissions(grant.user_id)
        logger.info('temporary permission %s %s by staff %s', grant.id, verb, staff.id)
    return grant


@transaction.atomic
def extend_temporary_permission(permission_id, *, new_expires_at: datetime, reason: str, staff_id) -> TemporaryPermission:
    grant = _get_locked(permission_id)
    if not grant.is_active:
        raise Conflict('Cannot extend an inactive temporary permission')
    staff = _get_staff(staff_id)
    _require(staff, MANAGE_PERMISSIONS, 'You do not have permission to extend temporary permissions')
    if new_expires_at <= grant.expires_at:
        raise Conflict('New expiration date must be after current expiration date')

    old_expires_at = grant.expires_at
    grant.expires_at = new_expires_at
    grant.save(update_fields=['expires_at', 'updated_at'])
    _audit(
        grant,
        PermissionAuditEntry.ACTION_EXTENDED,
        staff.id,
        f'Permission extended: {reason}',
        {
            'oldExpiresAt': old_expires_at.isoformat(),
            'newExpiresAt': new_expires_at.isoformat(),
            'extendedBy': staff.id,
        },
    )
    # A grant that lapsed but was not swept yet becomes effective again.
    refresh_user_permissions(grant.user_id)
    logger.info('temporary permission %s extended to %s', grant.id, new_expires_at.isoformat())
    return grant


@transaction.atomic
def revoke_temporary_permission(permission_id, *, reason: str, staff_id) -> TemporaryPermission:
    grant = _get_locked(permission_id)
    if not grant.is_active:
        raise Conflict('Permission is already inactive')
    staff = _get_staff(staff_id)
    _require(staff, MANAGE_PERMISSIONS, 'You do not have permission to revoke temporary permissions')

    grant.deactivate()
    grant.save(update_fields=['is_active', 'updated_at'])
    _audit(grant, PermissionAuditEntry.ACTION_REVOKED, staff.id, f'Permission revoked: {reason}')
    refresh_user_permissions(grant.user_id)
    logger.info('temporary permission %s revoked by staff %s', grant.id, staff.id)
    return grant


@transaction.atomic
def delete_temporary_permission(permission_id, *, staff_id) -> None:
    grant = _get_locked(permission_id)
    staff = _get_staff(staff_id)
    _require(staff, MANAGE_PERMISSIONS, 'You do not have permission to delete temporary permissions')

    was_active = grant.is_active
    user_id = grant.user_id
    PermissionAuditEntry.objects.filter(temporary_permission=grant).delete()
    grant.delete()
    if was_active:
        refresh_user_permissions(user_id)
    logger.info('temporary permission %s deleted by staff %s', permission_id, staff.id)


@transaction.atomic
def cleanup_expired_permissions(now=None) -> int:
    """Deactivate every active grant whose expiry has passed.

    Safe to run repeatedly: grants already inactive are not touched.
    """
    now = now or timezone.now()
    expired = list(
        TemporaryPermission.objects.select_for_update()
        .filter(is_active=True, expires_at__lte=now)
    )
    user_ids = set()
    for grant in expired:
        grant.deactivate()
        grant.save(update_fields=['is_active', 'updated_at'])
        _audit(grant, PermissionAuditEntry.ACTION_EXPIRED, PermissionAuditEntry.SYSTEM_ACTOR,
               'Permission expired automatically')
        user_ids.add(grant.user_id)
    for uid in user_ids:
        refresh_user_permissions(uid)
    if expired:
        logger.info('cleaned up %d expired temporary permission(s)', len(expired))
    return len(expired)
