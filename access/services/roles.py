"""
Roles and the staff role assignment ledger.

Role CRUD enforces unique names and codes.  Assignments are unique per
(staff member, role, scope, scope id): assigning a role that was removed
earlier reactivates the original row.  Every change that can alter a
user's effective permissions refreshes the cached set of each affected
user before the transaction commits.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, Iterable, Optional

from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound

from access.exceptions import Conflict
from access.models import Role, StaffMember, StaffRoleAssignment
from access.services.audit import log_action
from access.services.permissions import refresh_user_permissions

logger = logging.getLogger(__name__)

ROLE_FIELDS = ('name', 'code', 'description', 'permissions', 'is_active')


def _refresh_holders(role: Role) -> int:
    user_ids = set(
        StaffRoleAssignment.objects.filter(role=role, is_active=True)
        .values_list('staff_member__user_id', flat=True)
    )
    for uid in user_ids:
        refresh_user_permissions(uid)
    return len(user_ids)


def _clean_permissions(perms: Optional[Iterable[str]]) -> list:
    return list(dict.fromkeys(p.strip() for p in (perms or []) if p and p.strip()))


# ---------------------------------------------------------------------------
# Role CRUD
# ---------------------------------------------------------------------------

@transaction.atomic
def create_role(*, name: str, code: str, description: str = '', permissions=None, is_active: bool = True) -> Role:
    if Role.objects.filter(Q(name=name) | Q(code=code)).exists():
        raise Conflict('Role with this name or code already exists')
    role = Role.objects.create(
        name=name,
        code=code,
        description=description or '',
        permissions=_clean_permissions(permissions),
        is_active=is_active,
    )
    logger.info('role %s (%s) created', role.code, role.id)
    return role


def list_roles(*, is_active: Optional[bool] = None, search: Optional[str] = None):
    qs = Role.objects.annotate(
        active_assignments=Count('staff_role_assignments', filter=Q(staff_role_assignments__is_active=True))
    )
    if is_active is not None:
        qs = qs.filter(is_active=is_active)
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(code__icontains=search) | Q(description__icontains=search))
    return qs.order_by('name')


def get_role(role_id) -> Role:
    role = Role.objects.filter(id=role_id).first()
    if not role:
        raise NotFound(f"Role with ID {role_id} not found")
    return role


def get_role_by_code(code: str) -> Role:
    role = Role.objects.filter(code=code).first()
    if not role:
        raise NotFound(f"Role with code {code} not found")
    return role


@transaction.atomic
def update_role(role_id, **changes) -> Role:
    role = Role.objects.select_for_update().filter(id=role_id).first()
    if not role:
        raise NotFound(f"Role with ID {role_id} not found")

    name = changes.get('name')
    code = changes.get('code')
    if name or code:
        clash = Q()
        if name:
            clash |= Q(name=name)
        if code:
            clash |= Q(code=code)
        if Role.objects.filter(clash).exclude(id=role.id).exists():
            raise Conflict('Role with this name or code already exists')

    old_permissions = list(role.permissions or [])
    old_active = role.is_active
    update_fields = []
    for f in ROLE_FIELDS:
        if f not in changes or changes[f] is None:
            continue
        value = _clean_permissions(changes[f]) if f == 'permissions' else changes[f]
        setattr(role, f, value)
        update_fields.append(f)
    if update_fields:
        role.save(update_fields=update_fields + ['updated_at'])

    if role.is_active != old_active or sorted(role.permissions or []) != sorted(old_permissions):
        refreshed = _refresh_holders(role)
        logger.info('role %s changed; refreshed %d holder(s)', role.code, refreshed)
    return role


@transaction.atomic
def delete_role(role_id) -> None:
    """Delete a role once no active assignment references it.

    Inactive assignment rows are history of the role and go with it.
    """
    role = Role.objects.select_for_update().filter(id=role_id).first()
    if not role:
        raise NotFound(f"Role with ID {role_id} not found")
    if role.staff_role_assignments.filter(is_active=True).exists():
        raise Conflict('Cannot delete role with associated staff members')
    role.staff_role_assignments.all().delete()
    role.delete()
    logger.info('role %s deleted', role_id)


def get_role_stats(role_id) -> Dict[str, Any]:
    role = get_role(role_id)
    assignments = (
        StaffRoleAssignment.objects.filter(role=role)
        .select_related('staff_member__department')
    )
    active = [a for a in assignments if a.is_active]
    distribution = Counter(
        (a.staff_member.department.name if a.staff_member.department else 'Unknown') for a in active
    )
    return {
        'id': role.id,
        'name': role.name,
        'code': role.code,
        'totalAssignments': len(assignments),
        'activeAssignments': len(active),
        'departmentDistribution': dict(distribution),
    }


# ---------------------------------------------------------------------------
# Assignment ledger
# ---------------------------------------------------------------------------

@transaction.atomic
def assign_role_to_staff(
    staff_id,
    role_id,
    *,
    scope: Optional[str] = None,
    scope_id: Optional[str] = None,
    conditions: Any = None,
    expires_at=None,
    assigned_by: Optional[StaffMember] = None,
) -> StaffRoleAssignment:
    staff = StaffMember.objects.select_related('user').filter(id=staff_id).first()
    if not staff:
        raise NotFound(f"Staff member with ID {staff_id} not found")
    role = Role.objects.filter(id=role_id).first()
    if not role:
        raise NotFound(f"Role with ID {role_id} not found")

    scope = scope or StaffRoleAssignment.SCOPE_GLOBAL
    if scope == StaffRoleAssignment.SCOPE_GLOBAL:
        scope_id = None

    existing = (
        StaffRoleAssignment.objects.select_for_update()
        .filter(staff_member=staff, role=role, scope=scope, scope_id=scope_id)
        .first()
    )
    if existing:
        if not existing.reactivate():
            raise Conflict('Role is already assigned to this staff member')
        existing.assigned_at = timezone.now()
        existing.assigned_by = assigned_by
        existing.conditions = conditions
        existing.expires_at = expires_at
        existing.save()
        assignment = existing
        action = 'role_reactivate'
    else:
        assignment = StaffRoleAssignment.objects.create(
            staff_member=staff,
            role=role,
            scope=scope,
            scope_id=scope_id,
            conditions=conditions,
            expires_at=expires_at,
            assigned_by=assigned_by,
        )
        action = 'role_assign'

    refresh_user_permissions(staff.user_id)
    log_action(
        user=assigned_by.user if assigned_by else None,
        action=action,
        object_type='staff_role_assignment',
        object_id=assignment.id,
        detail={'staffId': staff.id, 'roleId': role.id, 'scope': scope, 'scopeId': scope_id},
    )
    logger.info('%s: role %s -> staff %s [%s:%s]', action, role.code, staff.id, scope, scope_id or '*')
    return assignment


@transaction.atomic
def remove_role_from_staff(staff_id, role_id, *, removed_by: Optional[StaffMember] = None) -> int:
    """Deactivate the staff member's active assignments of the role.

    Returns the number of assignments deactivated (one per scope).
    """
    assignments = list(
        StaffRoleAssignment.objects.select_for_update()
        .select_related('staff_member')
        .filter(staff_member_id=staff_id, role_id=role_id, is_active=True)
    )
    if not assignments:
        raise NotFound('Role assignment not found for this staff member')

    for assignment in assignments:
        assignment.deactivate()
        assignment.save(update_fields=['is_active', 'updated_at'])
        log_action(
            user=removed_by.user if removed_by else None,
            action='role_remove',
            object_type='staff_role_assignment',
            object_id=assignment.id,
            detail={'staffId': assignment.staff_member_id, 'roleId': assignment.role_id},
        )
    refresh_user_permissions(assignments[0].staff_member.user_id)
    logger.info('role %s removed from staff %s (%d assignment(s))', role_id, staff_id, len(assignments))
    return len(assignments)


def get_staff_roles(staff_id):
    return (
        StaffRoleAssignment.objects.filter(staff_member_id=staff_id, is_active=True)
        .select_related('role', 'assigned_by__user')
        .order_by('-assigned_at', '-id')
    )


@transaction.atomic
def cleanup_expired_assignments(now=None) -> int:
    """Deactivate active assignments whose expiry has passed.

    Resolution already ignores them; the sweep brings the cached sets of
    their holders back in line and keeps ``get_staff_roles`` current.
    """
    now = now or timezone.now()
    expired = list(
        StaffRoleAssignment.objects.select_for_update()
        .select_related('staff_member')
        .filter(is_active=True, expires_at__isnull=False, expires_at__lte=now)
    )
    user_ids = set()
    for assignment in expired:
        assignment.deactivate()
        assignment.save(update_fields=['is_active', 'updated_at'])
        log_action(
            user=None,
            action='role_expire',
            object_type='staff_role_assignment',
            object_id=assignment.id,
            detail={'staffId': assignment.staff_member_id, 'roleId': assignment.role_id},
        )
        user_ids.add(assignment.staff_member.user_id)
    for uid in user_ids:
        refresh_user_permissions(uid)
    if expired:
        logger.info('cleaned up %d expired role assignment(s)', len(expired))
    return len(expired)
