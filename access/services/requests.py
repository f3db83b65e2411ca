"""
Permission request workflow.

A request starts PENDING with one required approver row per approver and
ends in exactly one of APPROVED, REJECTED, CANCELLED or EXPIRED.  The
aggregate status after each vote is decided by :func:`next_request_status`,
a pure function of the current status and the approver votes.  Recording a
vote, moving the request and issuing the temporary permission happen in a
single transaction, so a failure while issuing the grant leaves the
request PENDING and the vote unrecorded.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, List, Optional, Tuple

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from access.exceptions import Conflict
from access.models import (
    PermissionApprover,
    PermissionAuditEntry,
    PermissionRequest,
    StaffMember,
    TemporaryPermission,
)
from access.services.audit import log_action
from access.services.permissions import (
    active_temporary_permissions,
    has_any_permission,
    refresh_user_permissions,
)

logger = logging.getLogger(__name__)

User = get_user_model()

APPROVAL_PERMISSIONS = ['approve_permission_requests', 'admin']
TERMINAL_STATUSES = (
    PermissionRequest.STATUS_APPROVED,
    PermissionRequest.STATUS_REJECTED,
    PermissionRequest.STATUS_CANCELLED,
    PermissionRequest.STATUS_EXPIRED,
)


def next_request_status(current: str, votes: Iterable[Tuple[str, bool]]) -> str:
    """Aggregate approver votes into the request status.

    ``votes`` is a sequence of ``(approver_status, required)`` pairs.  A
    terminal request never moves.  Any rejection rejects the request;
    otherwise it is approved once every required approver has approved
    (or, with no required approvers, once anyone has approved).
    """
    if current != PermissionRequest.STATUS_PENDING:
        return current
    votes = list(votes)
    if any(s == PermissionApprover.STATUS_REJECTED for s, _ in votes):
        return PermissionRequest.STATUS_REJECTED
    required = [s for s, req in votes if req]
    if required:
        if all(s == PermissionApprover.STATUS_APPROVED for s in required):
            return PermissionRequest.STATUS_APPROVED
    elif any(s == PermissionApprover.STATUS_APPROVED for s, _ in votes):
        return PermissionRequest.STATUS_APPROVED
    return PermissionRequest.STATUS_PENDING


def _default_grant_window() -> timedelta:
    return timedelta(hours=getattr(settings, 'TEMPORARY_PERMISSION_DEFAULT_HOURS', 24))


def _base_queryset():
    return PermissionRequest.objects.select_related('requester').prefetch_related('approvers__user')


@transaction.atomic
def create_request(*, requester_id, permission: str, reason: str,
                   urgency: str = PermissionRequest.URGENCY_NORMAL,
                   expires_at=None, approver_ids: Optional[List[int]] = None,
                   attachments=None, metadata=None) -> PermissionRequest:
    permission = (permission or '').strip()
    if not permission:
        raise ValidationError({'permission': 'Permission is required'})
    if expires_at is not None and expires_at <= timezone.now():
        raise ValidationError({'expiresAt': 'Expiration must be in the future'})
    requester = User.objects.filter(id=requester_id).first()
    if not requester:
        raise NotFound(f"User with ID '{requester_id}' not found")

    approver_ids = list(dict.fromkeys(approver_ids or []))
    if not approver_ids:
        raise ValidationError({'approverIds': 'At least one approver is required'})
    approvers = {u.id: u for u in User.objects.filter(id__in=approver_ids)}
    for uid in approver_ids:
        if uid not in approvers:
            raise NotFound(f"Approver with ID '{uid}' not found")
        if not has_any_permission(uid, APPROVAL_PERMISSIONS):
            raise PermissionDenied(f"User '{uid}' cannot approve permission requests")

    request = PermissionRequest.objects.create(
        requester=requester,
        permission=permission,
        reason=reason,
        urgency=urgency or PermissionRequest.URGENCY_NORMAL,
        expires_at=expires_at,
        attachments=attachments,
        metadata=metadata,
        status=PermissionRequest.STATUS_PENDING,
    )
    # Every listed approver is mandatory; there is no quorum option.
    PermissionApprover.objects.bulk_create([
        PermissionApprover(
            permission_request=request,
            user=approvers[uid],
            role='APPROVER',
            status=PermissionApprover.STATUS_PENDING,
            required=True,
        )
        for uid in approver_ids
    ])
    logger.info('permission request %s created by user %s for %s (%d approver(s))',
                request.id, requester.id, permission, len(approver_ids))
    return get_request(request.id)


def list_requests(*, status=None, urgency=None, requester_id=None, approver_id=None):
    qs = _base_queryset()
    if status:
        qs = qs.filter(status=status)
    if urgency:
        qs = qs.filter(urgency=urgency)
    if requester_id:
        qs = qs.filter(requester_id=requester_id)
    if approver_id:
        qs = qs.filter(approvers__user_id=approver_id).distinct()
    return qs.order_by('-requested_at', '-id')


def get_request(request_id) -> PermissionRequest:
    request = _base_queryset().filter(id=request_id).first()
    if not request:
        raise NotFound(f"Permission request with ID {request_id} not found")
    return request


def _get_locked(request_id) -> PermissionRequest:
    request = PermissionRequest.objects.select_for_update().filter(id=request_id).first()
    if not request:
        raise NotFound(f"Permission request with ID {request_id} not found")
    return request


@transaction.atomic
def update_request(request_id, *, reason=None, urgency=None, expires_at=None) -> PermissionRequest:
    request = _get_locked(request_id)
    if request.status != PermissionRequest.STATUS_PENDING:
        raise Conflict('Only pending requests can be edited')
    update_fields = ['updated_at']
    if reason is not None:
        request.reason = reason
        update_fields.append('reason')
    if urgency is not None:
        request.urgency = urgency
        update_fields.append('urgency')
    if expires_at is not None:
        request.expires_at = expires_at
        update_fields.append('expires_at')
    request.save(update_fields=update_fields)
    return get_request(request.id)


def _issue_grant(request: PermissionRequest, now) -> TemporaryPermission:
    """Mint the temporary permission for an approved request."""
    if active_temporary_permissions(now).filter(user_id=request.requester_id, permission=request.permission).exists():
        raise Conflict(f"Requester already has an active temporary permission for '{request.permission}'")

    first_approver = request.approvers.order_by('id').first()
    grantor = StaffMember.objects.filter(user_id=first_approver.user_id).first() if first_approver else None
    expires_at = request.expires_at or now + _default_grant_window()
    grant = TemporaryPermission.objects.create(
        user_id=request.requester_id,
        permission=request.permission,
        granted_by=grantor,
        granted_at=now,
        expires_at=expires_at,
        reason=f'Granted via permission request: {request.reason}',
        is_active=True,
    )
    PermissionAuditEntry.objects.create(
        action=PermissionAuditEntry.ACTION_GRANTED,
        performed_by=str(grantor.id) if grantor else PermissionAuditEntry.SYSTEM_ACTOR,
        reason=f'Temporary permission granted via request #{request.id}',
        temporary_permission=grant,
        metadata={'permissionRequestId': request.id},
    )
    refresh_user_permissions(request.requester_id)
    return grant


@transaction.atomic
def decide(request_id, approver_id, *, status: str, comments: str = '') -> PermissionRequest:
    """Record one approver's vote and move the request if the votes settle it."""
    if status not in (PermissionApprover.STATUS_APPROVED, PermissionApprover.STATUS_REJECTED):
        raise ValidationError({'status': 'Status must be APPROVED or REJECTED'})

    request = _get_locked(request_id)
    now = timezone.now()
    if request.status != PermissionRequest.STATUS_PENDING:
        raise Conflict(f'Permission request is already {request.status}')
    if request.expires_at and request.expires_at <= now:
        raise Conflict('Permission request has expired')

    approver = (
        PermissionApprover.objects.select_for_update()
        .filter(permission_request=request, user_id=approver_id).first()
    )
    if not approver:
        raise PermissionDenied('User is not an approver for this request')
    if approver.status != PermissionApprover.STATUS_PENDING:
        raise Conflict('Approver has already recorded a decision')

    approver.status = status
    approver.comments = comments or ''
    approver.approved_at = now if status == PermissionApprover.STATUS_APPROVED else None
    approver.save(update_fields=['status', 'comments', 'approved_at', 'updated_at'])

    votes = request.approvers.values_list('status', 'required')
    new_status = next_request_status(request.status, votes)
    if new_status != request.status:
        request.status = new_status
        request.save(update_fields=['status', 'updated_at'])
        if new_status == PermissionRequest.STATUS_APPROVED:
            grant = _issue_grant(request, now)
            logger.info('permission request %s approved; temporary permission %s issued', request.id, grant.id)
        else:
            logger.info('permission request %s %s', request.id, new_status.lower())

    log_action(
        user=approver.user,
        action='permission_request_vote',
        object_type='permission_request',
        object_id=request.id,
        detail={'vote': status, 'requestStatus': request.status},
    )
    return get_request(request.id)


def approve(request_id, approver_id, *, status: str = PermissionApprover.STATUS_APPROVED, comments: str = ''):
    return decide(request_id, approver_id, status=status, comments=comments)


def reject(request_id, approver_id, reason: str = ''):
    return decide(request_id, approver_id, status=PermissionApprover.STATUS_REJECTED, comments=reason)


@transaction.atomic
def cancel_request(request_id, requester_id) -> PermissionRequest:
    request = _get_locked(request_id)
    if request.requester_id != requester_id:
        raise PermissionDenied('Only the requester can cancel a permission request')
    if request.status != PermissionRequest.STATUS_PENDING:
        raise Conflict('Only pending requests can be cancelled')
    request.status = PermissionRequest.STATUS_CANCELLED
    request.save(update_fields=['status', 'updated_at'])
    logger.info('permission request %s cancelled by requester', request.id)
    return get_request(request.id)


@transaction.atomic
def remove_request(request_id) -> None:
    request = _get_locked(request_id)
    request.delete()
    logger.info('permission request %s deleted', request_id)


def cleanup_expired_requests(now=None) -> int:
    now = now or timezone.now()
    count = PermissionRequest.objects.filter(
        status=PermissionRequest.STATUS_PENDING,
        expires_at__isnull=False,
        expires_at__lte=now,
    ).update(status=PermissionRequest.STATUS_EXPIRED, updated_at=now)
    if count:
        logger.info('expired %d pending permission request(s)', count)
    return count


def get_stats() -> dict:
    qs = PermissionRequest.objects.all()
    total = qs.count()
    counts = {s: qs.filter(status=s).count() for s, _ in PermissionRequest.STATUS_CHOICES}
    approved = counts[PermissionRequest.STATUS_APPROVED]
    return {
        'total': total,
        'pending': counts[PermissionRequest.STATUS_PENDING],
        'approved': approved,
        'rejected': counts[PermissionRequest.STATUS_REJECTED],
        'cancelled': counts[PermissionRequest.STATUS_CANCELLED],
        'expired': counts[PermissionRequest.STATUS_EXPIRED],
        'approvalRate': round(approved / total * 100, 2) if total else 0,
    }
