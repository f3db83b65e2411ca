"""
Database models for the hospital access-control backend.

These models capture the permission subsystem: departments and staff
members, roles and their scoped assignments, permission templates and
their presets, time-boxed temporary permissions with their audit trail,
and the request/approval workflow that issues temporary permissions.
Role and template permission sets and per-user permission lists are
stored as JSON arrays of permission-name strings.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


class Department(models.Model):
    """A hospital department (Cardiology, Finance, ...)."""
    name = models.CharField(max_length=255, unique=True)
    code = models.CharField(max_length=20, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class User(AbstractUser):
    """Custom user model carrying two permission lists.

    ``direct_permissions`` holds the overrides granted straight to the
    user (it may contain the ``admin`` sentinel).  ``permissions`` is the
    denormalised effective set written by the resolution refresh and read
    by the capability guard on every request; it must never be edited by
    hand.
    """
    direct_permissions = models.JSONField(default=list, blank=True)
    permissions = models.JSONField(default=list, blank=True)
    permissions_refreshed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self) -> str:
        return self.username


class StaffMember(models.Model):
    """Employment record linking a user to a department."""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='staff_member')
    employee_id = models.CharField(max_length=50, unique=True)
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='staff_members'
    )
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def display_name(self) -> str:
        return self.user.get_full_name() or self.user.username

    def __str__(self) -> str:
        return f"{self.employee_id} ({self.user.username})"


class Role(models.Model):
    """A named, reusable bundle of permission strings."""
    name = models.CharField(max_length=100, unique=True)
    code = models.CharField(max_length=20, unique=True)
    description = models.TextField(blank=True)
    permissions = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class ActiveStateMixin(models.Model):
    """Soft lifecycle shared by assignments and grants: Active or Inactive."""
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        abstract = True

    def deactivate(self) -> bool:
        """Flip to inactive.  Returns False if the row was already inactive."""
        if not self.is_active:
            return False
        self.is_active = False
        return True

    def reactivate(self) -> bool:
        """Flip to active.  Returns False if the row was already active."""
        if self.is_active:
            return False
        self.is_active = True
        return True


class StaffRoleAssignment(ActiveStateMixin):
    """Binds a role to a staff member, optionally scoped and time-limited.

    A single row exists per (staff member, role, scope, scope id); removing
    the role deactivates the row and assigning it again reactivates it.
    """
    SCOPE_GLOBAL = 'GLOBAL'
    SCOPE_DEPARTMENT = 'DEPARTMENT'
    SCOPE_SERVICE = 'SERVICE'
    SCOPE_PATIENT = 'PATIENT'
    SCOPE_CHOICES = (
        (SCOPE_GLOBAL, 'Global'),
        (SCOPE_DEPARTMENT, 'Department'),
        (SCOPE_SERVICE, 'Service'),
        (SCOPE_PATIENT, 'Patient'),
    )

    staff_member = models.ForeignKey(StaffMember, on_delete=models.CASCADE, related_name='role_assignments')
    role = models.ForeignKey(Role, on_delete=models.PROTECT, related_name='staff_role_assignments')
    scope = models.CharField(max_length=16, choices=SCOPE_CHOICES, default=SCOPE_GLOBAL)
    scope_id = models.CharField(max_length=64, null=True, blank=True)
    conditions = models.JSONField(null=True, blank=True)
    assigned_by = models.ForeignKey(
        StaffMember, null=True, blank=True, on_delete=models.SET_NULL, related_name='assigned_roles'
    )
    assigned_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['staff_member', 'role', 'scope', 'scope_id'],
                name='uniq_staff_role_scope',
            ),
        ]
        indexes = [
            models.Index(fields=['staff_member', 'is_active'], name='sra_staff_active_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.staff_member_id} -> {self.role_id} [{self.scope}:{self.scope_id or '*'}]"


class TemporaryPermission(ActiveStateMixin):
    """A permission granted to a user outside the role system, with expiry."""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='temporary_permissions')
    permission = models.CharField(max_length=100, db_index=True)
    # Null when the grant was issued by the system (request workflow without
    # a staff record for the approver).
    granted_by = models.ForeignKey(
        StaffMember, null=True, blank=True, on_delete=models.SET_NULL, related_name='granted_permissions'
    )
    granted_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(db_index=True)
    reason = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['user', 'permission', 'is_active'], name='tmp_user_perm_active_idx'),
            models.Index(fields=['is_active', 'expires_at'], name='tmp_active_expires_idx'),
        ]

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= timezone.now()

    def __str__(self) -> str:
        return f"tmp:{self.permission} -> {self.user_id} until {self.expires_at:%F %T}"


class PermissionAuditEntry(models.Model):
    """Append-only lifecycle record for a temporary permission."""
    ACTION_GRANTED = 'GRANTED'
    ACTION_EXTENDED = 'EXTENDED'
    ACTION_REVOKED = 'REVOKED'
    ACTION_DEACTIVATED = 'DEACTIVATED'
    ACTION_ACTIVATED = 'ACTIVATED'
    ACTION_EXPIRED = 'EXPIRED'
    ACTION_CHOICES = (
        (ACTION_GRANTED, 'granted'),
        (ACTION_EXTENDED, 'extended'),
        (ACTION_REVOKED, 'revoked'),
        (ACTION_DEACTIVATED, 'deactivated'),
        (ACTION_ACTIVATED, 'activated'),
        (ACTION_EXPIRED, 'expired'),
    )
    SYSTEM_ACTOR = 'SYSTEM'

    action = models.CharField(max_length=16, choices=ACTION_CHOICES)
    # Staff member id as a string, or SYSTEM for automatic transitions.
    performed_by = models.CharField(max_length=64)
    reason = models.TextField(blank=True)
    temporary_permission = models.ForeignKey(
        TemporaryPermission, on_delete=models.CASCADE, related_name='audit_trail'
    )
    timestamp = models.DateTimeField(auto_now_add=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=['temporary_permission', 'timestamp'], name='audit_grant_ts_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.action}:{self.temporary_permission_id} by {self.performed_by}"


class PermissionRequest(models.Model):
    """A user's request for a temporary permission, subject to sign-off."""
    URGENCY_LOW = 'LOW'
    URGENCY_NORMAL = 'NORMAL'
    URGENCY_HIGH = 'HIGH'
    URGENCY_URGENT = 'URGENT'
    URGENCY_CHOICES = (
        (URGENCY_LOW, 'low'),
        (URGENCY_NORMAL, 'normal'),
        (URGENCY_HIGH, 'high'),
        (URGENCY_URGENT, 'urgent'),
    )

    STATUS_PENDING = 'PENDING'
    STATUS_APPROVED = 'APPROVED'
    STATUS_REJECTED = 'REJECTED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_EXPIRED = 'EXPIRED'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'pending'),
        (STATUS_APPROVED, 'approved'),
        (STATUS_REJECTED, 'rejected'),
        (STATUS_CANCELLED, 'cancelled'),
        (STATUS_EXPIRED, 'expired'),
    )

    requester = models.ForeignKey(User, on_delete=models.CASCADE, related_name='permission_requests')
    permission = models.CharField(max_length=100)
    reason = models.TextField()
    urgency = models.CharField(max_length=10, choices=URGENCY_CHOICES, default=URGENCY_NORMAL)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    requested_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(null=True, blank=True)
    attachments = models.JSONField(null=True, blank=True)
    metadata = models.JSONField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'requested_at'], name='req_status_requested_idx'),
        ]

    def __str__(self) -> str:
        return f"req {self.id}: {self.permission} for {self.requester_id} ({self.status})"


class PermissionApprover(models.Model):
    """One approver's assignment and vote on a permission request."""
    STATUS_PENDING = 'PENDING'
    STATUS_APPROVED = 'APPROVED'
    STATUS_REJECTED = 'REJECTED'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'pending'),
        (STATUS_APPROVED, 'approved'),
        (STATUS_REJECTED, 'rejected'),
    )

    permission_request = models.ForeignKey(PermissionRequest, on_delete=models.CASCADE, related_name='approvers')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='permission_approvals')
    role = models.CharField(max_length=32, default='APPROVER')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    required = models.BooleanField(default=True)
    comments = models.TextField(blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['id']
        unique_together = [('permission_request', 'user')]

    def __str__(self) -> str:
        return f"approver {self.user_id} on {self.permission_request_id}: {self.status}"


class AuditEvent(models.Model):
    """Generic operation log for role assignments and request decisions."""
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='event_action_created_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='event_object_created_idx'),
        ]


class PermissionTemplate(models.Model):
    """A categorised, versioned permission bundle used as a starting point.

    System templates are shipped with the deployment and are read-only.
    """
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=64, db_index=True)
    permissions = models.JSONField(default=list)
    is_system = models.BooleanField(default=False)
    version = models.CharField(max_length=20, default='1.0.0')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} [{self.category}] v{self.version}"


class PermissionPreset(models.Model):
    """A named customisation of a template.

    ``customizations`` is a list of ``{"action": "ADD" | "REMOVE",
    "permission": str}`` applied in order to the template's permissions.
    """
    ACTION_ADD = 'ADD'
    ACTION_REMOVE = 'REMOVE'

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    template = models.ForeignKey(PermissionTemplate, on_delete=models.PROTECT, related_name='presets')
    customizations = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.template_id})"
