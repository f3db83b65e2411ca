"""
Django admin registrations for the access models.

Superusers can inspect roles, assignments, templates, grants and requests
through ``/admin/``.  The cached ``permissions`` column is read-only here:
it is owned by the resolution refresh.
"""

from django.contrib import admin

from .models import (
    AuditEvent,
    Department,
    PermissionApprover,
    PermissionAuditEntry,
    PermissionPreset,
    PermissionRequest,
    PermissionTemplate,
    Role,
    StaffMember,
    StaffRoleAssignment,
    TemporaryPermission,
    User,
)


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'code', 'is_active', 'created_at')
    search_fields = ('name', 'code')


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'is_staff', 'is_superuser', 'permissions_refreshed_at')
    search_fields = ('username', 'first_name', 'last_name')
    readonly_fields = ('permissions', 'permissions_refreshed_at')


@admin.register(StaffMember)
class StaffMemberAdmin(admin.ModelAdmin):
    list_display = ('employee_id', 'user', 'department', 'is_active')
    list_filter = ('department', 'is_active')
    search_fields = ('employee_id', 'user__username')


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'is_active', 'updated_at')
    list_filter = ('is_active',)
    search_fields = ('name', 'code')


@admin.register(StaffRoleAssignment)
class StaffRoleAssignmentAdmin(admin.ModelAdmin):
    list_display = ('staff_member', 'role', 'scope', 'scope_id', 'is_active', 'assigned_at', 'expires_at')
    list_filter = ('scope', 'is_active', 'role')


class PermissionAuditEntryInline(admin.TabularInline):
    model = PermissionAuditEntry
    extra = 0
    readonly_fields = ('action', 'performed_by', 'reason', 'timestamp', 'metadata')


@admin.register(TemporaryPermission)
class TemporaryPermissionAdmin(admin.ModelAdmin):
    list_display = ('user', 'permission', 'granted_by', 'expires_at', 'is_active')
    list_filter = ('is_active', 'permission')
    inlines = [PermissionAuditEntryInline]


class PermissionApproverInline(admin.TabularInline):
    model = PermissionApprover
    extra = 0


@admin.register(PermissionRequest)
class PermissionRequestAdmin(admin.ModelAdmin):
    list_display = ('id', 'requester', 'permission', 'urgency', 'status', 'requested_at')
    list_filter = ('status', 'urgency')
    inlines = [PermissionApproverInline]


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'user', 'object_type', 'object_id', 'created_at')
    list_filter = ('action', 'object_type')


class PermissionPresetInline(admin.TabularInline):
    model = PermissionPreset
    extra = 0


@admin.register(PermissionTemplate)
class PermissionTemplateAdmin(admin.ModelAdmin):
    list_display = ('name', 'category', 'version', 'is_system', 'updated_at')
    list_filter = ('category', 'is_system')
    search_fields = ('name',)
    inlines = [PermissionPresetInline]
