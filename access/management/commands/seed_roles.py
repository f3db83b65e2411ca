"""
Management command to create the default hospital roles.

Idempotent: existing roles (matched by code) keep their name, but their
permission list is brought up to date and every holder is refreshed.
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from access.models import Role
from access.services.roles import create_role, update_role

DEFAULT_ROLES = [
    ('ADMIN', 'Administrator', 'Unrestricted access to every operation', ['admin']),
    ('ACCESS_MGR', 'Access Manager', 'Manages roles, grants and permission requests', [
        'manage_roles', 'view_roles',
        'grant_temporary_permissions', 'manage_temporary_permissions', 'view_temporary_permissions',
        'manage_permission_requests', 'view_permission_requests', 'approve_permission_requests',
        'manage_user_permissions', 'view_permission_analytics',
        'manage_permission_templates', 'view_permission_templates',
    ]),
    ('APPROVER', 'Request Approver', 'Reviews permission requests', [
        'view_permission_requests', 'approve_permission_requests', 'view_roles',
    ]),
    ('AUDITOR', 'Auditor', 'Read-only oversight of permissions', [
        'view_roles', 'view_temporary_permissions', 'view_permission_requests', 'view_permission_analytics',
        'view_permission_templates',
    ]),
    ('STAFF', 'Staff', 'Baseline clinical and administrative staff', [
        'create_permission_requests', 'cancel_permission_requests', 'edit_permission_requests',
    ]),
]


class Command(BaseCommand):
    help = 'Create or update the default roles'

    @transaction.atomic
    def handle(self, *args, **options):
        for code, name, description, permissions in DEFAULT_ROLES:
            role = Role.objects.filter(code=code).first()
            if role:
                update_role(role.id, permissions=permissions, is_active=True)
                self.stdout.write(f"updated: {code}")
            else:
                create_role(name=name, code=code, description=description, permissions=permissions)
                self.stdout.write(self.style.SUCCESS(f"created: {code}"))
        self.stdout.write(self.style.SUCCESS(f"{len(DEFAULT_ROLES)} default roles ensured."))
