from django.core.management.base import BaseCommand
from django.utils import timezone

from access.services.requests import cleanup_expired_requests
from access.services.roles import cleanup_expired_assignments
from access.services.temporary import cleanup_expired_permissions


class Command(BaseCommand):
    help = ("Deactivate expired temporary permissions and role assignments, "
            "and expire overdue permission requests (run from cron).")

    def add_arguments(self, parser):
        parser.add_argument('--grants-only', action='store_true', help='Skip the permission request sweep.')
        parser.add_argument('--requests-only', action='store_true',
                            help='Skip the temporary permission and role assignment sweeps.')

    def handle(self, *args, **options):
        now = timezone.now()
        grants = assignments = requests = 0
        if not options['requests_only']:
            grants = cleanup_expired_permissions(now)
            assignments = cleanup_expired_assignments(now)
        if not options['grants_only']:
            requests = cleanup_expired_requests(now)
        self.stdout.write(self.style.SUCCESS(
            f"Expired {grants} temporary permission(s), {assignments} role assignment(s) "
            f"and {requests} permission request(s) at {now}"
        ))
