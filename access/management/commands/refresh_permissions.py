from django.core.management.base import BaseCommand
from django.utils import timezone

from access.models import User
from access.services.permissions import refresh_user_permissions


class Command(BaseCommand):
    help = "Recompute the cached effective permission set of every user (or the given ids)."

    def add_arguments(self, parser):
        parser.add_argument('user_ids', nargs='*', type=int)

    def handle(self, *args, **options):
        now = timezone.now()
        user_ids = options['user_ids'] or list(User.objects.values_list('id', flat=True))
        refreshed = 0
        for uid in user_ids:
            if refresh_user_permissions(uid) is not None:
                refreshed += 1
            else:
                self.stdout.write(self.style.WARNING(f"skip: user {uid} not found"))
        self.stdout.write(self.style.SUCCESS(f"Refreshed {refreshed} user(s) at {now}"))
