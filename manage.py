#!/usr/bin/env python
"""
Command-line entry point for the access-control backend.

Sets ``hospital.settings`` as the default settings module and delegates
to Django's management utility (``migrate``, ``seed_roles``,
``cleanup_permissions`` and friends).
"""
import os
import sys


def main() -> None:
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hospital.settings')
    try:
        from django.core.management import execute_from_command_line  # type: ignore
    except ImportError as exc:
        raise ImportError(
            "Couldn't import Django. Is it installed and available on your "
            "PYTHONPATH environment variable?"
        ) from exc
    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
