from datetime import timedelta

import pytest
from django.utils import timezone

from access.models import Department, Role, StaffMember, User
from access.services.permissions import refresh_user_permissions


@pytest.fixture
def department(db):
    return Department.objects.create(name='Cardiology', code='CARD')


@pytest.fixture
def make_staff(db, department):
    """Create a user with a staff record; ``direct`` seeds direct permissions."""
    counter = {'n': 0}

    def _make(username=None, direct=None, dept=department):
        counter['n'] += 1
        username = username or f'staff{counter["n"]}'
        user = User.objects.create_user(username=username, password='P@ssw0rd1', direct_permissions=list(direct or []))
        staff = StaffMember.objects.create(user=user, employee_id=f'EMP{counter["n"]:04d}', department=dept)
        refresh_user_permissions(user.id)
        user.refresh_from_db()
        return staff

    return _make


@pytest.fixture
def make_role(db):
    def _make(code, permissions, name=None, is_active=True):
        return Role.objects.create(name=name or code.title(), code=code, permissions=permissions, is_active=is_active)

    return _make


@pytest.fixture
def later():
    def _later(**kwargs):
        return timezone.now() + timedelta(**(kwargs or {'days': 1}))

    return _later
