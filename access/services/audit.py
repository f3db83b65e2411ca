"""Generic operation log for role assignment and request decisions."""
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model

from access.models import AuditEvent

User = get_user_model()


def log_action(*, user: Optional[User], action: str, object_type: Optional[str] = None,
               object_id: Optional[int] = None, detail: Optional[Dict[str, Any]] = None) -> AuditEvent:
    # Anonymous callers (failed logins, system sweeps) are stored without a user.
    return AuditEvent.objects.create(
        user=user if isinstance(user, User) else None,
        action=action,
        object_type=object_type,
        object_id=object_id,
        detail=detail or {},
    )
