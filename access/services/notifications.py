import logging
from typing import List

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.utils import timezone

logger = logging.getLogger(__name__)


def permissions_group(user_id) -> str:
    return f"permissions.{user_id}"


def notify_permissions_changed(user_id, permissions: List[str]) -> None:
    """Push the refreshed permission list to the user's open WebSockets."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    event = {
        "type": "permissions.refresh",
        "userId": user_id,
        "permissions": permissions,
        "ts": timezone.now().isoformat(),
    }
    try:
        async_to_sync(channel_layer.group_send)(permissions_group(user_id), event)
    except Exception:
        logger.warning('could not broadcast permission refresh for user %s', user_id, exc_info=True)
