"""
Customer notification collaborators.
"""

from ordersaga.notifications.base import (
    CONFIRMATION_TEMPLATE,
    STATUS_UPDATE_TEMPLATE,
    NotificationDispatcher,
)
from ordersaga.notifications.http import HttpNotificationDispatcher
from ordersaga.notifications.memory import InMemoryNotificationDispatcher, SentNotification

__all__ = [
    "CONFIRMATION_TEMPLATE",
    "STATUS_UPDATE_TEMPLATE",
    "HttpNotificationDispatcher",
    "InMemoryNotificationDispatcher",
    "NotificationDispatcher",
    "SentNotification",
]
