"""Email notifications sent when entries are created."""

from .email import EmailNotifier
from .queue import NotificationQueue

__all__ = ["EmailNotifier", "NotificationQueue"]
