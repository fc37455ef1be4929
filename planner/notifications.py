# planner/notifications.py

import logging
import datetime as dt
from abc import ABC, abstractmethod
from enum import Enum
from typing import List

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class Notification(BaseModel):
    level: NotificationLevel
    message: str
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))


class AbstractNotificationSink(ABC):
    """Receives user-facing success and failure messages."""

    @abstractmethod
    def notify(self, notification: Notification) -> None:
        pass

    def send(self, level: NotificationLevel, message: str) -> None:
        """Fire-and-forget delivery: a failing sink never affects the caller."""
        try:
            self.notify(Notification(level=level, message=message))
        except Exception as e:
            logger.error(f"Notification sink {type(self).__name__} failed: {e}")

    def success(self, message: str) -> None:
        self.send(NotificationLevel.SUCCESS, message)

    def error(self, message: str) -> None:
        self.send(NotificationLevel.ERROR, message)

    def info(self, message: str) -> None:
        self.send(NotificationLevel.INFO, message)


class LoggingNotificationSink(AbstractNotificationSink):
    """Writes notifications to the log when no UI is attached."""

    def notify(self, notification: Notification) -> None:
        if notification.level == NotificationLevel.ERROR:
            logger.warning(f"[notify:error] {notification.message}")
        else:
            logger.info(f"[notify:{notification.level.value}] {notification.message}")


class CollectingNotificationSink(AbstractNotificationSink):
    """Keeps notifications in memory so an HTTP response (or a test) can return them."""

    def __init__(self):
        self.notifications: List[Notification] = []

    def notify(self, notification: Notification) -> None:
        logger.debug(f"Collected notification: {notification.message}")
        self.notifications.append(notification)

    def drain(self) -> List[Notification]:
        drained, self.notifications = self.notifications, []
        return drained

    @property
    def messages(self) -> List[str]:
        return [notification.message for notification in self.notifications]
