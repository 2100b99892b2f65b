"""
Notifications: customer messaging (SMS/email) and the staff alert centre.
"""

from functools import lru_cache

from gestro.core.config import get_settings
from gestro.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)
from gestro.services.notifications.customer import CustomerStatusNotifier
from gestro.services.notifications.mock import MockNotificationService
from gestro.services.notifications.real import RealNotificationService
from gestro.services.notifications.staff import (
    NotificationPreferences,
    StaffNotification,
    StaffNotificationCenter,
    get_staff_notification_center,
    reset_staff_notification_center,
)


@lru_cache()
def get_notification_service() -> BaseNotificationService:
    """Mock messaging in development, Twilio/SendGrid otherwise."""
    if get_settings().use_real_services:
        return RealNotificationService()
    return MockNotificationService(failure_rate=0.05)


def reset_notification_service() -> None:
    get_notification_service.cache_clear()


__all__ = [
    "get_notification_service",
    "reset_notification_service",
    "get_staff_notification_center",
    "reset_staff_notification_center",
    "BaseNotificationService",
    "NotificationResult",
    "CustomerStatusNotifier",
    "NotificationPreferences",
    "StaffNotification",
    "StaffNotificationCenter",
]
