from halolaba_core.notifications.notification_service import (
    NotificationService,
    format_idr,
)

__all__ = ["NotificationService", "format_idr"]
