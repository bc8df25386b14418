"""Notification sink — channels and the router the jobs dispatch through."""

from cohort_scheduler.notifications.channels import NotificationChannel
from cohort_scheduler.notifications.in_app_channel import InAppChannel
from cohort_scheduler.notifications.models import DispatchError, Notification
from cohort_scheduler.notifications.router import NotificationRouter
from cohort_scheduler.notifications.webhook_channel import WebhookChannel

__all__ = [
    "DispatchError",
    "InAppChannel",
    "Notification",
    "NotificationChannel",
    "NotificationRouter",
    "WebhookChannel",
]
