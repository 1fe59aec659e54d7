"""Notification Service: user deliveries, contact gateway, crisis-team alerts."""

from .alerter import CrisisTeamAlert, CrisisTeamAlerter
from .gateway import (
    ContactGateway,
    DeliveryReceipt,
    UnconfiguredContactGateway,
    WebhookContactGateway,
)
from .sink import Delivery, NotificationSink, OutboxNotificationSink

__all__ = [
    "CrisisTeamAlert",
    "CrisisTeamAlerter",
    "ContactGateway",
    "DeliveryReceipt",
    "UnconfiguredContactGateway",
    "WebhookContactGateway",
    "Delivery",
    "NotificationSink",
    "OutboxNotificationSink",
]
