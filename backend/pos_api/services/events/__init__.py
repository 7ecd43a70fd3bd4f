"""
Event Services - realtime fan-out of order and payment changes.
"""

from .builders import order_created_event, order_status_event, payment_updated_event
from .notifier import RealtimeNotifier, dispatch_events, get_notifier

__all__ = [
    "order_created_event",
    "order_status_event",
    "payment_updated_event",
    "RealtimeNotifier",
    "dispatch_events",
    "get_notifier",
]
