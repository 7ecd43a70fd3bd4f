"""
Event Type Constants.

Event names published on Redis pub/sub and relayed to WebSocket clients.
Consumers treat them as "refetch" signals, never as the source of truth.
"""

from shared.config.settings import settings

# =============================================================================
# Order lifecycle events
# Flow: NEW → ACCEPTED → IN_PROGRESS → READY → SERVED → CLOSED (or CANCELLED)
# =============================================================================

ORDER_CREATED = "order.created"                # QR or POS order persisted
ORDER_STATUS_UPDATED = "order.status.updated"  # Fulfillment status changed

# =============================================================================
# Payment events
# =============================================================================

PAYMENT_UPDATED = "payment.updated"  # Confirmed, proof submitted or refunded

ALL_EVENT_TYPES = frozenset({ORDER_CREATED, ORDER_STATUS_UPDATED, PAYMENT_UPDATED})

# =============================================================================
# Size limits
# =============================================================================

# Maximum message size for events (same as WebSocket limit)
MAX_EVENT_SIZE = settings.ws_max_message_size
