"""Sale event monitoring module.

The wiring class lives in ``crowdwatch.services.sale_monitor.monitor``; it
depends on ``crowdwatch.services.status``, which imports from this package.
"""

from crowdwatch.services.sale_monitor.deduplicator import EventDeduplicator
from crowdwatch.services.sale_monitor.formatter import (
    NotificationMessage,
    TokenMeta,
    format_help,
    format_native,
    format_purchase,
    format_purchase_guide,
    format_status,
    format_status_error,
    format_units,
    format_welcome,
)
from crowdwatch.services.sale_monitor.subscriber import (
    EventSubscriber,
    PurchaseHandler,
    SubscriberStats,
    SubscriptionHandle,
    SubscriptionState,
)
from crowdwatch.services.sale_monitor.token_meta import TokenMetaResolver

__all__ = [
    # Subscriber
    "EventSubscriber",
    "PurchaseHandler",
    "SubscriberStats",
    "SubscriptionHandle",
    "SubscriptionState",
    # Dedup
    "EventDeduplicator",
    # Token metadata
    "TokenMetaResolver",
    # Formatting
    "NotificationMessage",
    "TokenMeta",
    "format_help",
    "format_native",
    "format_purchase",
    "format_purchase_guide",
    "format_status",
    "format_status_error",
    "format_units",
    "format_welcome",
]
