from .setup import setup_observability
from .metrics import (
    lod400_orders_created_total,
    lod400_order_transitions_total,
    lod400_signed_urls_issued_total,
    lod400_webhook_events_total,
)
