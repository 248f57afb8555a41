from prometheus_client import Counter

# Business Metrics
lod400_orders_created_total = Counter(
    "lod400_orders_created_total",
    "Orders created",
    ["channel"]  # Labels: 'web', 'addin'
)

lod400_order_transitions_total = Counter(
    "lod400_order_transitions_total",
    "Lifecycle transition attempts",
    ["event", "outcome"]  # outcome: 'applied', 'replayed', 'rejected'
)

lod400_signed_urls_issued_total = Counter(
    "lod400_signed_urls_issued_total",
    "Signed storage URLs handed out",
    ["direction", "role"]  # direction: 'upload', 'download'
)

lod400_webhook_events_total = Counter(
    "lod400_webhook_events_total",
    "Payment webhook events received",
    ["kind"]  # Labels: 'checkout_completed', 'checkout_expired', 'other'
)
