from prometheus_client import Counter, Histogram

# Label generation outcomes
shipping_label_total = Counter(
    "shipping_label_total",
    "Shipping label generation requests",
    ["label_type", "status"] # status: 'created', 'existing', 'failed'
)

shipping_label_duration_seconds = Histogram(
    "shipping_label_duration_seconds",
    "End-to-end label generation duration in seconds"
)

shipping_label_compensation_total = Counter(
    "shipping_label_compensation_total",
    "Compensating actions run after a failed label saga",
    ["step_name"]
)

# Outbound carrier calls
carrier_request_total = Counter(
    "carrier_request_total",
    "Outbound carrier API calls",
    ["carrier", "endpoint", "outcome"] # outcome: 'ok', 'rejected', 'timeout', 'error'
)

shipping_webhook_total = Counter(
    "shipping_webhook_total",
    "Carrier webhook deliveries processed",
    ["status"]
)
