from .setup import setup_observability, configure_logging
from .metrics import (
    shipping_label_total,
    shipping_label_duration_seconds,
    shipping_label_compensation_total,
    carrier_request_total,
    shipping_webhook_total
)
