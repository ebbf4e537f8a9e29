from typing import Iterable, Optional

from .models import ShippingProviderPrice


def provider_band_for_weight(
    prices: Iterable[ShippingProviderPrice],
    provider_id: Optional[str],
    weight_kg: float,
) -> Optional[ShippingProviderPrice]:
    """Cheapest active band of ``provider_id`` whose inclusive weight range covers ``weight_kg``."""
    if not provider_id:
        return None

    best = None
    for row in prices:
        if row.provider_id != provider_id or row.is_active is False:
            continue
        if row.min_weight is None or row.max_weight is None:
            continue
        if not (row.min_weight <= weight_kg <= row.max_weight):
            continue
        if best is None or row.price < best.price:
            best = row
    return best
