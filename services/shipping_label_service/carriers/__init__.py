from .base import (
    CARRIER_ID_MAX_LENGTH,
    CarrierAdapter,
    PeerToPeerLabelResult,
    Shipment,
    WarehouseLabelResult,
    carrier_reference,
)
from .ninja import NinjaClient
from .voila import VoilaClient, resolve_service_code

__all__ = [
    "CARRIER_ID_MAX_LENGTH",
    "CarrierAdapter",
    "PeerToPeerLabelResult",
    "Shipment",
    "WarehouseLabelResult",
    "carrier_reference",
    "NinjaClient",
    "VoilaClient",
    "resolve_service_code",
]
