"""
Carrier credentials and tuning knobs.

Adapters receive a CarrierSettings instance at construction instead of reading
the process environment inline, so tests can hand them fakes.
"""
import json
import os
import warnings
from typing import Dict

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_SERVICE_CODE = "DPD-12DROPQR"

# Keys are upper-cased courier names as stored on shipping_providers.name
DEFAULT_SERVICE_CODES: Dict[str, str] = {
    "DPD": "DPD-12DROPQR",
    "YODEL": "YOD-C2CPS",
}


class CarrierSettings(BaseModel):
    # Warehouse carrier (MoovParcel "ninja")
    carrier_email: str = ""
    carrier_password: str = ""
    carrier_base_url: str = "https://api.moovparcel.net"

    # Peer-to-peer aggregator ("voila")
    aggregator_api_user: str = ""
    aggregator_api_token: str = ""
    aggregator_base_url: str = "https://production.courierapi.co.uk"

    request_timeout_seconds: float = 30.0
    default_parcel_weight_kg: float = 3.0
    default_service_code: str = DEFAULT_SERVICE_CODE
    service_codes: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_SERVICE_CODES))

    @classmethod
    def from_env(cls) -> "CarrierSettings":
        load_dotenv()

        service_codes = dict(DEFAULT_SERVICE_CODES)
        overrides = os.getenv("VOILA_SERVICE_CODES", "")
        if overrides:
            try:
                parsed = json.loads(overrides)
                if not isinstance(parsed, dict):
                    raise ValueError("expected a JSON object")
            except ValueError as e:
                warnings.warn(
                    f"VOILA_SERVICE_CODES is not a JSON object of courier -> service code ({e}). "
                    "Using the built-in service codes.",
                    stacklevel=2,
                )
            else:
                service_codes.update({k.upper(): v for k, v in parsed.items()})

        settings = cls(
            carrier_email=os.getenv("NINJA_EMAIL", ""),
            carrier_password=os.getenv("NINJA_PASSWORD", ""),
            carrier_base_url=os.getenv("NINJA_BASE_URL", "https://api.moovparcel.net"),
            aggregator_api_user=os.getenv("VOILA_API_USER", ""),
            aggregator_api_token=os.getenv("VOILA_API_TOKEN", ""),
            aggregator_base_url=os.getenv("VOILA_BASE_URL", "https://production.courierapi.co.uk"),
            request_timeout_seconds=float(os.getenv("CARRIER_TIMEOUT_SECONDS", "30")),
            default_parcel_weight_kg=float(os.getenv("DEFAULT_PARCEL_WEIGHT_KG", "3")),
            default_service_code=os.getenv("VOILA_DEFAULT_SERVICE_CODE", DEFAULT_SERVICE_CODE),
            service_codes=service_codes,
        )

        if not (settings.carrier_email and settings.carrier_password):
            warnings.warn(
                "NINJA_EMAIL / NINJA_PASSWORD are not set. Warehouse label "
                "generation will fail to authenticate.",
                stacklevel=2,
            )
        if not (settings.aggregator_api_user and settings.aggregator_api_token):
            warnings.warn(
                "VOILA_API_USER / VOILA_API_TOKEN are not set. Peer-to-peer "
                "label generation will be rejected by the aggregator.",
                stacklevel=2,
            )
        return settings
