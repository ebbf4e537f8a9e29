"""
Peer-to-peer labels via the Voila courier aggregator.

Individual sellers drop parcels off with the courier they picked on their
shipping option; the aggregator issues the label and tracking codes.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import structlog

from ..dimensions import dimensions_for_weight
from ..exceptions import CarrierLabelError, TrackingCodesMissingError
from .base import (
    CarrierAdapter,
    PeerToPeerLabelResult,
    Shipment,
    carrier_reference,
    response_body,
)

logger = structlog.get_logger(__name__)

DEFAULT_COURIER = "DPD"
HS_CODE_PLACEHOLDER = "50000000"
ORIGIN_COUNTRY = "GB"
CURRENCY = "GBP"


def resolve_service_code(courier_name: Optional[str], service_codes: Dict[str, str], default_code: str) -> str:
    """Courier display name -> aggregator service code (case-insensitive)."""
    courier = (courier_name or DEFAULT_COURIER).strip().upper()
    code = service_codes.get(courier)
    if code is None:
        logger.warning(
            "courier_service_code_unmapped",
            courier=courier_name,
            fallback_service_code=default_code,
        )
        return default_code
    return code


def collection_date(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return (now + timedelta(hours=24)).strftime("%Y-%m-%d %H:%M:%S")


class VoilaClient(CarrierAdapter):
    name = "voila"
    label_type = "voila"

    async def create_label(self, shipment: Shipment) -> PeerToPeerLabelResult:
        payload = self.build_shipment(shipment)
        service_code = payload["shipment"]["dc_service_id"]

        async with self.http() as client:
            resp = await self.post(
                client,
                "create-label",
                f"{self.settings.aggregator_base_url}/api/couriers/v1/MoovParcel/create-label",
                CarrierLabelError,
                json=payload,
                headers={
                    "api-user": self.settings.aggregator_api_user,
                    "api-token": self.settings.aggregator_api_token,
                    "Content-Type": "application/json",
                },
            )

        body = response_body(resp)
        if not resp.is_success:
            logger.error("voila_label_failed", status_code=resp.status_code, body=body)
            raise CarrierLabelError(
                f"Voila API label creation failed: {resp.status_code}",
                details=body,
            )

        codes = body.get("tracking_codes") if isinstance(body, dict) else None
        if not codes:
            logger.error("voila_label_missing_tracking", order_id=shipment.order.id, body=body)
            raise TrackingCodesMissingError(
                "Label generation succeeded but no tracking number was returned",
                details=body,
            )

        logger.info(
            "voila_label_created",
            order_id=shipment.order.id,
            request_id=payload["request_id"],
            service_code=service_code,
            tracking_codes=codes,
        )
        return PeerToPeerLabelResult(tracking_codes=list(codes), raw=body, service_code=service_code)

    def courier_name(self, shipment: Shipment) -> str:
        option = shipment.shipping_option
        if option is not None and option.provider is not None and option.provider.name:
            return option.provider.name
        return DEFAULT_COURIER

    def build_shipment(self, shipment: Shipment) -> dict:
        order, listing, addr = shipment.order, shipment.listing, shipment.shipping_address
        seller = shipment.seller_profile

        courier = self.courier_name(shipment)
        service_code = resolve_service_code(
            courier, self.settings.service_codes, self.settings.default_service_code
        )
        weight = listing.weight or self.settings.default_parcel_weight_kg
        dims = dimensions_for_weight(weight)

        sender_name = (seller and (seller.business_name or seller.shop_name)) or ""

        return {
            "auth_company": "Vintstreet",
            "format_address_default": True,
            "request_id": carrier_reference(order.id, "ORD-"),
            "shipment": {
                "label_size": "6x4",
                "label_format": "pdf",
                "generate_invoice": False,
                "generate_packing_slip": False,
                "courier": {
                    "auth_company": "C2C",
                    "courier": courier,
                    "service_id": service_code,
                },
                "collection_date": collection_date(),
                "dc_service_id": service_code,
                "reference": order.id,
                "reference_2": "",
                "delivery_instructions": "",
                "ship_from": {
                    "name": sender_name or "Vint Street",
                    "phone": (seller and seller.contact_phone) or "",
                    "email": (seller and seller.contact_email) or "",
                    "company_name": sender_name,
                    "address_1": (seller and seller.return_address_line1) or "",
                    "address_2": (seller and seller.return_address_line2) or "",
                    "address_3": "",
                    "city": (seller and seller.return_city) or "",
                    "postcode": (seller and seller.return_postal_code) or "",
                    "county": (seller and seller.return_state) or "",
                    "country_iso": (seller and seller.return_country) or "GB",
                    "company_id": None,
                    "tax_id": None,
                    "ioss_number": None,
                },
                "ship_to": {
                    "name": addr.full_name,
                    "phone": addr.phone or "",
                    "email": addr.email or "",
                    "company_name": None,
                    "address_1": addr.address_line1 or "",
                    "address_2": addr.address_line2 or "",
                    "address_3": "",
                    "city": addr.city or "",
                    "county": addr.state or "",
                    "postcode": addr.postal_code or "",
                    "country_iso": addr.country or "GB",
                    "tax_id": None,
                },
                "parcels": [
                    {
                        "dim_width": dims.width,
                        "dim_height": dims.height,
                        "dim_length": dims.length,
                        "dim_unit": "cm",
                        "items": [
                            {
                                "description": listing.product_name or "",
                                "origin_country": ORIGIN_COUNTRY,
                                "quantity": order.quantity,
                                "value_currency": CURRENCY,
                                "weight": weight,
                                "weight_unit": "KG",
                                "sku": listing.sku or "",
                                "hs_code": HS_CODE_PLACEHOLDER,
                                "value": f"{float(order.order_amount):.2f}",
                                "extended_description": listing.product_name or "",
                            }
                        ],
                    }
                ],
            },
        }
