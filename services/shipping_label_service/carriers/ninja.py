"""
Warehouse fulfilment via the MoovParcel ("ninja") bulk API.

Used for house stock (seller shop_type == 'master'). The order is imported
into the warehouse system; the tracking code may come back on the import
response or later through the shipping webhook.
"""
import time
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from ..exceptions import AuthenticationError, CarrierImportError
from .base import (
    CarrierAdapter,
    Shipment,
    WarehouseLabelResult,
    carrier_reference,
    response_body,
)

logger = structlog.get_logger(__name__)

CHANNEL_NAME = "VintStreet"
CURRENCY = "GBP"


def _money(amount: float) -> str:
    return f"{amount:.4f}"


def extract_tracking_number(payload: Any) -> Optional[str]:
    """Pull ``tracking_code`` / ``tracking_number`` off an import response.

    The import endpoint answers either with an object or with a list holding one
    object per imported order.
    """
    if isinstance(payload, list):
        payload = payload[0] if payload else None
    if not isinstance(payload, dict):
        return None
    return payload.get("tracking_code") or payload.get("tracking_number") or None


class NinjaClient(CarrierAdapter):
    name = "ninja"
    label_type = "ninja"

    async def create_label(self, shipment: Shipment) -> WarehouseLabelResult:
        async with self.http() as client:
            token = await self._login(client)
            batch = self.build_import_batch(shipment)
            result = await self._import_orders(client, token, batch)

        tracking_number = extract_tracking_number(result)
        logger.info(
            "warehouse_order_imported",
            order_id=shipment.order.id,
            remote_id=batch[0]["order_id"],
            tracking_number=tracking_number,
        )
        return WarehouseLabelResult(tracking_number=tracking_number, raw=result)

    async def _login(self, client) -> str:
        resp = await self.post(
            client,
            "login",
            f"{self.settings.carrier_base_url}/api/login",
            AuthenticationError,
            json={"email": self.settings.carrier_email, "password": self.settings.carrier_password},
            headers={
                "Content-Type": "application/json",
                "User-Agent": "VintStreet/1.0",
                "Accept": "application/json",
                # The login endpoint expects a request timestamp here, not a credential
                "Authorization": str(int(time.time() * 1000)),
            },
        )
        if not resp.is_success:
            logger.error("warehouse_login_failed", status_code=resp.status_code)
            raise AuthenticationError(
                f"Ninja authentication failed: {resp.status_code}",
                details=response_body(resp),
            )

        body = response_body(resp)
        token = body.get("accessToken") if isinstance(body, dict) else None
        if not token:
            logger.error("warehouse_login_missing_token")
            raise AuthenticationError("Ninja API response missing access token")
        return token

    async def _import_orders(self, client, token: str, batch: list) -> Any:
        resp = await self.post(
            client,
            "import",
            f"{self.settings.carrier_base_url}/api/orders/import-json",
            CarrierImportError,
            json=batch,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
        )
        if not resp.is_success:
            body = response_body(resp)
            logger.error("warehouse_import_failed", status_code=resp.status_code, body=body)
            raise CarrierImportError(
                f"Ninja order import failed: {resp.status_code}",
                details=body,
            )
        return response_body(resp)

    def build_import_batch(self, shipment: Shipment) -> list:
        order, listing, addr = shipment.order, shipment.listing, shipment.shipping_address
        order_number = carrier_reference(order.id, "ORD-")
        now = datetime.now(timezone.utc).isoformat()
        amount = float(order.order_amount)
        quantity = order.quantity or 1

        address = {
            "id": "",
            "name": addr.full_name,
            "company_name": None,
            "address_line_one": addr.address_line1 or "",
            "address_line_two": addr.address_line2 or "",
            "address_line_three": "",
            "county": addr.state or "",
            "city": addr.city or "",
            "country_iso_code": addr.country or "GB",
            "zip": addr.postal_code or "",
            "phone": addr.phone or "",
        }

        return [
            {
                "order_id": order_number,
                "channel_id": "",
                "channel_alt_id": "",
                "channel_name": CHANNEL_NAME,
                "channel_type": "API",
                "store_id": "",
                "remote_id": order_number,
                "remote_status": "",
                "status": "",
                "customer": {
                    "id": None,
                    "customer_uuid": None,
                    "company_id": None,
                    "name": addr.full_name,
                    "email": addr.email or "",
                    "created_at": now,
                    "updated_at": "",
                },
                "shipping_method": "Standard",
                "shipping_address": address,
                "invoice_address": dict(address),
                "fulfillment": None,
                "return": None,
                "payment_method": "manual",
                "send_via_webhook": False,
                "payment_details": {
                    "vat_id": None,
                    "vat_type": None,
                    "tax_total": _money(0),
                    "shipping_total": _money(0),
                    "discount_total": _money(0),
                    "discount_total_exc_tax": _money(0),
                    "order_subtotal": _money(amount),
                    "order_subtotal_exc_tax": _money(amount),
                    "order_total": _money(amount),
                    "payment_method": "manual",
                    "payment_ref": None,
                    "payment_currency": CURRENCY,
                    "coupon_code": "",
                    "coupon_total": _money(0),
                    "coupon_total_exc_tax": _money(0),
                },
                "system_notes": None,
                "delivery_notes": None,
                "customer_comments": None,
                "gift_note": "",
                "channel_specific": {
                    "tags": ["JSON"],
                    "order_number": order_number,
                    "total_weight": listing.weight or self.settings.default_parcel_weight_kg,
                    "shipping_code": "",
                },
                "order_date": now,
                "order_import_date": "",
                "md5_hash": "",
                "total_order_item_quantity": quantity,
                "total_order_item_quantity_inc_kits": None,
                "primary_reference_id": carrier_reference(order.id, "#"),
                "order_lines": [
                    {
                        "sku": listing.sku or "",
                        "quantity": quantity,
                        "name": listing.product_name or "",
                        "unit_price": amount / quantity,
                        "total_price": amount,
                    }
                ],
                "order_access_url": "",
            }
        ]
