"""
Label orchestration.

generate_label walks validating -> loading-context -> (idempotent exit |
routing -> generating-label -> persisting) -> done. Routing onwards runs as a
saga whose only compensation deletes the order (see label_saga).
"""
import re
import time
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.observability import (
    shipping_label_duration_seconds,
    shipping_label_total,
    shipping_webhook_total,
)

from .carriers import CARRIER_ID_MAX_LENGTH, CarrierAdapter
from .exceptions import (
    LabelInProgressError,
    NotFoundError,
    ValidationError,
)
from .label_saga import build_label_saga
from .models import ShippingLabel
from .pricing import provider_band_for_weight
from .repository import CatalogRepository, LabelConflict, LabelRepository, OrderRepository
from .schemas import GenerateLabelRequest, ShippingAddress

logger = structlog.get_logger(__name__)

# Per-process guard against the same order being labelled twice in parallel.
# The unique index on shipping_labels.order_id covers other processes.
active_labels: set = set()

WAREHOUSE_ORDER_PREFIX = "ORD-"
# Shortest truncated number a carrier echoes back ("ORD-" + 26 characters)
MIN_REFERENCE_PREFIX = CARRIER_ID_MAX_LENGTH - len(WAREHOUSE_ORDER_PREFIX)

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


class ShippingLabelService:
    def __init__(self, db: AsyncSession, warehouse: CarrierAdapter, courier: CarrierAdapter):
        self.db = db
        self.warehouse = warehouse
        self.courier = courier

    async def generate_label(self, request: GenerateLabelRequest) -> dict:
        order_id = request.order_id
        if not order_id:
            logger.error("label_validation_failed", reason="orderId is required")
            raise ValidationError("orderId is required")

        if order_id in active_labels:
            raise LabelInProgressError(
                "Label generation already in progress for this order",
                details={"order_id": order_id},
            )
        active_labels.add(order_id)

        started = time.perf_counter()
        with structlog.contextvars.bound_contextvars(order_id=order_id):
            try:
                return await self._generate(order_id, request)
            except Exception as e:
                shipping_label_total.labels(label_type="unknown", status="failed").inc()
                logger.error("label_generation_failed", error=str(e), error_type=type(e).__name__)
                raise
            finally:
                active_labels.discard(order_id)
                shipping_label_duration_seconds.observe(time.perf_counter() - started)

    async def _generate(self, order_id: str, request: GenerateLabelRequest) -> dict:
        order = await OrderRepository.get_order(self.db, order_id)
        if order is None:
            raise NotFoundError("Order not found", details={"order_id": order_id})

        existing = await LabelRepository.get_by_order(self.db, order_id)
        if existing is not None:
            shipping_label_total.labels(label_type=existing.label_type, status="existing").inc()
            logger.info("label_already_generated", label_id=existing.id)
            return {
                "success": True,
                "message": "Label already generated",
                "tracking_number": existing.tracking_number,
                "label_id": existing.id,
            }

        listing = await CatalogRepository.get_listing(self.db, order.listing_id)
        if listing is None:
            raise NotFoundError("Listing not found", details={"listing_id": order.listing_id})

        seller_profile = await CatalogRepository.get_seller_profile(self.db, order.seller_id)
        if seller_profile is None:
            logger.warning("seller_profile_missing", seller_id=order.seller_id)

        ctx = {
            "db": self.db,
            "order_id": order_id,
            "order": order,
            "listing": listing,
            "seller_profile": seller_profile,
            "shipping_address": request.shipping_address or ShippingAddress(),
            "shipping_option_id": request.shipping_option_id,
            "warehouse": self.warehouse,
            "courier": self.courier,
        }
        await build_label_saga().execute(ctx)

        shipping_label_total.labels(label_type=ctx["label_type"], status="created").inc()
        logger.info(
            "label_generated",
            label_type=ctx["label_type"],
            tracking_number=ctx["tracking_number"],
        )
        return {
            "success": True,
            "order_id": order_id,
            "tracking_number": ctx["tracking_number"],
            "label_type": ctx["label_type"],
            "data": ctx["result"].raw,
        }


def delivery_status_for(status: str) -> str:
    status = status.lower()
    if "shipped" in status or "dispatched" in status:
        return "shipped"
    if "delivered" in status:
        return "delivered"
    if "cancelled" in status or "canceled" in status:
        return "cancelled"
    return "processing"


def formatted_order_number(reference: str) -> Optional[str]:
    """Strip the carrier prefixes; None unless what remains is plain alphanumerics."""
    number = reference.lstrip("#")
    if number.upper().startswith(WAREHOUSE_ORDER_PREFIX):
        number = number[len(WAREHOUSE_ORDER_PREFIX):]
    if not number or _NON_ALNUM.search(number):
        return None
    return number


def _first(payload: dict, *keys) -> Optional[Any]:
    for key in keys:
        value = payload.get(key)
        if value:
            return value
    return None


class ShippingWebhookService:
    """Applies carrier status pushes (tracking codes, label URIs, delivery status)."""

    @staticmethod
    async def process(db: AsyncSession, payload: dict) -> dict:
        reference = _first(payload, "order_id", "remote_id", "reference")
        if not reference:
            shipping_webhook_total.labels(status="rejected").inc()
            raise ValidationError("Missing order identifier")

        codes = payload.get("tracking_codes") or []
        tracking_number = _first(payload, "tracking_code", "tracking_number") or (codes[0] if codes else None)
        label_uri = _first(payload, "label_uri", "uri", "label_url")
        status = _first(payload, "status", "order_status")

        order = await OrderRepository.get_order(db, str(reference))
        if order is None:
            number = formatted_order_number(str(reference))
            if number:
                order = await OrderRepository.find_by_reference(db, number, MIN_REFERENCE_PREFIX)
        if order is None:
            shipping_webhook_total.labels(status="unmatched").inc()
            logger.error("webhook_order_not_found", reference=reference)
            raise NotFoundError("Order not found", details={"reference": reference})

        # A rolled-back insert expires loaded rows; keep what is needed
        order_id, current_tracking = order.id, order.tracking_number

        values = {"label_data": payload}
        if tracking_number:
            values["tracking_number"] = tracking_number
        if label_uri:
            values["label_uri"] = label_uri

        label = await LabelRepository.get_by_order(db, order_id)
        if label is None:
            now = datetime.now(timezone.utc)
            try:
                label = await LabelRepository.insert_label(
                    db,
                    ShippingLabel(order_id=order_id, label_type="ninja", generated_at=now, updated_at=now, **values),
                )
            except LabelConflict:
                # Recorded by a label request or another push since the read above
                logger.info("webhook_label_recorded_concurrently", order_id=order_id)
                label = await LabelRepository.get_by_order(db, order_id)
                await LabelRepository.update_label(db, label, **values)
        else:
            await LabelRepository.update_label(db, label, **values)

        if tracking_number and tracking_number != current_tracking:
            await OrderRepository.set_tracking_number(db, order_id, tracking_number)

        if status:
            await OrderRepository.set_delivery_status(db, order_id, delivery_status_for(str(status)))

        shipping_webhook_total.labels(status="processed").inc()
        logger.info(
            "webhook_processed",
            order_id=order_id,
            tracking_number=tracking_number,
            carrier_status=status,
        )
        return {
            "success": True,
            "message": "Webhook processed successfully",
            "order_id": order_id,
            "tracking_number": tracking_number,
        }


class QuoteService:
    @staticmethod
    async def quote(db: AsyncSession, provider_id: str, weight_kg: float):
        prices = await CatalogRepository.get_provider_prices(db, provider_id)
        band = provider_band_for_weight(prices, provider_id, weight_kg)
        if band is None:
            raise NotFoundError(
                "No price band for weight",
                details={"provider_id": provider_id, "weight_kg": weight_kg},
            )
        return band
