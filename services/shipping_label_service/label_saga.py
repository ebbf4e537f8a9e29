import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .carriers import Shipment
from .exceptions import (
    DuplicateLabelError,
    LabelGenerationError,
    NotFoundError,
    PersistenceError,
)
from .models import ShippingLabel
from .repository import CatalogRepository, LabelConflict, LabelRepository, OrderRepository
from .saga import SagaOrchestrator

logger = structlog.get_logger(__name__)

WAREHOUSE_SHOP_TYPE = "master"


def is_warehouse_seller(seller_profile) -> bool:
    return seller_profile is not None and seller_profile.shop_type == WAREHOUSE_SHOP_TYPE


async def compensate(db: AsyncSession, order_id: str, reason: str) -> bool:
    """Delete an order that can no longer be fulfilled. Errors propagate to the caller."""
    logger.warning("order_compensation_started", order_id=order_id, reason=reason)
    deleted = await OrderRepository.delete_order(db, order_id)
    logger.warning("order_deleted", order_id=order_id, deleted=deleted, reason=reason)
    return deleted


# --- ACTIONS ---

async def route_carrier(ctx: dict):
    if is_warehouse_seller(ctx["seller_profile"]):
        ctx["carrier"] = ctx["warehouse"]
        logger.info("label_routed", order_id=ctx["order_id"], carrier=ctx["carrier"].name)
        return

    option_id = ctx.get("shipping_option_id")
    option = await CatalogRepository.get_shipping_option(ctx["db"], option_id) if option_id else None
    if option is None:
        raise NotFoundError("Shipping option not found", details={"shipping_option_id": option_id})

    ctx["shipping_option"] = option
    ctx["carrier"] = ctx["courier"]
    logger.info(
        "label_routed",
        order_id=ctx["order_id"],
        carrier=ctx["carrier"].name,
        shipping_option_id=option_id,
    )


async def generate_label(ctx: dict):
    carrier = ctx["carrier"]
    shipment = Shipment(
        order=ctx["order"],
        listing=ctx["listing"],
        shipping_address=ctx["shipping_address"],
        seller_profile=ctx["seller_profile"],
        shipping_option=ctx.get("shipping_option"),
    )
    result = await carrier.create_label(shipment)

    ctx["result"] = result
    ctx["label_type"] = result.label_type
    ctx["tracking_number"] = result.tracking_number

    if result.label_type == "voila" and not result.tracking_number:
        raise LabelGenerationError("Label generation succeeded but no tracking number was returned")


async def persist_label(ctx: dict):
    tracking_number = ctx["tracking_number"]
    if not tracking_number:
        # Warehouse import accepted without a tracking code; the carrier webhook records it later
        logger.info("label_pending_tracking", order_id=ctx["order_id"], label_type=ctx["label_type"])
        return

    db = ctx["db"]
    label = ShippingLabel(
        order_id=ctx["order_id"],
        tracking_number=tracking_number,
        label_type=ctx["label_type"],
        label_data=ctx["result"].raw,
    )
    try:
        ctx["label"] = await LabelRepository.insert_label(db, label)
    except LabelConflict:
        logger.critical(
            "orphaned_carrier_label",
            order_id=ctx["order_id"],
            tracking_number=tracking_number,
            label_type=ctx["label_type"],
            action="void or reconcile the carrier label manually",
        )
        raise DuplicateLabelError(
            "A shipping label was already recorded for this order",
            details={"order_id": ctx["order_id"], "orphaned_tracking_number": tracking_number},
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.critical(
            "label_not_recorded",
            order_id=ctx["order_id"],
            tracking_number=tracking_number,
            label_type=ctx["label_type"],
            error=str(e),
            action="carrier label exists but is not stored; reconcile manually, do not retry",
        )
        raise PersistenceError(f"Failed to save label to database: {e}", details=str(e)) from e


async def update_order_tracking(ctx: dict):
    tracking_number = ctx["tracking_number"]
    if not tracking_number:
        return

    db = ctx["db"]
    try:
        updated = await OrderRepository.set_tracking_number(db, ctx["order_id"], tracking_number)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.critical(
            "order_tracking_not_recorded",
            order_id=ctx["order_id"],
            tracking_number=tracking_number,
            error=str(e),
        )
        raise PersistenceError(
            f"Failed to update order with tracking number: {e}", details=str(e)
        ) from e

    if not updated:
        raise PersistenceError("Failed to update order with tracking number: order no longer exists")


# --- COMPENSATIONS (Rollbacks) ---

async def rollback_order(ctx: dict):
    failure = ctx.get("failure")
    if isinstance(failure, DuplicateLabelError):
        # The order belongs to whichever request recorded its label
        logger.warning("order_compensation_skipped", order_id=ctx["order_id"], reason="label recorded concurrently")
        return
    await compensate(ctx["db"], ctx["order_id"], reason=f"{ctx.get('failed_step')}: {failure}")


# --- BUILDER FACTORY ---

def build_label_saga() -> SagaOrchestrator:
    saga = SagaOrchestrator()
    # Once a carrier is chosen, any later failure leaves the order unfulfillable
    saga.add_step("route_carrier", route_carrier, rollback_order)
    saga.add_step("generate_label", generate_label, None)
    saga.add_step("persist_label", persist_label, None)
    saga.add_step("update_order_tracking", update_order_tracking, None)
    return saga
