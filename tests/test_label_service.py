"""
End-to-end label generation against an in-memory database and scripted
carrier endpoints.
"""
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from conftest import ADDRESS, CREATE_LABEL, IMPORT, LOGIN, seed
from services.shipping_label_service import service as service_module
from services.shipping_label_service.exceptions import (
    AuthenticationError,
    CarrierLabelError,
    CarrierTimeoutError,
    DuplicateLabelError,
    LabelGenerationError,
    LabelInProgressError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from services.shipping_label_service.models import Listing, SellerProfile, ShippingLabel
from services.shipping_label_service.repository import LabelRepository, OrderRepository
from services.shipping_label_service.schemas import GenerateLabelRequest


def _request(order_id, shipping_option_id=None):
    return GenerateLabelRequest(
        orderId=order_id,
        shippingAddress=ADDRESS,
        shippingOptionId=shipping_option_id,
    )


# --- Validation & loading ---

async def test_missing_order_id(label_service, carrier):
    with pytest.raises(ValidationError):
        await label_service.generate_label(GenerateLabelRequest())
    assert carrier.requests == []


async def test_unknown_order(label_service, carrier):
    with pytest.raises(NotFoundError, match="Order not found"):
        await label_service.generate_label(_request("nope"))
    assert carrier.requests == []


async def test_missing_listing(db, label_service, carrier, make_order):
    await seed(db, make_order(listing_id="gone"))

    with pytest.raises(NotFoundError, match="Listing not found"):
        await label_service.generate_label(_request("abc-123", "opt-1"))

    assert carrier.requests == []
    assert await OrderRepository.get_order(db, "abc-123") is not None


# --- Peer-to-peer path ---

async def test_c2c_label_scenario(db, label_service, carrier, c2c_order):
    carrier.on(CREATE_LABEL, json_body={"tracking_codes": ["DPD0001"], "uri": "https://labels/1.pdf"})

    response = await label_service.generate_label(_request(c2c_order, "opt-1"))

    assert response["success"] is True
    assert response["order_id"] == c2c_order
    assert response["tracking_number"] == "DPD0001"
    assert response["label_type"] == "voila"
    assert response["data"]["uri"] == "https://labels/1.pdf"

    assert carrier.paths() == [CREATE_LABEL]
    shipment = carrier.body(0)["shipment"]
    parcel = shipment["parcels"][0]
    assert (parcel["dim_length"], parcel["dim_width"], parcel["dim_height"]) == (47, 34, 15)
    assert shipment["dc_service_id"] == "DPD-12DROPQR"
    assert shipment["ship_from"]["name"] == "Retro Rails"

    label = await LabelRepository.get_by_order(db, c2c_order)
    assert label.label_type == "voila"
    assert label.tracking_number == "DPD0001"
    assert label.label_data["tracking_codes"] == ["DPD0001"]
    assert label.generated_at is not None

    order = await OrderRepository.get_order(db, c2c_order)
    assert order.tracking_number == "DPD0001"


async def test_second_call_is_idempotent(db, label_service, carrier, c2c_order):
    carrier.on(CREATE_LABEL, json_body={"tracking_codes": ["DPD0001"]})

    first = await label_service.generate_label(_request(c2c_order, "opt-1"))
    second = await label_service.generate_label(_request(c2c_order, "opt-1"))

    assert len(carrier.requests) == 1
    assert second["message"] == "Label already generated"
    assert second["tracking_number"] == first["tracking_number"] == "DPD0001"
    label = await LabelRepository.get_by_order(db, c2c_order)
    assert second["label_id"] == label.id


async def test_c2c_without_shipping_option_fails_before_carrier(db, label_service, carrier, c2c_order):
    with pytest.raises(NotFoundError, match="Shipping option not found"):
        await label_service.generate_label(_request(c2c_order, None))

    assert carrier.requests == []
    assert await OrderRepository.get_order(db, c2c_order) is not None


async def test_c2c_unknown_shipping_option(db, label_service, carrier, c2c_order):
    with pytest.raises(NotFoundError):
        await label_service.generate_label(_request(c2c_order, "opt-missing"))
    assert carrier.requests == []


async def test_seller_without_profile_takes_c2c_path(db, label_service, carrier, make_order):
    await seed(
        db,
        make_order(seller_id="ghost"),
        Listing(id="listing-1", product_name="Scarf", weight=0.3),
    )

    with pytest.raises(NotFoundError, match="Shipping option not found"):
        await label_service.generate_label(_request("abc-123"))
    assert carrier.requests == []


async def test_empty_tracking_codes_deletes_order(db, label_service, carrier, c2c_order):
    carrier.on(CREATE_LABEL, json_body={"tracking_codes": []})

    with pytest.raises(LabelGenerationError):
        await label_service.generate_label(_request(c2c_order, "opt-1"))

    assert await OrderRepository.get_order(db, c2c_order) is None
    assert await LabelRepository.get_by_order(db, c2c_order) is None


async def test_carrier_rejection_deletes_order(db, label_service, carrier, c2c_order):
    carrier.on(CREATE_LABEL, status_code=500, json_body={"error": "courier offline"})

    with pytest.raises(CarrierLabelError) as exc:
        await label_service.generate_label(_request(c2c_order, "opt-1"))

    assert exc.value.details == {"error": "courier offline"}
    assert await OrderRepository.get_order(db, c2c_order) is None


async def test_carrier_timeout_deletes_order(db, label_service, carrier, c2c_order):
    carrier.on(CREATE_LABEL, exc=httpx.ConnectTimeout("no answer"))

    with pytest.raises(CarrierTimeoutError):
        await label_service.generate_label(_request(c2c_order, "opt-1"))

    assert await OrderRepository.get_order(db, c2c_order) is None


async def test_failed_deletion_does_not_mask_carrier_error(db, label_service, carrier, c2c_order):
    carrier.on(CREATE_LABEL, status_code=503, json_body={"error": "maintenance"})

    with patch.object(OrderRepository, "delete_order", AsyncMock(side_effect=SQLAlchemyError("db down"))) as delete:
        with pytest.raises(CarrierLabelError):
            await label_service.generate_label(_request(c2c_order, "opt-1"))

    delete.assert_awaited_once()


# --- Warehouse path ---

async def test_warehouse_scenario(db, label_service, carrier, warehouse_order):
    carrier.on(LOGIN, json_body={"accessToken": "tok"})
    carrier.on(IMPORT, json_body={"tracking_code": "NJ-778899", "tracking_number": "ignored"})

    # A shipping option is supplied but must not matter for house stock
    response = await label_service.generate_label(_request(warehouse_order, "opt-1"))

    assert carrier.paths() == [LOGIN, IMPORT]
    assert response["label_type"] == "ninja"
    assert response["tracking_number"] == "NJ-778899"

    batch = carrier.body(1)
    assert len(batch[0]["order_id"]) <= 30
    assert len(batch[0]["primary_reference_id"]) <= 30
    assert batch[0]["order_lines"][0]["unit_price"] == 30.0

    label = await LabelRepository.get_by_order(db, warehouse_order)
    assert label.label_type == "ninja"
    order = await OrderRepository.get_order(db, warehouse_order)
    assert order.tracking_number == "NJ-778899"


async def test_warehouse_import_without_tracking_leaves_label_pending(db, label_service, carrier, warehouse_order):
    carrier.on(LOGIN, json_body={"accessToken": "tok"})
    carrier.on(IMPORT, json_body={"status": "imported"})

    response = await label_service.generate_label(_request(warehouse_order))

    assert response["success"] is True
    assert response["tracking_number"] is None
    assert await LabelRepository.get_by_order(db, warehouse_order) is None
    order = await OrderRepository.get_order(db, warehouse_order)
    assert order is not None
    assert order.tracking_number is None


async def test_warehouse_auth_failure_deletes_order(db, label_service, carrier, warehouse_order):
    carrier.on(LOGIN, status_code=401, json_body={"message": "nope"})

    with pytest.raises(AuthenticationError):
        await label_service.generate_label(_request(warehouse_order))

    assert carrier.paths() == [LOGIN]
    assert await OrderRepository.get_order(db, warehouse_order) is None


# --- Persistence failures ---

async def test_label_insert_failure_deletes_order(db, label_service, carrier, c2c_order):
    carrier.on(CREATE_LABEL, json_body={"tracking_codes": ["DPD0001"]})

    with patch.object(LabelRepository, "insert_label", AsyncMock(side_effect=SQLAlchemyError("disk full"))):
        with pytest.raises(PersistenceError, match="Failed to save label"):
            await label_service.generate_label(_request(c2c_order, "opt-1"))

    assert len(carrier.requests) == 1
    assert await OrderRepository.get_order(db, c2c_order) is None


async def test_order_update_failure_deletes_order(db, label_service, carrier, c2c_order):
    carrier.on(CREATE_LABEL, json_body={"tracking_codes": ["DPD0001"]})

    with patch.object(OrderRepository, "set_tracking_number", AsyncMock(side_effect=SQLAlchemyError("locked"))):
        with pytest.raises(PersistenceError, match="Failed to update order"):
            await label_service.generate_label(_request(c2c_order, "opt-1"))

    assert await OrderRepository.get_order(db, c2c_order) is None
    # The issued label stays on record for reconciliation
    label = await LabelRepository.get_by_order(db, c2c_order)
    assert label.tracking_number == "DPD0001"



async def test_insert_integrity_error_without_existing_label_is_not_a_conflict(db):
    # label_type is NOT NULL; nothing is recorded for the order
    with pytest.raises(IntegrityError):
        await LabelRepository.insert_label(db, ShippingLabel(order_id="abc-123", tracking_number="T1", label_type=None))

    assert await LabelRepository.get_by_order(db, "abc-123") is None


async def test_insert_integrity_error_deletes_order(db, label_service, carrier, c2c_order):
    carrier.on(CREATE_LABEL, json_body={"tracking_codes": ["DPD0001"]})
    broken = IntegrityError("INSERT INTO shipping_labels", {}, Exception("FOREIGN KEY constraint failed"))

    with patch.object(LabelRepository, "insert_label", AsyncMock(side_effect=broken)):
        with pytest.raises(PersistenceError):
            await label_service.generate_label(_request(c2c_order, "opt-1"))

    assert await OrderRepository.get_order(db, c2c_order) is None


# --- Concurrency guards ---

async def test_concurrent_request_for_same_order_is_rejected(label_service, carrier, c2c_order):
    service_module.active_labels.add(c2c_order)
    try:
        with pytest.raises(LabelInProgressError):
            await label_service.generate_label(_request(c2c_order, "opt-1"))
    finally:
        service_module.active_labels.discard(c2c_order)

    assert carrier.requests == []


async def test_in_flight_marker_is_cleared_after_failure(label_service, carrier, c2c_order):
    carrier.on(CREATE_LABEL, status_code=500, json_body={})

    with pytest.raises(CarrierLabelError):
        await label_service.generate_label(_request(c2c_order, "opt-1"))

    assert c2c_order not in service_module.active_labels


async def test_label_recorded_by_another_worker_keeps_order(db, label_service, carrier, c2c_order):
    carrier.on(CREATE_LABEL, json_body={"tracking_codes": ["DPD-LATE"]})
    await seed(db, ShippingLabel(order_id=c2c_order, tracking_number="DPD-FIRST", label_type="voila"))

    # Both workers passed the idempotency read before either wrote
    with patch.object(LabelRepository, "get_by_order", AsyncMock(return_value=None)):
        with pytest.raises(DuplicateLabelError) as exc:
            await label_service.generate_label(_request(c2c_order, "opt-1"))

    assert exc.value.details["orphaned_tracking_number"] == "DPD-LATE"
    assert await OrderRepository.get_order(db, c2c_order) is not None
    label = await LabelRepository.get_by_order(db, c2c_order)
    assert label.tracking_number == "DPD-FIRST"


async def test_master_routing_ignores_individual_adapter(db, label_service, carrier, make_order):
    await seed(
        db,
        make_order(order_id="m-1", seller_id="house-2", listing_id="l-2"),
        Listing(id="l-2", product_name="Wax Jacket", weight=2.5),
        SellerProfile(user_id="house-2", shop_type="master"),
    )
    carrier.on(LOGIN, json_body={"accessToken": "tok"})
    carrier.on(IMPORT, json_body=[{"tracking_code": "NJ-1"}])

    response = await label_service.generate_label(_request("m-1", "opt-does-not-exist"))

    assert CREATE_LABEL not in carrier.paths()
    assert response["tracking_number"] == "NJ-1"
