import json
import os

# Keep imports of shared.config.database / observability away from Postgres and OTLP
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OTEL_ENABLED", "0")

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shared.config.database import Base
from shared.config.settings import CarrierSettings
from services.shipping_label_service.carriers import NinjaClient, VoilaClient
from services.shipping_label_service.models import (
    Listing,
    Order,
    SellerProfile,
    ShippingOption,
    ShippingProvider,
)
from services.shipping_label_service.service import ShippingLabelService

NINJA_URL = "https://ninja.test"
VOILA_URL = "https://voila.test"


@pytest.fixture
async def db():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def settings():
    return CarrierSettings(
        carrier_email="warehouse@vintstreet.test",
        carrier_password="s3cret",
        carrier_base_url=NINJA_URL,
        aggregator_api_user="vs-user",
        aggregator_api_token="vs-token",
        aggregator_base_url=VOILA_URL,
        request_timeout_seconds=5,
    )


class CarrierStub:
    """Scripted carrier endpoints keyed by URL path; records every request."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, path, status_code=200, json_body=None, exc=None):
        self.routes[path] = (status_code, json_body, exc)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status_code, body, exc = self.routes.get(request.url.path, (404, {"error": "no route"}, None))
        if exc is not None:
            raise exc
        return httpx.Response(status_code, json=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def paths(self):
        return [r.url.path for r in self.requests]

    def body(self, index):
        return json.loads(self.requests[index].content)


LOGIN = "/api/login"
IMPORT = "/api/orders/import-json"
CREATE_LABEL = "/api/couriers/v1/MoovParcel/create-label"


@pytest.fixture
def carrier():
    return CarrierStub()


@pytest.fixture
def label_service(db, settings, carrier):
    client = carrier.client()
    return ShippingLabelService(
        db,
        warehouse=NinjaClient(settings, client=client),
        courier=VoilaClient(settings, client=client),
    )


async def seed(db, *rows):
    db.add_all(rows)
    await db.commit()
    return rows


@pytest.fixture
def make_order():
    def _make(order_id="abc-123", seller_id="seller-1", listing_id="listing-1", **overrides):
        values = dict(
            id=order_id,
            listing_id=listing_id,
            buyer_id="buyer-1",
            seller_id=seller_id,
            order_amount=45.0,
            quantity=1,
            status="paid",
            delivery_status="processing",
        )
        values.update(overrides)
        return Order(**values)
    return _make


@pytest.fixture
async def c2c_order(db, make_order):
    """Individual seller shipping a 1.5 kg listing with DPD."""
    provider = ShippingProvider(id="prov-dpd", name="DPD")
    await seed(
        db,
        provider,
        make_order(),
        Listing(id="listing-1", product_name="Levi's 501 Jeans", weight=1.5, sku="LEV-501"),
        SellerProfile(
            user_id="seller-1",
            shop_type="individual",
            shop_name="Retro Rails",
            return_address_line1="1 Brick Lane",
            return_city="London",
            return_postal_code="E1 6QL",
            contact_email="rails@example.com",
        ),
        ShippingOption(id="opt-1", seller_id="seller-1", provider_id="prov-dpd", price=3.99),
    )
    return "abc-123"


@pytest.fixture
async def warehouse_order(db, make_order):
    order_id = "0b7f6c1e-92d4-4b1a-9a57-3f2c8e1d4a60"
    await seed(
        db,
        make_order(order_id=order_id, seller_id="house", listing_id="listing-w", order_amount=60.0, quantity=2),
        Listing(id="listing-w", product_name="Barbour Jacket", weight=None, sku="BAR-01"),
        SellerProfile(user_id="house", shop_type="master", shop_name="VintStreet System"),
    )
    return order_id


ADDRESS = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "address_line1": "12 St James's Square",
    "city": "London",
    "postal_code": "SW1Y 4JH",
    "phone": "07700900123",
    "email": "ada@example.com",
}
