import uuid

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, JSON, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shared.config.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Order(Base):
    # Written by the order-placement flow; this service only sets
    # tracking_number / delivery_status or deletes the row.
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=_uuid)
    listing_id = Column(String, nullable=False)
    buyer_id = Column(String, nullable=False)
    seller_id = Column(String, nullable=False, index=True)
    order_amount = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    status = Column(String, default="pending")
    delivery_status = Column(String, default="processing") # processing, shipped, delivered, cancelled
    tracking_number = Column(String, nullable=True)


class Listing(Base):
    __tablename__ = "listings"

    id = Column(String, primary_key=True, default=_uuid)
    product_name = Column(String, nullable=False)
    thumbnail = Column(String, nullable=True)
    weight = Column(Float, nullable=True) # kg
    sku = Column(String, nullable=True)
    stream_id = Column(String, nullable=True)


class SellerProfile(Base):
    __tablename__ = "seller_profiles"

    user_id = Column(String, primary_key=True)
    shop_type = Column(String, nullable=True) # 'master' = house warehouse stock
    shop_name = Column(String, nullable=True)
    business_name = Column(String, nullable=True)
    return_address_line1 = Column(String, nullable=True)
    return_address_line2 = Column(String, nullable=True)
    return_city = Column(String, nullable=True)
    return_state = Column(String, nullable=True)
    return_postal_code = Column(String, nullable=True)
    return_country = Column(String, nullable=True)
    contact_email = Column(String, nullable=True)
    contact_phone = Column(String, nullable=True)


class ShippingProvider(Base):
    __tablename__ = "shipping_providers"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False) # 'DPD', 'Yodel', 'Evri'
    is_active = Column(Boolean, default=True)


class ShippingOption(Base):
    __tablename__ = "shipping_options"

    id = Column(String, primary_key=True, default=_uuid)
    seller_id = Column(String, nullable=False, index=True)
    provider_id = Column(String, ForeignKey("shipping_providers.id"), nullable=True)
    price = Column(Float, nullable=True)

    provider = relationship("ShippingProvider", lazy="selectin")


class ShippingProviderPrice(Base):
    __tablename__ = "shipping_provider_prices"

    id = Column(String, primary_key=True, default=_uuid)
    provider_id = Column(String, ForeignKey("shipping_providers.id"), nullable=False, index=True)
    band_name = Column(String, nullable=True)
    min_weight = Column(Float, nullable=True)
    max_weight = Column(Float, nullable=True)
    price = Column(Float, nullable=False)
    currency = Column(String, default="GBP")
    is_active = Column(Boolean, default=True)


class ShippingLabel(Base):
    __tablename__ = "shipping_labels"

    id = Column(String, primary_key=True, default=_uuid)
    # At most one label per order; the unique index is what settles races
    # between concurrent workers.
    order_id = Column(String, nullable=False, unique=True, index=True)
    tracking_number = Column(String, nullable=True)
    label_type = Column(String, nullable=False) # 'ninja' (warehouse) or 'voila' (peer-to-peer)
    label_data = Column(JSON, nullable=True)
    label_uri = Column(String, nullable=True)
    generated_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
