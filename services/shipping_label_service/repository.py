from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import (
    Listing,
    Order,
    SellerProfile,
    ShippingLabel,
    ShippingOption,
    ShippingProviderPrice,
)


class LabelConflict(Exception):
    """Raised by insert_label when the order already has a label row."""


class OrderRepository:
    @staticmethod
    async def get_order(db: AsyncSession, order_id: str) -> Optional[Order]:
        result = await db.execute(select(Order).where(Order.id == order_id))
        return result.scalars().first()

    @staticmethod
    async def find_by_reference(db: AsyncSession, reference: str, min_prefix: int) -> Optional[Order]:
        """Match a carrier-formatted number (dashes stripped, upper-cased, truncated).

        References shorter than ``min_prefix`` must equal the whole compact id;
        longer ones may be a truncated prefix of it.
        """
        compact = func.upper(func.replace(Order.id, "-", ""))
        number = reference.upper()
        if len(number) < min_prefix:
            clause = compact == number
        else:
            clause = compact.startswith(number, autoescape=True)
        result = await db.execute(select(Order).where(clause).limit(2))
        matches = result.scalars().all()
        # An ambiguous prefix is no match
        return matches[0] if len(matches) == 1 else None

    @staticmethod
    async def set_tracking_number(db: AsyncSession, order_id: str, tracking_number: str) -> bool:
        result = await db.execute(
            update(Order).where(Order.id == order_id).values(tracking_number=tracking_number)
        )
        await db.commit()
        return result.rowcount > 0

    @staticmethod
    async def set_delivery_status(db: AsyncSession, order_id: str, delivery_status: str) -> bool:
        result = await db.execute(
            update(Order).where(Order.id == order_id).values(delivery_status=delivery_status)
        )
        await db.commit()
        return result.rowcount > 0

    @staticmethod
    async def delete_order(db: AsyncSession, order_id: str) -> bool:
        result = await db.execute(delete(Order).where(Order.id == order_id))
        await db.commit()
        return result.rowcount > 0


class CatalogRepository:
    @staticmethod
    async def get_listing(db: AsyncSession, listing_id: str) -> Optional[Listing]:
        result = await db.execute(select(Listing).where(Listing.id == listing_id))
        return result.scalars().first()

    @staticmethod
    async def get_seller_profile(db: AsyncSession, seller_id: str) -> Optional[SellerProfile]:
        result = await db.execute(select(SellerProfile).where(SellerProfile.user_id == seller_id))
        return result.scalars().first()

    @staticmethod
    async def get_shipping_option(db: AsyncSession, option_id: str) -> Optional[ShippingOption]:
        result = await db.execute(
            select(ShippingOption)
            .where(ShippingOption.id == option_id)
            .options(selectinload(ShippingOption.provider))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_provider_prices(db: AsyncSession, provider_id: str):
        result = await db.execute(
            select(ShippingProviderPrice).where(ShippingProviderPrice.provider_id == provider_id)
        )
        return result.scalars().all()


class LabelRepository:
    @staticmethod
    async def get_by_order(db: AsyncSession, order_id: str) -> Optional[ShippingLabel]:
        result = await db.execute(select(ShippingLabel).where(ShippingLabel.order_id == order_id))
        return result.scalars().first()

    @staticmethod
    async def insert_label(db: AsyncSession, label: ShippingLabel) -> ShippingLabel:
        """Insert-if-absent on order_id. Raises LabelConflict when a row exists."""
        db.add(label)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            exists = await db.execute(
                select(ShippingLabel.id).where(ShippingLabel.order_id == label.order_id)
            )
            if exists.first() is None:
                raise
            raise LabelConflict(label.order_id) from e
        await db.refresh(label)
        return label

    @staticmethod
    async def update_label(db: AsyncSession, label: ShippingLabel, **values) -> ShippingLabel:
        for key, value in values.items():
            setattr(label, key, value)
        label.updated_at = datetime.now(timezone.utc)
        await db.commit()
        await db.refresh(label)
        return label
