from typing import Any, Optional
from pydantic import BaseModel, Field


class ShippingAddress(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class GenerateLabelRequest(BaseModel):
    # Optional here so a missing orderId is answered with 400, not 422
    order_id: Optional[str] = Field(default=None, alias="orderId")
    shipping_address: Optional[ShippingAddress] = Field(default=None, alias="shippingAddress")
    shipping_option_id: Optional[str] = Field(default=None, alias="shippingOptionId")

    class Config:
        populate_by_name = True


class GenerateLabelResponse(BaseModel):
    success: bool = True
    order_id: str
    tracking_number: Optional[str]
    label_type: str
    data: Any = None


class ExistingLabelResponse(BaseModel):
    success: bool = True
    message: str = "Label already generated"
    tracking_number: Optional[str]
    label_id: str


class ErrorResponse(BaseModel):
    error: str
    details: Any = None


class WebhookResponse(BaseModel):
    success: bool = True
    message: str = "Webhook processed successfully"
    order_id: str
    tracking_number: Optional[str] = None


class ProviderPriceBand(BaseModel):
    id: str
    provider_id: str
    band_name: Optional[str]
    min_weight: Optional[float]
    max_weight: Optional[float]
    price: float
    currency: str = "GBP"

    class Config:
        from_attributes = True


class QuoteResponse(BaseModel):
    provider_id: str
    weight_kg: float
    band: ProviderPriceBand

