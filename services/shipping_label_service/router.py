from functools import lru_cache
from typing import Union

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from shared.config.database import get_db
from shared.config.settings import CarrierSettings

from .carriers import NinjaClient, VoilaClient
from .exceptions import ShippingLabelError
from .schemas import (
    ErrorResponse,
    ExistingLabelResponse,
    GenerateLabelRequest,
    GenerateLabelResponse,
    ProviderPriceBand,
    QuoteResponse,
    WebhookResponse,
)
from .service import QuoteService, ShippingLabelService, ShippingWebhookService

logger = structlog.get_logger(__name__)

router = APIRouter()
public_router = APIRouter()  # For any public endpoints (e.g. health check)


@lru_cache
def get_carrier_settings() -> CarrierSettings:
    return CarrierSettings.from_env()


def get_label_service(
    db: AsyncSession = Depends(get_db),
    settings: CarrierSettings = Depends(get_carrier_settings),
) -> ShippingLabelService:
    return ShippingLabelService(db, warehouse=NinjaClient(settings), courier=VoilaClient(settings))


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "shipping_label", "status": "running"}


@router.post(
    "/generate-shipping-label",
    response_model=Union[GenerateLabelResponse, ExistingLabelResponse],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def generate_shipping_label(
    payload: GenerateLabelRequest,
    service: ShippingLabelService = Depends(get_label_service),
):
    return await service.generate_label(payload)


@router.post("/shipping-webhook", response_model=WebhookResponse)
async def shipping_webhook(payload: dict = Body(...), db: AsyncSession = Depends(get_db)):
    return await ShippingWebhookService.process(db, payload)


@router.get("/providers/{provider_id}/quote", response_model=QuoteResponse)
async def quote(
    provider_id: str,
    weight_kg: float = Query(..., ge=0),
    db: AsyncSession = Depends(get_db),
):
    band = await QuoteService.quote(db, provider_id, weight_kg)
    return QuoteResponse(
        provider_id=provider_id,
        weight_kg=weight_kg,
        band=ProviderPriceBand.model_validate(band),
    )


async def shipping_label_error_handler(request: Request, exc: ShippingLabelError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def unhandled_error_message(path: str) -> str:
    if path.endswith("/generate-shipping-label"):
        return "Failed to generate shipping label"
    if path.endswith("/shipping-webhook"):
        return "Failed to process shipping webhook"
    return "Internal server error"


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": unhandled_error_message(request.url.path), "details": str(exc)},
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ShippingLabelError, shipping_label_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
