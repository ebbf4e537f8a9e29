"""Carrier adapter interface and the label results it produces."""

import re
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Optional

import httpx
import structlog

from shared.config.settings import CarrierSettings
from shared.observability import carrier_request_total

from ..exceptions import CarrierTimeoutError
from ..models import Listing, Order, SellerProfile, ShippingOption
from ..schemas import ShippingAddress

logger = structlog.get_logger(__name__)

CARRIER_ID_MAX_LENGTH = 30

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def carrier_reference(order_id: str, prefix: str) -> str:
    """Carrier-safe identifier: prefix + upper-cased alphanumerics, max 30 chars."""
    compact = _NON_ALNUM.sub("", order_id).upper()
    return f"{prefix}{compact}"[:CARRIER_ID_MAX_LENGTH]


@dataclass
class Shipment:
    order: Order
    listing: Listing
    shipping_address: ShippingAddress
    seller_profile: Optional[SellerProfile] = None
    shipping_option: Optional[ShippingOption] = None


@dataclass
class WarehouseLabelResult:
    tracking_number: Optional[str]
    raw: Any
    label_type: str = "ninja"


@dataclass
class PeerToPeerLabelResult:
    tracking_codes: List[str]
    raw: Any
    service_code: str = ""
    label_type: str = "voila"

    @property
    def tracking_number(self) -> Optional[str]:
        return self.tracking_codes[0] if self.tracking_codes else None


class CarrierAdapter(ABC):
    """One external carrier API."""

    name: str = ""
    label_type: str = ""

    def __init__(self, settings: CarrierSettings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        # Injected clients (tests, shared pools) are never closed here
        self._client = client

    @abstractmethod
    async def create_label(self, shipment: Shipment):
        raise NotImplementedError

    @asynccontextmanager
    async def http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.settings.request_timeout_seconds) as client:
            yield client

    async def post(self, client: httpx.AsyncClient, endpoint: str, url: str, error_cls, **kwargs) -> httpx.Response:
        """POST with the configured timeout; transport failures become ``error_cls``."""
        try:
            resp = await client.post(url, timeout=self.settings.request_timeout_seconds, **kwargs)
        except httpx.TimeoutException as e:
            carrier_request_total.labels(carrier=self.name, endpoint=endpoint, outcome="timeout").inc()
            logger.error("carrier_timeout", carrier=self.name, endpoint=endpoint, url=url)
            raise CarrierTimeoutError(
                f"{self.name} {endpoint} timed out after {self.settings.request_timeout_seconds}s",
                details=str(e),
            ) from e
        except httpx.HTTPError as e:
            carrier_request_total.labels(carrier=self.name, endpoint=endpoint, outcome="error").inc()
            logger.error("carrier_transport_error", carrier=self.name, endpoint=endpoint, error=str(e))
            raise error_cls(f"{self.name} {endpoint} request failed: {e}", details=str(e)) from e

        outcome = "ok" if resp.is_success else "rejected"
        carrier_request_total.labels(carrier=self.name, endpoint=endpoint, outcome=outcome).inc()
        return resp


def response_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text
