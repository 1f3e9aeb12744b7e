from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging

import httpx
from pydantic import ValidationError

from .errors import FetchError
from .metrics import price_provider_request_seconds, price_provider_requests_total
from .models import PriceSeries, PriceSlot

logger = logging.getLogger("spotswitch")


def _to_epoch_ms(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


def _from_epoch_ms(ms: int | float) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


class PriceProvider(ABC):
    @abstractmethod
    async def get_prices(self, start: datetime, end: datetime) -> PriceSeries:
        """Return the hourly price series covering [start, end)."""


@dataclass
class AwattarPriceProvider(PriceProvider):
    country: str = "at"
    timeout: float = 15.0
    transport: httpx.AsyncBaseTransport | None = None

    @property
    def base_url(self) -> str:
        return f"https://api.awattar.{self.country}"

    async def get_prices(self, start: datetime, end: datetime) -> PriceSeries:
        params = {"start": _to_epoch_ms(start), "end": _to_epoch_ms(end)}
        with price_provider_request_seconds.labels(provider="awattar").time():
            try:
                async with httpx.AsyncClient(
                    base_url=self.base_url, timeout=self.timeout, transport=self.transport
                ) as client:
                    resp = await client.get("/v1/marketdata", params=params)
                    resp.raise_for_status()
                    data = resp.json()
                price_provider_requests_total.labels(provider="awattar", result="success").inc()
            except (httpx.HTTPError, ValueError) as exc:
                price_provider_requests_total.labels(provider="awattar", result="error").inc()
                raise FetchError(f"awattar request failed: {exc}") from exc
        return self._parse(data)

    @staticmethod
    def _parse(payload: dict) -> PriceSeries:
        try:
            entries = payload["data"]
            slots = [
                PriceSlot(
                    start=_from_epoch_ms(e["start_timestamp"]),
                    end=_from_epoch_ms(e["end_timestamp"]),
                    cost=float(e["marketprice"]),
                )
                for e in entries
            ]
            slots.sort(key=lambda s: s.start)
            return PriceSeries(slots=tuple(slots))
        except (KeyError, TypeError, ValidationError) as exc:
            raise FetchError(f"unexpected awattar payload: {exc}") from exc


@dataclass
class StubPriceProvider(PriceProvider):
    swing_low: float = 50.0
    swing_high: float = 150.0

    async def get_prices(self, start: datetime, end: datetime) -> PriceSeries:
        """Hourly sawtooth prices between swing_low and swing_high (Eur/MWh) for offline use."""
        start = start.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
        end = end.astimezone(timezone.utc)
        hours = int((end - start).total_seconds() // 3600)
        base = (self.swing_high + self.swing_low) / 2.0
        amplitude = (self.swing_high - self.swing_low) / 2.0
        slots: list[PriceSlot] = []
        for h in range(hours):
            t = start + timedelta(hours=h)
            phase = (t.hour % 24) / 24.0
            price = base + amplitude * (2 * phase - 1)
            slots.append(PriceSlot(start=t, end=t + timedelta(hours=1), cost=round(price, 2)))
        logger.debug("StubPriceProvider generated %s slots", len(slots))
        return PriceSeries(slots=tuple(slots))
