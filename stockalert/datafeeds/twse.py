"""
TWSE quote source (mis.twse.com.tw realtime snapshot API).

One request per identifier, bounded by a total timeout. Failures surface as
QuoteError subclasses so callers can skip the identifier and carry on.
"""
import asyncio
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
from loguru import logger

from stockalert.config import QUOTE_FETCH_TIMEOUT_SECONDS
from stockalert.datafeeds.stock_names import get_stock_name

TWSE_QUOTE_URL = "https://mis.twse.com.tw/stock/api/getStockInfo.jsp"


class QuoteError(Exception):
    """Base class for quote source failures."""


class FetchError(QuoteError):
    """Network, timeout, HTTP or payload failure."""


class NotFoundError(QuoteError):
    """The identifier is unknown to the quote source."""


@dataclass(frozen=True)
class Snapshot:
    """One fetched observation of an identifier."""
    identifier: str
    name: str
    price: float
    previous_close: Optional[float]
    volume: float
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    timestamp: Optional[int] = None  # epoch, ms or s as reported by TWSE

    @property
    def reference_close(self) -> float:
        """Previous close, falling back to the current price when missing or zero."""
        return self.previous_close or self.price

    @property
    def price_change(self) -> float:
        return self.price - self.reference_close

    @property
    def percent_change(self) -> float:
        reference = self.reference_close
        if reference == 0:
            return 0.0
        return self.price_change / reference * 100


def _to_float(value: Any) -> Optional[float]:
    """Parse a TWSE numeric field ("-" and blanks mean no value)."""
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def parse_twse_payload(identifier: str, payload: Any,
                       name_overrides: Optional[Dict[str, str]] = None) -> Snapshot:
    """
    Convert a getStockInfo.jsp response into a Snapshot.

    Fields used: z (last trade), y (previous close), v (volume), o/h/l,
    tlong (timestamp), n (short name).

    Raises:
        NotFoundError: msgArray missing or empty
        FetchError: payload is not an object or has no trade price
    """
    if not isinstance(payload, dict):
        raise FetchError(f"Malformed TWSE payload for {identifier}")

    msg_array = payload.get("msgArray")
    if not msg_array:
        raise NotFoundError(f"No TWSE data for {identifier}")

    data = msg_array[0]
    if not isinstance(data, dict):
        raise FetchError(f"Malformed TWSE entry for {identifier}")

    price = _to_float(data.get("z"))
    if price is None:
        raise FetchError(f"No trade price for {identifier} (z={data.get('z')!r})")

    timestamp = None
    tlong = data.get("tlong")
    if tlong is not None and str(tlong).isdigit():
        timestamp = int(tlong)

    name = get_stock_name(identifier, name_overrides)
    if name == identifier and data.get("n"):
        name = str(data["n"])

    return Snapshot(
        identifier=identifier,
        name=name,
        price=price,
        previous_close=_to_float(data.get("y")),
        volume=_to_float(data.get("v")) or 0.0,
        open=_to_float(data.get("o")) or 0.0,
        high=_to_float(data.get("h")) or 0.0,
        low=_to_float(data.get("l")) or 0.0,
        timestamp=timestamp,
    )


class TwseQuoteClient:
    """Async client for TWSE realtime quotes."""

    def __init__(
        self,
        base_url: str = TWSE_QUOTE_URL,
        market: str = "tse",
        timeout: float = QUOTE_FETCH_TIMEOUT_SECONDS,
        name_overrides: Optional[Dict[str, str]] = None
    ):
        self.base_url = base_url
        self.market = market
        self.timeout = timeout
        self.name_overrides = name_overrides or {}

    def _params(self, identifier: str) -> Dict[str, str]:
        return {"ex_ch": f"{self.market}_{identifier}.tw"}

    async def _request_json(self, identifier: str) -> Any:
        async with aiohttp.ClientSession() as session:
            async with session.get(
                self.base_url,
                params=self._params(identifier),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": "Mozilla/5.0 (stockalert)"}
            ) as response:
                if response.status != 200:
                    raise FetchError(f"TWSE returned HTTP {response.status} for {identifier}")
                # TWSE does not always send application/json
                return await response.json(content_type=None)

    async def fetch(self, identifier: str) -> Snapshot:
        """
        Fetch the current snapshot for an identifier.

        Raises:
            NotFoundError: unknown identifier
            FetchError: timeout, network, HTTP or payload error
        """
        try:
            payload = await self._request_json(identifier)
        except asyncio.TimeoutError as e:
            raise FetchError(f"Timed out after {self.timeout}s fetching {identifier}") from e
        except aiohttp.ClientError as e:
            raise FetchError(f"Connection error fetching {identifier}: {e}") from e
        except ValueError as e:
            raise FetchError(f"Invalid JSON fetching {identifier}: {e}") from e

        snapshot = parse_twse_payload(identifier, payload, self.name_overrides)
        logger.debug(f"Fetched {identifier}: price={snapshot.price} volume={snapshot.volume}")
        return snapshot
