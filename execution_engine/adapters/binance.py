"""
Execution Engine - Binance Gateway.

============================================================
PURPOSE
============================================================
Production gateway for Binance spot and USD-M futures.

SAFETY FEATURES:
- Request signing (HMAC-SHA256)
- Error mapping with retry classification
- Bounded retries with exponential backoff
- Client order ids reused across retries so a retried
  placement cannot create a second order

============================================================
"""

import asyncio
import hashlib
import hmac
import json
import logging
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import aiohttp

from ..config import ExchangeConfig, RetryConfig, TimeoutConfig
from ..types import (
    Balance,
    Fill,
    OrderAck,
    OrderRequest,
    OrderStatus,
    OrderType,
    VenueKind,
)
from .base import ExchangeGateway, retry_with_backoff
from .errors import create_network_error, create_timeout_error, map_binance_error


logger = logging.getLogger(__name__)


def _fmt(value: Decimal) -> str:
    """Plain decimal string, no exponent."""
    return format(value.normalize(), "f")


def parse_order_response(data: Dict[str, Any]) -> OrderAck:
    """
    Build an OrderAck from a spot or futures order payload.

    Average fill price is cumulative quote / executed quantity;
    commission is summed over fills, asset taken from the first fill.
    """
    executed = Decimal(str(data.get("executedQty", "0")))
    quote = data.get("cummulativeQuoteQty", data.get("cumQuote"))

    avg_price: Optional[Decimal] = None
    if executed > 0 and quote is not None:
        avg_price = Decimal(str(quote)) / executed
    elif data.get("avgPrice") and Decimal(str(data["avgPrice"])) > 0:
        avg_price = Decimal(str(data["avgPrice"]))

    fills = [
        Fill(
            price=Decimal(str(f["price"])),
            quantity=Decimal(str(f["qty"])),
            commission=Decimal(str(f.get("commission", "0"))),
            commission_asset=f.get("commissionAsset"),
        )
        for f in data.get("fills", [])
    ]

    try:
        status = OrderStatus(data.get("status", "NEW"))
    except ValueError:
        status = OrderStatus.NEW

    return OrderAck(
        exchange_order_id=str(data["orderId"]),
        symbol=data.get("symbol", ""),
        status=status,
        executed_qty=executed,
        avg_fill_price=avg_price,
        commission=sum((f.commission for f in fills), Decimal("0")),
        commission_asset=fills[0].commission_asset if fills else None,
        fills=fills,
    )


# ============================================================
# BINANCE GATEWAY
# ============================================================

class BinanceGateway(ExchangeGateway):
    """
    Binance exchange gateway.

    Implements the ExchangeGateway interface for spot and
    USD-M futures REST APIs.
    """

    def __init__(
        self,
        config: ExchangeConfig,
        retry_config: Optional[RetryConfig] = None,
        timeout_config: Optional[TimeoutConfig] = None,
    ):
        self._config = config
        self._retry_config = retry_config or RetryConfig()
        self._timeout_config = timeout_config or TimeoutConfig()
        self._session: Optional[aiohttp.ClientSession] = None

        if not config.api_key or not config.api_secret:
            logger.warning("Binance API credentials are not configured")

        logger.info(f"Binance gateway initialized ({'testnet' if config.testnet else 'mainnet'})")

    @property
    def exchange_id(self) -> str:
        return "binance"

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                connect=self._timeout_config.connection_timeout_seconds,
                total=self._timeout_config.read_timeout_seconds,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def ping(self) -> bool:
        try:
            await self._request("GET", VenueKind.SPOT, "/api/v3/ping", operation="ping")
            return True
        except Exception as e:
            logger.warning(f"Binance ping failed: {e}")
            return False

    # --------------------------------------------------------
    # MARKET DATA / ACCOUNT
    # --------------------------------------------------------

    async def get_price(self, symbol: str, venue: VenueKind = VenueKind.SPOT) -> Decimal:
        path = "/fapi/v1/ticker/price" if venue == VenueKind.FUTURE else "/api/v3/ticker/price"
        data = await self._call(
            "get_price",
            lambda: self._request("GET", venue, path, params={"symbol": symbol}, operation="get_price"),
        )
        return Decimal(str(data["price"]))

    async def get_balance(self, asset: str, venue: VenueKind = VenueKind.SPOT) -> Balance:
        if venue == VenueKind.FUTURE:
            data = await self._call(
                "get_balance",
                lambda: self._request("GET", venue, "/fapi/v2/balance", signed=True, operation="get_balance"),
            )
            for item in data:
                if item["asset"] == asset:
                    available = Decimal(str(item["availableBalance"]))
                    return Balance(
                        asset=asset,
                        free=available,
                        locked=Decimal(str(item["balance"])) - available,
                    )
            return Balance(asset=asset)

        data = await self._call(
            "get_balance",
            lambda: self._request("GET", venue, "/api/v3/account", signed=True, operation="get_balance"),
        )
        for item in data.get("balances", []):
            if item["asset"] == asset:
                return Balance(
                    asset=asset,
                    free=Decimal(str(item["free"])),
                    locked=Decimal(str(item["locked"])),
                )
        return Balance(asset=asset)

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def create_market_order(self, request: OrderRequest) -> OrderAck:
        params = {
            "symbol": request.symbol,
            "side": request.side.value,
            "type": OrderType.MARKET.value,
            "quantity": _fmt(request.quantity),
        }
        return await self._place(request.venue, params)

    async def create_limit_order(self, request: OrderRequest) -> OrderAck:
        if request.price is None:
            raise ValueError("Limit order requires a price")
        params = {
            "symbol": request.symbol,
            "side": request.side.value,
            "type": OrderType.LIMIT.value,
            "timeInForce": "GTC",
            "quantity": _fmt(request.quantity),
            "price": _fmt(request.price),
        }
        return await self._place(request.venue, params)

    async def _place(self, venue: VenueKind, params: Dict[str, Any]) -> OrderAck:
        path = "/fapi/v1/order" if venue == VenueKind.FUTURE else "/api/v3/order"
        params["newClientOrderId"] = f"sx-{uuid.uuid4().hex[:24]}"
        if venue == VenueKind.SPOT:
            params["newOrderRespType"] = "FULL"
        else:
            params["newOrderRespType"] = "RESULT"

        data = await self._call(
            "create_order",
            lambda: self._request("POST", venue, path, params=dict(params), signed=True, operation="create_order"),
        )
        ack = parse_order_response(data)
        logger.info(
            f"Binance order placed: {params['side']} {params['quantity']} {params['symbol']} "
            f"type={params['type']} id={ack.exchange_order_id} status={ack.status.value}"
        )
        return ack

    async def cancel_order(
        self,
        symbol: str,
        exchange_order_id: str,
        venue: VenueKind = VenueKind.SPOT,
    ) -> OrderAck:
        path = "/fapi/v1/order" if venue == VenueKind.FUTURE else "/api/v3/order"
        data = await self._call(
            "cancel_order",
            lambda: self._request(
                "DELETE", venue, path,
                params={"symbol": symbol, "orderId": exchange_order_id},
                signed=True, operation="cancel_order",
            ),
        )
        return parse_order_response(data)

    async def get_order(
        self,
        symbol: str,
        exchange_order_id: str,
        venue: VenueKind = VenueKind.SPOT,
    ) -> OrderAck:
        path = "/fapi/v1/order" if venue == VenueKind.FUTURE else "/api/v3/order"
        data = await self._call(
            "get_order",
            lambda: self._request(
                "GET", venue, path,
                params={"symbol": symbol, "orderId": exchange_order_id},
                signed=True, operation="get_order",
            ),
        )
        return parse_order_response(data)

    async def get_open_orders(
        self,
        symbol: Optional[str] = None,
        venue: VenueKind = VenueKind.SPOT,
    ) -> List[OrderAck]:
        path = "/fapi/v1/openOrders" if venue == VenueKind.FUTURE else "/api/v3/openOrders"
        params = {"symbol": symbol} if symbol else {}
        data = await self._call(
            "get_open_orders",
            lambda: self._request("GET", venue, path, params=dict(params), signed=True, operation="get_open_orders"),
        )
        return [parse_order_response(item) for item in data]

    # --------------------------------------------------------
    # LEVERAGED VENUE
    # --------------------------------------------------------

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        await self._call(
            "set_leverage",
            lambda: self._request(
                "POST", VenueKind.FUTURE, "/fapi/v1/leverage",
                params={"symbol": symbol, "leverage": leverage},
                signed=True, operation="set_leverage",
            ),
        )
        logger.info(f"Futures leverage set: {symbol} x{leverage}")

    # --------------------------------------------------------
    # TRANSPORT
    # --------------------------------------------------------

    async def _call(self, operation: str, call):
        return await retry_with_backoff(operation, call, self._retry_config)

    def _sign(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params["timestamp"] = str(int(time.time() * 1000))
        params["recvWindow"] = str(self._config.recv_window_ms)
        query_string = urlencode(params)
        params["signature"] = hmac.new(
            self._config.api_secret.encode(),
            query_string.encode(),
            hashlib.sha256,
        ).hexdigest()
        return params

    async def _request(
        self,
        method: str,
        venue: VenueKind,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        signed: bool = False,
        operation: Optional[str] = None,
    ) -> Any:
        """Make one API request; errors are raised as ExchangeApiError."""
        base_url = self._config.futures_url if venue == VenueKind.FUTURE else self._config.spot_url
        url = f"{base_url}{path}"
        headers = {"X-MBX-APIKEY": self._config.api_key}

        params = params or {}
        if signed:
            params = self._sign(params)

        session = self._get_session()

        try:
            async with session.request(
                method,
                url,
                params=params if method in ("GET", "DELETE") else None,
                data=params if method not in ("GET", "DELETE") else None,
                headers=headers,
            ) as response:
                text = await response.text()
                try:
                    data = json.loads(text)
                except ValueError:
                    # HTML or empty bodies from the edge; classified by status
                    error = map_binance_error(-1, text[:200] or "Non-JSON response", response.status, operation)
                    logger.error(f"Binance API returned non-JSON (HTTP {response.status}) on {operation}")
                    raise error.to_exception()

                if response.status != 200:
                    code = data.get("code", -1) if isinstance(data, dict) else -1
                    msg = data.get("msg", "Unknown error") if isinstance(data, dict) else str(data)
                    error = map_binance_error(code, msg, response.status, operation)
                    logger.error(f"Binance API error on {operation}: {error}")
                    raise error.to_exception()

                return data

        except aiohttp.ClientError as e:
            raise create_network_error(f"Network error: {e}", operation).to_exception() from e
        except asyncio.TimeoutError as e:
            timeout_ms = int(self._timeout_config.read_timeout_seconds * 1000)
            raise create_timeout_error(timeout_ms, operation).to_exception() from e
