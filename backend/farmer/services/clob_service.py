"""
CLOB Order Service - Authenticated fill-or-kill orders on Polymarket
"""
import asyncio
from typing import Optional
from dataclasses import dataclass

from loguru import logger
from py_clob_client.client import ClobClient
from py_clob_client.clob_types import ApiCreds, MarketOrderArgs, OrderType
from py_clob_client.order_builder.constants import BUY

from core.config import Settings
from core.errors import ConfigurationError, VenueRequestError
from ..models.records import OrderPlaced

# Accepted statuses that count as a position. "delayed" is queued for matching.
FILLED_STATUSES = ("matched", "filled", "mined", "confirmed", "delayed")


@dataclass
class ClobConfig:
    host: str = "https://clob.polymarket.com"
    chain_id: int = 137
    private_key: str = ""
    funder: str = ""
    signature_type: int = 0
    api_key: str = ""
    api_secret: str = ""
    api_passphrase: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> 'ClobConfig':
        return cls(
            host=settings.clob_api_base,
            chain_id=settings.poly_chain_id,
            private_key=settings.poly_private_key or "",
            funder=settings.poly_funder_address or "",
            signature_type=settings.poly_signature_type,
            api_key=settings.poly_api_key or "",
            api_secret=settings.poly_api_secret or "",
            api_passphrase=settings.poly_api_passphrase or "",
        )


class ClobOrderClient:
    """
    Wraps py-clob-client. The signing client is built and authenticated on the
    first order of a run, then reused.
    """

    def __init__(self, config: ClobConfig):
        self.config = config
        self._client: Optional[ClobClient] = None
        self._lock = asyncio.Lock()

    def _build_client(self) -> ClobClient:
        if not self.config.private_key:
            raise ConfigurationError("POLY_PRIVATE_KEY is required for Polymarket trading")

        kwargs = dict(host=self.config.host, key=self.config.private_key, chain_id=self.config.chain_id)
        if self.config.funder:
            kwargs["signature_type"] = self.config.signature_type
            kwargs["funder"] = self.config.funder
        client = ClobClient(**kwargs)

        if self.config.api_key and self.config.api_secret and self.config.api_passphrase:
            creds = ApiCreds(
                api_key=self.config.api_key,
                api_secret=self.config.api_secret,
                api_passphrase=self.config.api_passphrase,
            )
        else:
            creds = client.create_or_derive_api_creds()
        client.set_api_creds(creds)
        logger.info("CLOB client authenticated")
        return client

    async def _get_client(self) -> ClobClient:
        async with self._lock:
            if self._client is None:
                self._client = await asyncio.to_thread(self._build_client)
            return self._client

    async def buy_fok(self, token_id: str, amount: float, price: float) -> OrderPlaced:
        """
        Market BUY of `amount` collateral, fill-or-kill, no worse than `price`.

        A killed order comes back as OrderPlaced(filled=False); only a rejected
        or unsendable order raises.
        """
        client = await self._get_client()
        args = MarketOrderArgs(token_id=token_id, amount=amount, side=BUY, price=price)
        try:
            signed = await asyncio.to_thread(client.create_market_order, args)
            resp = await asyncio.to_thread(client.post_order, signed, OrderType.FOK)
        except Exception as e:
            status = getattr(e, "status_code", None)
            raise VenueRequestError("polymarket", f"order rejected: {e}", status=status) from e

        resp = resp or {}
        order_id = resp.get("orderID") or resp.get("orderId")
        status = resp.get("status") or ("no-fill" if not order_id else "filled")
        if not order_id or not resp.get("success", True):
            logger.info(f"FOK order on {token_id} not filled ({status} {resp.get('errorMsg', '')})")
            return OrderPlaced(order_id=order_id or "no-fill", shares=None, filled=False, status=status)

        shares = resp.get("takingAmount")
        filled = status in FILLED_STATUSES
        if status == "delayed":
            logger.warning(f"FOK order {order_id} on {token_id} accepted with matching delay; holding it as filled")
        elif not filled:
            logger.warning(f"FOK order {order_id} on {token_id} accepted with status {status!r}; recorded unfilled")
        return OrderPlaced(
            order_id=order_id,
            shares=float(shares) if shares not in (None, "") else None,
            filled=filled,
            status=status,
        )
