from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from src.services.opensea.engine import BiddingSession
from src.services.opensea.models import ContractRef, StrategySettings
from src.services.opensea.units import to_wei


ADDRESS = "0x3fe1a4c1481c8351e91b64d5c398b159de07cbc5"
BIDDER = "0x00000000000000000000000000000000000b1dde"


def asset_payload(token_id: Any, price_eth: Optional[str] = None, sale_kind: int = 0) -> Dict[str, Any]:
    item: Dict[str, Any] = {"token_id": str(token_id), "sell_orders": None}
    if price_eth is not None:
        item["sell_orders"] = [
            {"sale_kind": sale_kind, "current_price": f"{to_wei(price_eth)}.0000"}
        ]
    return item


class FakeSigner:
    address = BIDDER

    def sign_order(self, order: Dict[str, Any]) -> str:
        return "0xsigned"


class CountingLimiter:
    def __init__(self) -> None:
        self.acquired = 0

    async def acquire(self) -> None:
        self.acquired += 1


class FakeClient:
    def __init__(
        self,
        *,
        assets: Optional[List[Dict[str, Any]]] = None,
        seller_fee_bps: int = 250,
        buyer_fee_bps: int = 0,
        floor_price: Any = 0.5,
        slug: str = "supducks",
    ) -> None:
        self.assets = assets if assets is not None else []
        self.seller_fee_bps = seller_fee_bps
        self.buyer_fee_bps = buyer_fee_bps
        self.floor_price = floor_price
        self.slug = slug
        self.asset_calls: List[tuple] = []
        self.stats_calls: List[str] = []
        self.page_calls: List[tuple] = []
        self.orders: List[tuple] = []
        self.fail_tokens: set = set()
        self.bid_assets: List[Dict[str, Any]] = []

    def get_asset(self, address: str, token_id: str) -> Dict[str, Any]:
        self.asset_calls.append((address, token_id))
        return {
            "token_id": token_id,
            "asset_contract": {
                "name": "SupDucks",
                "seller_fee_basis_points": self.seller_fee_bps,
                "buyer_fee_basis_points": self.buyer_fee_bps,
            },
            "collection": {"slug": self.slug},
        }

    def get_collection_stats(self, slug: str) -> Dict[str, Any]:
        self.stats_calls.append(slug)
        return {"stats": {"floor_price": self.floor_price}}

    def get_assets(self, address: str, limit: int, offset: int) -> List[Dict[str, Any]]:
        self.page_calls.append((address, limit, offset))
        if self.assets:
            return self.assets[offset : offset + limit]
        return [asset_payload(offset + i) for i in range(limit)]

    def create_buy_order(self, asset: Dict[str, str], account_address: str, amount: int, expiration_ts: int) -> Dict[str, Any]:
        if asset["token_id"] in self.fail_tokens:
            raise RuntimeError("HTTP 400: already bid")
        self.bid_assets.append(asset)
        self.orders.append((asset["token_id"], asset["token_address"], account_address, amount, expiration_ts))
        return {"order_hash": f"0xhash{asset['token_id']}"}


def run(coro):
    return asyncio.run(coro)


def contract_ref(resell_price: Optional[str] = "1.0", margin: Optional[str] = "0.10") -> ContractRef:
    return ContractRef(
        name="supducks",
        address=ADDRESS,
        strategy=StrategySettings(
            resell_price=Decimal(resell_price) if resell_price is not None else None,
            margin=Decimal(margin) if margin is not None else None,
        ),
    )


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def limiter() -> CountingLimiter:
    return CountingLimiter()


@pytest.fixture
def session(client: FakeClient, limiter: CountingLimiter) -> BiddingSession:
    return BiddingSession(client=client, signer=FakeSigner(), limiter=limiter, clock=lambda: 1_000.0)


@pytest.fixture
def onboarded(session: BiddingSession) -> BiddingSession:
    run(session.onboard(contract_ref()))
    return session
