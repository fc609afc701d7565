from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple


MAX_FEE = Decimal("0.10")


class SaleKind(IntEnum):
    FIXED_PRICE = 0
    AUCTION = 1


@dataclass(frozen=True)
class StrategySettings:
    resell_price: Optional[Decimal] = None  # ETH; None -> collection floor
    margin: Optional[Decimal] = None


@dataclass(frozen=True)
class ContractRef:
    name: str
    address: Optional[str]
    strategy: StrategySettings = field(default_factory=StrategySettings)


@dataclass
class Strategy:
    margin: Decimal
    max_bid: int
    resell_price: Optional[int] = None


@dataclass
class CollectionConfig:
    name: str
    address: str
    slug: str
    fee: Decimal
    strategy: Strategy


@dataclass(frozen=True)
class AssetContractInfo:
    name: str
    slug: str
    seller_fee_basis_points: int
    buyer_fee_basis_points: int


@dataclass(frozen=True)
class SellOrder:
    sale_kind: SaleKind
    current_price: int


@dataclass
class Asset:
    token_id: str
    sell_order: Optional[SellOrder]
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def listing_price(self) -> Optional[int]:
        if self.sell_order is None:
            return None
        return self.sell_order.current_price


@dataclass(frozen=True)
class BidRequest:
    token_id: str
    amount: int
    expiration_seconds: int


@dataclass
class BuyOrderReceipt:
    token_id: str
    amount: int
    expiration_ts: int
    order_hash: str
    raw: Dict[str, Any]


@dataclass
class BatchReport:
    candidates: int = 0
    placed: int = 0
    dry_run: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: bool = False


@dataclass
class RuntimeSettings:
    dry_run: bool = True
    request_timeout: float = 10.0
    tokens_per_interval: int = 1
    interval_seconds: float = 5.0
    limit: int = 50
    max_sale_price: Optional[Decimal] = None
    expiration_seconds: int = 3600
    skip_token_ids: Tuple[str, ...] = ()


@dataclass
class ApiRoutes:
    asset: str = "/api/v1/asset/{address}/{token_id}/"
    assets: str = "/api/v1/assets"
    collection_stats: str = "/api/v1/collection/{slug}/stats"
    create_buy_order: str = "/wyvern/v1/orders/post/"


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    api_base: str
    chain_id: int
    weth_address: str
    exchange_address: str


@dataclass
class AppConfig:
    network: NetworkConfig
    contract: ContractRef
    routes: ApiRoutes
    runtime: RuntimeSettings
    api_key: str
    rpc_url: str
    registry_file: str
