from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Dict, Iterable, List, Optional

from .errors import BidOutOfBoundsError, ConfigurationError, FeeTooHighError
from .models import MAX_FEE, Asset, AssetContractInfo, SaleKind, SellOrder
from .units import MAX_BID_GRANULARITY, parse_wei


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _to_int(value: Any, default: int = 0) -> int:
    d = to_decimal(value)
    if d is None or not d.is_finite():
        return default
    return int(d)


def fee_from_basis_points(basis_points: int) -> Decimal:
    return Decimal(basis_points) / Decimal(10_000)


def compute_max_bid(fee: Decimal, resell_price: int, margin: Decimal) -> int:
    """Highest bid that still leaves ``margin`` after selling at ``resell_price``.

    maxBid = resell_price * (1 - fee) / (1 + margin), truncated down to a
    multiple of 1e14 wei (4 decimals of ETH). Never rounds up.
    """
    fee = Decimal(str(fee))
    margin = Decimal(str(margin))
    if fee < 0:
        raise ConfigurationError("fee", fee, "must be >= 0")
    if fee >= MAX_FEE:
        raise FeeTooHighError(fee, MAX_FEE)
    if margin < 0:
        raise ConfigurationError("strategy.margin", margin, "must be >= 0")
    if resell_price <= 0:
        raise ConfigurationError("strategy.resell_price", resell_price, "must be > 0")

    with localcontext() as ctx:
        ctx.prec = 80
        raw = Decimal(resell_price) * (Decimal(1) - fee) / (Decimal(1) + margin)
        wei = int(raw)
    return (wei // MAX_BID_GRANULARITY) * MAX_BID_GRANULARITY


def validate_bid(amount: int, max_bid: int) -> None:
    if amount <= 0 or amount > max_bid:
        raise BidOutOfBoundsError(amount, max_bid)


def parse_sell_order(item: Dict[str, Any]) -> Optional[SellOrder]:
    price = parse_wei(item.get("current_price"))
    if price is None:
        return None
    try:
        kind = SaleKind(_to_int(item.get("sale_kind"), default=-1))
    except ValueError:
        return None
    return SellOrder(sale_kind=kind, current_price=price)


def parse_asset(item: Dict[str, Any]) -> Asset:
    raw_id = item.get("token_id")
    if raw_id is None:
        raw_id = item.get("tokenId")
    token_id = "" if raw_id is None else str(raw_id).strip()
    orders = item.get("sell_orders")
    sell_order = None
    # the first sell order is the active listing
    if isinstance(orders, list) and orders and isinstance(orders[0], dict):
        sell_order = parse_sell_order(orders[0])
    return Asset(token_id=token_id, sell_order=sell_order, raw=item)


def parse_asset_contract(item: Dict[str, Any]) -> AssetContractInfo:
    contract = item.get("asset_contract")
    contract_data = contract if isinstance(contract, dict) else {}
    collection = item.get("collection")
    collection_data = collection if isinstance(collection, dict) else {}
    return AssetContractInfo(
        name=str(contract_data.get("name") or collection_data.get("name") or "").strip(),
        slug=str(collection_data.get("slug") or "").strip(),
        seller_fee_basis_points=_to_int(contract_data.get("seller_fee_basis_points")),
        buyer_fee_basis_points=_to_int(contract_data.get("buyer_fee_basis_points")),
    )


def parse_floor_price(payload: Dict[str, Any]) -> Optional[Decimal]:
    stats = payload.get("stats")
    stats_data = stats if isinstance(stats, dict) else payload
    floor = to_decimal(stats_data.get("floor_price"))
    if floor is None or floor <= 0:
        return None
    return floor


def select_listed_below_price(assets: Iterable[Asset], max_price: Optional[int] = None) -> List[Asset]:
    """Fixed-price listings at or below ``max_price`` (wei), cheapest first."""
    listed = [a for a in assets if a.sell_order is not None]
    listed = [a for a in listed if a.sell_order.sale_kind == SaleKind.FIXED_PRICE]
    if max_price is not None:
        listed = [a for a in listed if a.sell_order.current_price <= max_price]
    listed.sort(key=lambda a: a.sell_order.current_price)
    return listed


def page_sizes(limit: int, page_size: int) -> List[int]:
    full, rest = divmod(limit, page_size)
    sizes = [page_size] * full
    if rest:
        sizes.append(rest)
    return sizes
