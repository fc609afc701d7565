from __future__ import annotations

import asyncio
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import (
    BidOutOfBoundsError,
    ConfigurationError,
    FeeTooHighError,
    LimitExceededError,
    UnsupportedFeeStructure,
)
from .limiter import TokenBucketLimiter
from .models import (
    MAX_FEE,
    Asset,
    BatchReport,
    BidRequest,
    BuyOrderReceipt,
    CollectionConfig,
    ContractRef,
    Strategy,
)
from .strategy import (
    compute_max_bid,
    fee_from_basis_points,
    page_sizes,
    parse_asset,
    parse_asset_contract,
    parse_floor_price,
    select_listed_below_price,
    validate_bid,
)
from .units import Amount, format_eth, to_wei
from .wallet import Signer


PAGE_SIZE = 50
MAX_ASSETS = 10_000
SAMPLE_TOKEN_ID = "0"


def now_str() -> str:
    return datetime.now().strftime("%H:%M:%S")


def log(scope: str, message: str) -> None:
    print(f"[{now_str()}] [{scope}] {message}", flush=True)


def infer_order_hash(payload: Dict[str, Any]) -> str:
    for key in ("order_hash", "hash", "id"):
        val = payload.get(key)
        if val is not None and str(val).strip():
            return str(val).strip()
    for section_key in ("order", "result", "data"):
        sec = payload.get(section_key)
        if isinstance(sec, dict):
            found = infer_order_hash(sec)
            if found:
                return found
    return ""


class BiddingSession:
    """One bidding run against a single collection.

    Owns the signing identity, the API client, the shared rate limiter and
    the collection config produced by :meth:`onboard`.
    """

    def __init__(
        self,
        *,
        client: Any,
        signer: Signer,
        limiter: Optional[TokenBucketLimiter] = None,
        skip_token_ids: Iterable[str] = (),
        balance_reader: Any = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.signer = signer
        self.limiter = limiter or TokenBucketLimiter()
        self.skip_token_ids = frozenset(str(x).strip() for x in skip_token_ids if str(x).strip())
        self.balance_reader = balance_reader
        self._clock = clock
        self._config: Optional[CollectionConfig] = None
        self._stop = threading.Event()
        self.scope = "bidder"

    @property
    def bidder(self) -> str:
        return self.signer.address

    @property
    def config(self) -> Optional[CollectionConfig]:
        return self._config

    def require_config(self) -> CollectionConfig:
        if self._config is None:
            raise ConfigurationError("contract", None, "onboarding not completed")
        return self._config

    def request_stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    async def _call(self, fn, *args, **kwargs):
        return await asyncio.to_thread(fn, *args, **kwargs)

    async def log_bidder_balance(self) -> Optional[int]:
        log(self.scope, f"Bidder: {self.bidder}")
        if self.balance_reader is None:
            return None
        try:
            balance = await self._call(self.balance_reader.balance_of, self.bidder)
        except Exception as exc:
            log(self.scope, f"Balance lookup failed: {exc}")
            return None
        log(self.scope, f"Bidder WETH balance: {format_eth(balance)} WETH")
        return balance

    async def onboard(self, contract: ContractRef) -> CollectionConfig:
        if not contract.address:
            raise ConfigurationError("address", contract.address)
        if contract.strategy.margin is None:
            raise ConfigurationError("strategy.margin", None)
        scope = contract.name or self.scope

        payload = await self._call(self.client.get_asset, contract.address, SAMPLE_TOKEN_ID)
        info = parse_asset_contract(payload)
        log(scope, f"Collection name: {info.name}; slug={info.slug}")

        fee = fee_from_basis_points(info.seller_fee_basis_points)
        log(scope, f"Collection fee: {fee * 100}%")
        if info.buyer_fee_basis_points != 0:
            raise UnsupportedFeeStructure(info.buyer_fee_basis_points)
        if fee >= MAX_FEE:
            raise FeeTooHighError(fee, MAX_FEE)

        if not info.slug:
            raise ConfigurationError("collection.slug", info.slug)
        stats = await self._call(self.client.get_collection_stats, info.slug)
        floor_price = parse_floor_price(stats)
        log(scope, f"Collection floor price: {floor_price} ETH")

        resell_price = contract.strategy.resell_price
        if resell_price is None:
            if floor_price is None:
                raise ConfigurationError("strategy.resell_price", None, "unset and no floor price")
            log(scope, f"Setting expected resell price to floor price {floor_price} ETH")
            resell_price = floor_price
        else:
            log(scope, f"Expected resell price: {resell_price} ETH")

        resell_wei = to_wei(resell_price)
        max_bid = compute_max_bid(fee, resell_wei, contract.strategy.margin)
        log(
            scope,
            f"Setting maxBid to {format_eth(max_bid)} ETH "
            f"({contract.strategy.margin * 100}% profit from resell at {format_eth(resell_wei)} ETH)",
        )

        self._config = CollectionConfig(
            name=contract.name or info.name,
            address=contract.address,
            slug=info.slug,
            fee=fee,
            strategy=Strategy(
                margin=contract.strategy.margin,
                max_bid=max_bid,
                resell_price=resell_wei,
            ),
        )
        self.scope = scope
        return self._config

    def set_max_bid(self, amount: Amount) -> int:
        config = self.require_config()
        config.strategy.max_bid = to_wei(amount)
        log(self.scope, f"Collection max bid overridden: {format_eth(config.strategy.max_bid)} ETH")
        return config.strategy.max_bid

    async def fetch_assets(self, limit: int) -> List[Asset]:
        if limit > MAX_ASSETS or limit < 0:
            raise LimitExceededError(limit, MAX_ASSETS)
        config = self.require_config()

        sizes = page_sizes(limit, PAGE_SIZE)
        out: List[Asset] = []
        for idx, size in enumerate(sizes):
            await self.limiter.acquire()
            log(self.scope, f"getAssets {idx}/{len(sizes) - 1}")
            items = await self._call(self.client.get_assets, config.address, size, idx * PAGE_SIZE)
            out.extend(parse_asset(item) for item in items)
        return out

    async def fetch_listed_below_price(self, limit: int, max_price: Optional[int] = None) -> List[Asset]:
        assets = await self.fetch_assets(limit)
        return select_listed_below_price(assets, max_price)

    async def submit_bid(
        self,
        token_id: str,
        amount: int,
        expiration_seconds: int,
        dry_run: bool = True,
    ) -> Optional[BuyOrderReceipt]:
        config = self.require_config()
        validate_bid(amount, config.strategy.max_bid)
        if expiration_seconds <= 0:
            raise ConfigurationError("expiration_seconds", expiration_seconds, "must be > 0")
        request = BidRequest(token_id=str(token_id), amount=amount, expiration_seconds=int(expiration_seconds))

        if dry_run:
            log(
                self.scope,
                f"DRY BID token={request.token_id} price={format_eth(request.amount)} WETH "
                f"exp={request.expiration_seconds}s",
            )
            return None

        await self.limiter.acquire()
        expiration_ts = int(round(self._clock() + request.expiration_seconds))
        log(
            self.scope,
            f"Bidding token={request.token_id} price={format_eth(request.amount)} WETH "
            f"exp={request.expiration_seconds}s",
        )
        payload = await self._call(
            self.client.create_buy_order,
            {
                "token_id": request.token_id,
                "token_address": config.address,
                "seller_fee_basis_points": int(config.fee * 10_000),
            },
            self.bidder,
            request.amount,
            expiration_ts,
        )
        payload = payload if isinstance(payload, dict) else {"response": payload}
        receipt = BuyOrderReceipt(
            token_id=request.token_id,
            amount=request.amount,
            expiration_ts=expiration_ts,
            order_hash=infer_order_hash(payload),
            raw=payload,
        )
        log(self.scope, f"BID SENT token={request.token_id} order={receipt.order_hash or '?'}")
        return receipt

    async def place_bids_batch(
        self,
        limit: int,
        max_price: Optional[int],
        expiration_seconds: int,
        dry_run: bool = True,
    ) -> BatchReport:
        config = self.require_config()
        assets = await self.fetch_listed_below_price(limit, max_price)
        report = BatchReport(candidates=len(assets))
        log(self.scope, f"{len(assets)} fixed-price listings to bid on")

        for asset in assets:
            if self.stopped:
                report.cancelled = True
                log(self.scope, "Batch stopped")
                break
            if asset.token_id in self.skip_token_ids:
                report.skipped += 1
                log(self.scope, f"SKIP token={asset.token_id} (skip list)")
                continue
            try:
                receipt = await self.submit_bid(
                    asset.token_id,
                    config.strategy.max_bid,
                    expiration_seconds,
                    dry_run=dry_run,
                )
            except Exception as exc:
                report.failed += 1
                log(self.scope, f"BID FAIL token={asset.token_id}, skipping: {exc}")
                continue
            if receipt is None:
                report.dry_run += 1
            else:
                report.placed += 1

        log(
            self.scope,
            f"Batch done: placed={report.placed} dry={report.dry_run} "
            f"skipped={report.skipped} failed={report.failed}",
        )
        return report

    async def place_single_bid(
        self,
        token_id: str,
        amount: int,
        expiration_seconds: int,
    ) -> Optional[BuyOrderReceipt]:
        try:
            return await self.submit_bid(token_id, amount, expiration_seconds, dry_run=False)
        except (BidOutOfBoundsError, ConfigurationError) as exc:
            log(self.scope, f"BID FAIL token={token_id}: {exc}")
            raise
        except Exception as exc:
            log(self.scope, f"BID FAIL token={token_id}: {exc}")
            return None
