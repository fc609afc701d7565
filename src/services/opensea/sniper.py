from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys
from typing import List, Optional

import requests

from .client import OpenSeaClient
from .config_loader import NETWORK_DEFAULT, REGISTRY_FILE_DEFAULT, load_app_config
from .engine import BiddingSession, log
from .errors import BidderError
from .limiter import TokenBucketLimiter
from .models import AppConfig
from .units import to_wei
from .wallet import Erc20BalanceReader, encrypt_private_key, load_signer


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="OpenSea collection bidder")
    parser.add_argument("--network", default=os.getenv("NETWORK", NETWORK_DEFAULT))
    parser.add_argument("--collection", default=os.getenv("COLLECTION", "supducks"))
    parser.add_argument(
        "--registry-file",
        default=os.getenv("REGISTRY_FILE", REGISTRY_FILE_DEFAULT),
        help="JSON file with networks, collections and runtime settings",
    )
    parser.add_argument("--limit", type=int, default=None, help="How many assets to scan (max 10000)")
    parser.add_argument(
        "--max-sale-price",
        default=None,
        help="Only bid on listings priced at or below this value (ETH)",
    )
    parser.add_argument("--expiration-seconds", type=int, default=None)
    parser.add_argument(
        "--skip",
        default=os.getenv("SKIP_TOKEN_IDS", ""),
        help="Comma-separated token IDs never to bid on",
    )
    parser.add_argument("--max-bid", default=None, help="Override the computed max bid (ETH)")
    parser.add_argument(
        "--bid",
        nargs=2,
        metavar=("TOKEN_ID", "AMOUNT"),
        default=None,
        help="Place one live bid (WETH) instead of running the batch",
    )
    parser.add_argument("--live", action="store_true", help="Send real buy orders")
    parser.add_argument(
        "--encrypt-key",
        action="store_true",
        help="Print the keystore JSON for the PK env var (use it as EPK) and exit",
    )
    return parser.parse_args(argv)


def wallet_password() -> str:
    return os.getenv("pwd") or os.getenv("WALLET_PASSWORD", "")


def build_session(cfg: AppConfig) -> BiddingSession:
    signer = load_signer(
        os.getenv("EPK", ""),
        wallet_password(),
        chain_id=cfg.network.chain_id,
        exchange_address=cfg.network.exchange_address,
    )
    client = OpenSeaClient(
        network=cfg.network,
        signer=signer,
        routes=cfg.routes,
        api_key=cfg.api_key,
        timeout=cfg.runtime.request_timeout,
    )
    balance_reader = None
    if cfg.rpc_url:
        balance_reader = Erc20BalanceReader(cfg.rpc_url, cfg.network.weth_address, cfg.runtime.request_timeout)
    return BiddingSession(
        client=client,
        signer=signer,
        limiter=TokenBucketLimiter(cfg.runtime.tokens_per_interval, cfg.runtime.interval_seconds),
        skip_token_ids=cfg.runtime.skip_token_ids,
        balance_reader=balance_reader,
    )


def install_stop_handler(loop: asyncio.AbstractEventLoop, session: BiddingSession) -> bool:
    """Route Ctrl+C to the session's stop flag so a batch ends between bids."""

    def _stop() -> None:
        if not session.stopped:
            log("bidder", "Stop requested, finishing current bid")
        session.request_stop()

    try:
        loop.add_signal_handler(signal.SIGINT, _stop)
    except (NotImplementedError, RuntimeError):
        # no loop signal support here (Windows, non-main thread): KeyboardInterrupt still applies
        return False
    return True


async def run(session: BiddingSession, cfg: AppConfig, args: argparse.Namespace) -> int:
    runtime = cfg.runtime
    loop = asyncio.get_running_loop()
    handled = install_stop_handler(loop, session)
    try:
        await session.log_bidder_balance()
        await session.onboard(cfg.contract)

        if args.max_bid:
            session.set_max_bid(args.max_bid)

        if args.bid:
            token_id, amount = args.bid
            receipt = await session.place_single_bid(token_id, to_wei(amount), runtime.expiration_seconds)
            return 0 if receipt is not None else 1

        max_price = to_wei(runtime.max_sale_price) if runtime.max_sale_price is not None else None
        report = await session.place_bids_batch(
            runtime.limit,
            max_price,
            runtime.expiration_seconds,
            dry_run=runtime.dry_run,
        )
        if report.cancelled:
            log("bidder", "Stopped by user")
        return 0
    finally:
        if handled:
            loop.remove_signal_handler(signal.SIGINT)


def encrypt_key_command() -> int:
    try:
        keystore = encrypt_private_key(os.getenv("PK", ""), wallet_password())
    except BidderError as e:
        log("bidder", f"CONFIG ERROR: {e}")
        return 1
    print(keystore, flush=True)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if args.encrypt_key:
        return encrypt_key_command()

    try:
        cfg = load_app_config(
            registry_file=args.registry_file,
            network=args.network,
            collection=args.collection,
            live_mode=args.live,
            limit=args.limit,
            max_sale_price=args.max_sale_price,
            expiration_seconds=args.expiration_seconds,
            skip_token_ids=args.skip,
        )
        session = build_session(cfg)
    except (BidderError, ValueError) as e:
        log("bidder", f"CONFIG ERROR: {e}")
        return 1

    mode = "LIVE" if not cfg.runtime.dry_run else "DRY-RUN"
    log("bidder", f"Mode: {mode} network={cfg.network.name} collection={cfg.contract.name}")
    log(
        "bidder",
        f"rate={cfg.runtime.tokens_per_interval}/{cfg.runtime.interval_seconds}s "
        f"limit={cfg.runtime.limit} exp={cfg.runtime.expiration_seconds}s",
    )
    if cfg.runtime.skip_token_ids:
        log("bidder", f"Skipping token IDs: {', '.join(cfg.runtime.skip_token_ids)}")

    try:
        return asyncio.run(run(session, cfg, args))
    except KeyboardInterrupt:
        session.request_stop()
        log("bidder", "Stopped by user")
        return 0
    except (BidderError, ArithmeticError, ValueError, requests.RequestException) as e:
        log("bidder", f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
