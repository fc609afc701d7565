from __future__ import annotations

import json
import os
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .engine import log
from .errors import ConfigurationError
from .models import (
    ApiRoutes,
    AppConfig,
    ContractRef,
    NetworkConfig,
    RuntimeSettings,
    StrategySettings,
)


REGISTRY_FILE_DEFAULT = str(Path(__file__).resolve().parent / "config" / "collections.json")
NETWORK_DEFAULT = "main"

# Profit margin (SellPrice - BuyPrice) / BuyPrice. 0.1 -> 10%.
DEFAULT_MARGIN = "0.1"

DEFAULT_REGISTRY: Dict[str, Any] = {
    "networks": {
        "main": {
            "api_base": "https://api.opensea.io",
            "chain_id": 1,
            "weth": "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2",
            "exchange": "0x7f268357a8c2552623316e2562d90e642bb538e5",
            "collections": {
                "supducks": {
                    "address": "0x3fe1a4c1481c8351e91b64d5c398b159de07cbc5",
                    "strategy": {"resell_price": "1.06", "margin": "0.1"},
                },
            },
        },
        "rinkeby": {
            "api_base": "https://testnets-api.opensea.io",
            "chain_id": 4,
            "weth": "0xc778417E063141139Fce010982780140Aa0cD5Ab",
            "exchange": "0xdd54d660178b28f6033a953b0e55073cfa7e3744",
            "collections": {
                "foxfam": {
                    "address": "0xa234c5a67d62c965d5f9380ad22255338c223e06",
                    "strategy": {"resell_price": "0.1", "margin": DEFAULT_MARGIN},
                },
            },
        },
    },
}


def _to_decimal(value: Any, field_name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(field_name, value, "bad decimal") from exc


def _to_optional_decimal(value: Any, field_name: str) -> Optional[Decimal]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return _to_decimal(text, field_name)


def _to_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "y", "on"}:
        return True
    if text in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _normalize_list(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        parts = [x.strip() for x in value.split(",") if x.strip()]
        return tuple(sorted(set(parts)))
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        out: List[str] = []
        for item in value:
            text = str(item).strip()
            if text:
                out.append(text)
        return tuple(sorted(set(out)))
    return ()


def _read_json(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}
    with p.open("r", encoding="utf-8") as f:
        payload = json.load(f)
    if not isinstance(payload, dict):
        raise ConfigurationError("registry_file", path, "JSON root must be object")
    return payload


def _merge_networks(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for name in set(base) | set(override):
        left = base.get(name) if isinstance(base.get(name), dict) else {}
        right = override.get(name) if isinstance(override.get(name), dict) else {}
        network = {**left, **right}
        collections: Dict[str, Any] = {}
        for source in (left, right):
            sec = source.get("collections")
            if isinstance(sec, dict):
                collections.update(sec)
        network["collections"] = collections
        merged[name] = network
    return merged


def _parse_network(name: str, raw: Dict[str, Any]) -> NetworkConfig:
    api_base = str(raw.get("api_base", "")).strip()
    if not api_base:
        raise ConfigurationError(f"networks.{name}.api_base", api_base)
    weth = str(raw.get("weth", "")).strip()
    if not weth:
        raise ConfigurationError(f"networks.{name}.weth", weth)
    return NetworkConfig(
        name=name,
        api_base=api_base,
        chain_id=int(raw.get("chain_id", 1)),
        weth_address=weth,
        exchange_address=str(raw.get("exchange", "")).strip(),
    )


def _parse_contract(network: str, name: str, raw: Dict[str, Any]) -> ContractRef:
    strategy_raw = raw.get("strategy")
    strategy = strategy_raw if isinstance(strategy_raw, dict) else {}
    address = str(raw.get("address") or "").strip() or None
    return ContractRef(
        name=name,
        address=address,
        strategy=StrategySettings(
            resell_price=_to_optional_decimal(
                strategy.get("resell_price"), f"{network}.{name}.strategy.resell_price"
            ),
            margin=_to_optional_decimal(strategy.get("margin"), f"{network}.{name}.strategy.margin"),
        ),
    )


def _parse_runtime(raw: Dict[str, Any]) -> RuntimeSettings:
    base = RuntimeSettings()
    runtime_raw = raw.get("runtime")
    if not isinstance(runtime_raw, dict):
        runtime_raw = {}

    return replace(
        base,
        dry_run=_to_bool(runtime_raw.get("dry_run"), base.dry_run),
        request_timeout=max(1.0, float(runtime_raw.get("request_timeout", base.request_timeout))),
        tokens_per_interval=max(1, int(runtime_raw.get("tokens_per_interval", base.tokens_per_interval))),
        interval_seconds=max(0.1, float(runtime_raw.get("interval_seconds", base.interval_seconds))),
        limit=max(1, int(runtime_raw.get("limit", base.limit))),
        max_sale_price=_to_optional_decimal(runtime_raw.get("max_sale_price"), "runtime.max_sale_price"),
        expiration_seconds=max(1, int(runtime_raw.get("expiration_seconds", base.expiration_seconds))),
        skip_token_ids=_normalize_list(runtime_raw.get("skip_token_ids")),
    )


def _parse_routes(raw: Dict[str, Any]) -> ApiRoutes:
    base = ApiRoutes()
    routes_raw = raw.get("routes")
    if not isinstance(routes_raw, dict):
        routes_raw = {}
    return ApiRoutes(
        asset=str(routes_raw.get("asset", base.asset)),
        assets=str(routes_raw.get("assets", base.assets)),
        collection_stats=str(routes_raw.get("collection_stats", base.collection_stats)),
        create_buy_order=str(routes_raw.get("create_buy_order", base.create_buy_order)),
    )


def _resolve_rpc_url(network: str) -> str:
    raw = os.getenv("INFURA_URL", "").strip()
    if not raw:
        return ""
    try:
        urls = json.loads(raw)
    except ValueError:
        return raw
    if isinstance(urls, dict):
        return str(urls.get(network, "")).strip()
    return str(urls).strip()


def load_app_config(
    *,
    registry_file: str,
    network: str,
    collection: str,
    live_mode: bool = False,
    limit: Optional[int] = None,
    max_sale_price: Optional[str] = None,
    expiration_seconds: Optional[int] = None,
    skip_token_ids: str = "",
) -> AppConfig:
    if not Path(registry_file).exists():
        log("config", f"Registry file {registry_file} not found, using built-in registry")
    raw = _read_json(registry_file)
    networks_raw = raw.get("networks")
    networks = _merge_networks(
        DEFAULT_REGISTRY["networks"],
        networks_raw if isinstance(networks_raw, dict) else {},
    )
    if network not in networks:
        raise ConfigurationError("network", network, f"expected one of {sorted(networks)}")
    network_raw = networks[network]
    collections = network_raw["collections"]
    contract_raw = collections.get(collection)
    if not isinstance(contract_raw, dict):
        raise ConfigurationError("collection", collection, f"not in registry for network {network}")

    runtime = _parse_runtime(raw)
    if live_mode:
        runtime = replace(runtime, dry_run=False)
    if limit is not None:
        runtime = replace(runtime, limit=int(limit))
    if max_sale_price:
        runtime = replace(runtime, max_sale_price=_to_decimal(max_sale_price, "max_sale_price"))
    if expiration_seconds is not None:
        runtime = replace(runtime, expiration_seconds=max(1, int(expiration_seconds)))
    if skip_token_ids:
        runtime = replace(
            runtime,
            skip_token_ids=tuple(sorted(set(runtime.skip_token_ids) | set(_normalize_list(skip_token_ids)))),
        )

    return AppConfig(
        network=_parse_network(network, network_raw),
        contract=_parse_contract(network, collection, contract_raw),
        routes=_parse_routes(network_raw),
        runtime=runtime,
        api_key=os.getenv("OPENSEA_API_KEY", "").strip(),
        rpc_url=_resolve_rpc_url(network),
        registry_file=registry_file,
    )
