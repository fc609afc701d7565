from __future__ import annotations

import json
import secrets
import time
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter

from .errors import MarketplaceApiError
from .models import ApiRoutes, NetworkConfig
from .wallet import Signer


NULL_ADDRESS = "0x0000000000000000000000000000000000000000"
SIDE_BUY = 0
SALE_KIND_FIXED_PRICE = 0
FEE_METHOD_SPLIT_FEE = 1
HOW_TO_CALL_CALL = 0
OPENSEA_FEE_RECIPIENT = "0x5b3256965e7c3cf26e11fcaf296dfc8807c01073"

# ERC-721 transferFrom(address,address,uint256)
TRANSFER_FROM_SELECTOR = "23b872dd"


def _word(value: int) -> str:
    return format(value, "064x")


def transfer_calldata(maker: str, token_id: str) -> str:
    # buyer side: `from` stays zero until the seller's order fills it in
    return "0x" + TRANSFER_FROM_SELECTOR + _word(0) + _word(int(maker, 16)) + _word(int(token_id))


def buy_replacement_pattern() -> str:
    return "0x" + "00" * 4 + "ff" * 32 + "00" * 64


class OpenSeaClient:
    def __init__(
        self,
        *,
        network: NetworkConfig,
        signer: Signer,
        routes: ApiRoutes,
        api_key: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.network = network
        self.api_base = network.api_base.rstrip("/")
        self.signer = signer
        self.routes = routes
        self.timeout = timeout
        self.session = session or requests.Session()
        adapter = HTTPAdapter(pool_connections=4, pool_maxsize=4, max_retries=0)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)
        self.session.headers.update({"accept": "application/json"})
        if api_key:
            self.session.headers.update({"x-api-key": api_key})

    def _path(self, path: str, **kwargs: str) -> str:
        rendered = path.format(**kwargs)
        if rendered.startswith("http://") or rendered.startswith("https://"):
            return rendered
        if not rendered.startswith("/"):
            rendered = "/" + rendered
        return f"{self.api_base}{rendered}"

    def _raise_for_error(self, response: requests.Response) -> None:
        if response.status_code < 400:
            return
        message = response.text
        try:
            payload = response.json()
            if isinstance(payload, dict) and (payload.get("detail") or payload.get("message")):
                message = str(payload.get("detail") or payload.get("message"))
            else:
                message = json.dumps(payload, ensure_ascii=False)
        except ValueError:
            pass
        raise MarketplaceApiError(response.status_code, message)

    def _json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise MarketplaceApiError(response.status_code, f"non-JSON response: {response.text[:200]}") from exc
        if isinstance(payload, dict):
            return payload
        return {"results": payload}

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = self.session.get(url, params=params or {}, timeout=self.timeout)
        self._raise_for_error(response)
        return self._json(response)

    def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self.session.post(
            url,
            json=payload,
            headers={"content-type": "application/json"},
            timeout=self.timeout,
        )
        self._raise_for_error(response)
        return self._json(response)

    def get_asset(self, address: str, token_id: str) -> Dict[str, Any]:
        return self._get(self._path(self.routes.asset, address=address, token_id=str(token_id)))

    def get_collection_stats(self, slug: str) -> Dict[str, Any]:
        return self._get(self._path(self.routes.collection_stats, slug=slug))

    def get_assets(self, address: str, limit: int, offset: int) -> List[Dict[str, Any]]:
        payload = self._get(
            self._path(self.routes.assets),
            {
                "asset_contract_address": address,
                "limit": limit,
                "offset": offset,
                "order_direction": "desc",
            },
        )
        assets = payload.get("assets")
        if not isinstance(assets, list):
            assets = payload.get("results")
        if isinstance(assets, list):
            return [x for x in assets if isinstance(x, dict)]
        return []

    def build_buy_order(
        self,
        *,
        asset: Dict[str, str],
        account_address: str,
        amount: int,
        expiration_ts: int,
        nonce: int = 0,
    ) -> Dict[str, Any]:
        """Wyvern 2.3 buy order for one ERC-721 token, paid in WETH.

        The seller's fee goes to OpenSea's fee recipient as the taker relayer
        fee. ``nonce`` must match the exchange's current nonce for the maker.
        """
        token_id = str(asset["token_id"])
        return {
            "exchange": self.network.exchange_address,
            "maker": account_address,
            "taker": NULL_ADDRESS,
            "maker_relayer_fee": "0",
            "taker_relayer_fee": str(int(asset.get("seller_fee_basis_points", 0))),
            "maker_protocol_fee": "0",
            "taker_protocol_fee": "0",
            "fee_recipient": OPENSEA_FEE_RECIPIENT,
            "fee_method": FEE_METHOD_SPLIT_FEE,
            "side": SIDE_BUY,
            "sale_kind": SALE_KIND_FIXED_PRICE,
            "target": asset["token_address"],
            "how_to_call": HOW_TO_CALL_CALL,
            "calldata": transfer_calldata(account_address, token_id),
            "replacement_pattern": buy_replacement_pattern(),
            "static_target": NULL_ADDRESS,
            "static_extradata": "0x",
            "payment_token": self.network.weth_address,
            "base_price": str(int(amount)),
            "extra": "0",
            "listing_time": int(time.time()),
            "expiration_time": int(expiration_ts),
            "salt": str(secrets.randbits(256)),
            "nonce": int(nonce),
            "metadata": {"asset": {"id": token_id, "address": asset["token_address"]}},
        }

    def create_buy_order(
        self,
        asset: Dict[str, str],
        account_address: str,
        amount: int,
        expiration_ts: int,
    ) -> Dict[str, Any]:
        order = self.build_buy_order(
            asset=asset,
            account_address=account_address,
            amount=amount,
            expiration_ts=expiration_ts,
        )
        order["signature"] = self.signer.sign_order(order)
        return self._post(self._path(self.routes.create_buy_order), order)
