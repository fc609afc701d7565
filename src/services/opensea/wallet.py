from __future__ import annotations

import json
from typing import Any, Dict, Optional, Protocol, Union

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from web3 import Web3

from .errors import ConfigurationError


ORDER_DOMAIN_NAME = "Wyvern Exchange Contract"
ORDER_DOMAIN_VERSION = "2.3"

ORDER_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Order": [
        {"name": "exchange", "type": "address"},
        {"name": "maker", "type": "address"},
        {"name": "taker", "type": "address"},
        {"name": "makerRelayerFee", "type": "uint256"},
        {"name": "takerRelayerFee", "type": "uint256"},
        {"name": "makerProtocolFee", "type": "uint256"},
        {"name": "takerProtocolFee", "type": "uint256"},
        {"name": "feeRecipient", "type": "address"},
        {"name": "feeMethod", "type": "uint8"},
        {"name": "side", "type": "uint8"},
        {"name": "saleKind", "type": "uint8"},
        {"name": "target", "type": "address"},
        {"name": "howToCall", "type": "uint8"},
        {"name": "calldata", "type": "bytes"},
        {"name": "replacementPattern", "type": "bytes"},
        {"name": "staticTarget", "type": "address"},
        {"name": "staticExtradata", "type": "bytes"},
        {"name": "paymentToken", "type": "address"},
        {"name": "basePrice", "type": "uint256"},
        {"name": "extra", "type": "uint256"},
        {"name": "listingTime", "type": "uint256"},
        {"name": "expirationTime", "type": "uint256"},
        {"name": "salt", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
    ],
}

ERC20_BALANCE_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    }
]


class Signer(Protocol):
    @property
    def address(self) -> str: ...

    def sign_order(self, order: Dict[str, Any]) -> str: ...


class EthAccountSigner:
    """Signs buy orders as EIP-712 typed data; key material never leaves the account."""

    def __init__(self, account: LocalAccount, *, chain_id: int, exchange_address: str) -> None:
        self._account = account
        self.chain_id = chain_id
        self.exchange_address = exchange_address

    @property
    def address(self) -> str:
        return self._account.address

    def typed_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "types": ORDER_TYPES,
            "primaryType": "Order",
            "domain": {
                "name": ORDER_DOMAIN_NAME,
                "version": ORDER_DOMAIN_VERSION,
                "chainId": self.chain_id,
                "verifyingContract": self.exchange_address,
            },
            "message": {
                "exchange": order["exchange"],
                "maker": order["maker"],
                "taker": order["taker"],
                "makerRelayerFee": int(order["maker_relayer_fee"]),
                "takerRelayerFee": int(order["taker_relayer_fee"]),
                "makerProtocolFee": int(order["maker_protocol_fee"]),
                "takerProtocolFee": int(order["taker_protocol_fee"]),
                "feeRecipient": order["fee_recipient"],
                "feeMethod": int(order["fee_method"]),
                "side": int(order["side"]),
                "saleKind": int(order["sale_kind"]),
                "target": order["target"],
                "howToCall": int(order["how_to_call"]),
                "calldata": Web3.to_bytes(hexstr=order["calldata"]),
                "replacementPattern": Web3.to_bytes(hexstr=order["replacement_pattern"]),
                "staticTarget": order["static_target"],
                "staticExtradata": Web3.to_bytes(hexstr=order["static_extradata"]),
                "paymentToken": order["payment_token"],
                "basePrice": int(order["base_price"]),
                "extra": int(order["extra"]),
                "listingTime": int(order["listing_time"]),
                "expirationTime": int(order["expiration_time"]),
                "salt": int(order["salt"]),
                "nonce": int(order["nonce"]),
            },
        }

    def sign_order(self, order: Dict[str, Any]) -> str:
        signable = encode_typed_data(full_message=self.typed_order(order))
        signed = self._account.sign_message(signable)
        return Web3.to_hex(signed.signature)


def load_signer(
    keystore: Union[str, Dict[str, Any]],
    password: str,
    *,
    chain_id: int,
    exchange_address: str,
) -> EthAccountSigner:
    if not keystore:
        raise ConfigurationError("EPK", None, "encrypted keystore not set")
    try:
        data = json.loads(keystore) if isinstance(keystore, str) else keystore
        private_key = Account.decrypt(data, password)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError("EPK", "<keystore>", f"cannot decrypt keystore: {exc}") from exc
    account = Account.from_key(private_key)
    return EthAccountSigner(account, chain_id=chain_id, exchange_address=exchange_address)


def encrypt_private_key(private_key: str, password: str, iterations: Optional[int] = None) -> str:
    """Keystore JSON for ``private_key``, suitable as the ``EPK`` value."""
    if not private_key:
        raise ConfigurationError("PK", None, "private key not set")
    if not password:
        raise ConfigurationError("pwd", None, "password not set")
    try:
        keystore = Account.encrypt(private_key, password, iterations=iterations)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError("PK", "<private key>", f"cannot encrypt: {exc}") from exc
    return json.dumps(keystore)


class Erc20BalanceReader:
    def __init__(self, rpc_url: str, token_address: str, timeout: float = 10.0) -> None:
        self.web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.token = self.web3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=ERC20_BALANCE_ABI,
        )

    def balance_of(self, owner: str) -> int:
        return int(self.token.functions.balanceOf(Web3.to_checksum_address(owner)).call())
