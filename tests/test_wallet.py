import json

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from src.services.opensea.client import (
    NULL_ADDRESS,
    OPENSEA_FEE_RECIPIENT,
    buy_replacement_pattern,
    transfer_calldata,
)
from src.services.opensea.errors import ConfigurationError
from src.services.opensea.wallet import ORDER_TYPES, EthAccountSigner, encrypt_private_key, load_signer


EXCHANGE = "0x7f268357a8c2552623316e2562d90e642bb538e5"


def _order(maker):
    return {
        "exchange": EXCHANGE,
        "maker": maker,
        "taker": NULL_ADDRESS,
        "maker_relayer_fee": "0",
        "taker_relayer_fee": "250",
        "maker_protocol_fee": "0",
        "taker_protocol_fee": "0",
        "fee_recipient": OPENSEA_FEE_RECIPIENT,
        "fee_method": 1,
        "side": 0,
        "sale_kind": 0,
        "target": "0x3fe1a4c1481c8351e91b64d5c398b159de07cbc5",
        "how_to_call": 0,
        "calldata": transfer_calldata(maker, "12"),
        "replacement_pattern": buy_replacement_pattern(),
        "static_target": NULL_ADDRESS,
        "static_extradata": "0x",
        "payment_token": "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2",
        "base_price": str(10**17),
        "extra": "0",
        "listing_time": 1_699_990_000,
        "expiration_time": 1_700_000_000,
        "salt": "12345",
        "nonce": 0,
    }


def test_signature_recovers_to_bidder():
    account = Account.create()
    signer = EthAccountSigner(account, chain_id=1, exchange_address=EXCHANGE)
    order = _order(signer.address)

    signature = signer.sign_order(order)

    assert signature.startswith("0x")
    signable = encode_typed_data(full_message=signer.typed_order(order))
    assert Account.recover_message(signable, signature=signature) == account.address


def test_load_signer_decrypts_keystore():
    account = Account.create()
    keystore = Account.encrypt(account.key, "secret", kdf="pbkdf2", iterations=2)

    signer = load_signer(json.dumps(keystore), "secret", chain_id=4, exchange_address=EXCHANGE)

    assert signer.address == account.address
    assert signer.chain_id == 4


def test_load_signer_wrong_password():
    account = Account.create()
    keystore = Account.encrypt(account.key, "secret", kdf="pbkdf2", iterations=2)
    with pytest.raises(ConfigurationError) as exc_info:
        load_signer(keystore, "nope", chain_id=1, exchange_address=EXCHANGE)
    assert exc_info.value.field == "EPK"


def test_load_signer_requires_keystore():
    with pytest.raises(ConfigurationError) as exc_info:
        load_signer("", "secret", chain_id=1, exchange_address=EXCHANGE)
    assert str(exc_info.value) == "Invalid configuration: EPK=None (encrypted keystore not set)"


def test_typed_order_covers_wyvern_struct():
    account = Account.create()
    signer = EthAccountSigner(account, chain_id=1, exchange_address=EXCHANGE)

    message = signer.typed_order(_order(signer.address))["message"]

    assert list(message) == [field["name"] for field in ORDER_TYPES["Order"]]
    assert message["takerRelayerFee"] == 250
    assert message["calldata"][:4] == bytes.fromhex("23b872dd")
    assert len(message["calldata"]) == len(message["replacementPattern"]) == 100
    assert message["staticExtradata"] == b""


def test_encrypted_key_loads_back_as_signer():
    account = Account.create()

    keystore = encrypt_private_key(account.key.hex(), "secret", iterations=2)

    assert json.loads(keystore)["address"].lower() == account.address[2:].lower()
    signer = load_signer(keystore, "secret", chain_id=1, exchange_address=EXCHANGE)
    assert signer.address == account.address


def test_encrypt_private_key_requires_password():
    with pytest.raises(ConfigurationError) as exc_info:
        encrypt_private_key("0x" + "11" * 32, "")
    assert exc_info.value.field == "pwd"
