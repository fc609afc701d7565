from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from web3 import Web3


WEI_PER_ETH = 10**18
# 4 decimal places of ETH
MAX_BID_GRANULARITY = 10**14

Amount = Union[int, str, Decimal]


def to_wei(value: Amount) -> int:
    """ETH amount -> integer wei, dropping any fractional wei."""
    return int(Web3.to_wei(Decimal(str(value)), "ether"))


def from_wei(value: int) -> Decimal:
    return Decimal(Web3.from_wei(int(value), "ether"))


def parse_wei(value: Any) -> Optional[int]:
    """Parse an API price field already expressed in wei ("1e18", "1000.0000")."""
    if value is None:
        return None
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError, OverflowError):
        return None


def format_eth(value: int) -> str:
    return format(from_wei(value).normalize(), "f")
