from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional


class BidderError(RuntimeError):
    """Base class for every failure raised by the bidder."""


class ConfigurationError(BidderError):
    def __init__(self, field: str, value: Any = None, reason: str = "") -> None:
        self.field = field
        self.value = value
        self.reason = reason or "missing or invalid"
        super().__init__(f"Invalid configuration: {field}={value!r} ({self.reason})")


class UnsupportedFeeStructure(BidderError):
    def __init__(self, buyer_fee_basis_points: int) -> None:
        self.buyer_fee_basis_points = buyer_fee_basis_points
        super().__init__(f"Non-zero buyer fee: {buyer_fee_basis_points} bps")


class FeeTooHighError(BidderError):
    def __init__(self, fee: Decimal, ceiling: Decimal) -> None:
        self.fee = fee
        self.ceiling = ceiling
        super().__init__(
            f"Fee {fee * 100}% is not below {ceiling * 100}%. Check the contract on OpenSea."
        )


class LimitExceededError(BidderError):
    def __init__(self, limit: int, ceiling: int) -> None:
        self.limit = limit
        self.ceiling = ceiling
        super().__init__(f"Too many assets: {limit}. Max is {ceiling}")


class BidOutOfBoundsError(BidderError):
    def __init__(self, amount: int, max_bid: int) -> None:
        self.amount = amount
        self.max_bid = max_bid
        super().__init__(f"Unexpected bid={amount} wei: must be > 0 and <= {max_bid} wei")


class MarketplaceApiError(BidderError):
    def __init__(self, status: Optional[int], message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"HTTP {status}: {message}" if status is not None else message)
