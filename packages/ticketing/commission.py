from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Mapping

from .errors import InvalidAmountError
from .models import PaymentNetwork

DEFAULT_COMMISSION_RATE = Decimal("0.05")


class CommissionAllocation(str, Enum):
    """How an order's commission is spread over its sibling tickets."""

    PER_TICKET = "per_ticket"
    ORDER_LEVEL = "order_level"


@dataclass(frozen=True, slots=True)
class CommissionBreakdown:
    gross_amount: int
    commission_amount: int
    net_amount: int


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _require_non_negative_int(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise InvalidAmountError(f"{name} must not be negative")


class CommissionCalculator:
    """Split a sale into platform commission and the venue's net amount."""

    def __init__(self, rate: Decimal | str = DEFAULT_COMMISSION_RATE) -> None:
        rate = Decimal(rate)
        if not Decimal(0) <= rate <= Decimal(1):
            raise ValueError("commission rate must be within [0, 1]")
        self._rate = rate

    @property
    def rate(self) -> Decimal:
        return self._rate

    def compute(self, unit_price: int, quantity: int) -> CommissionBreakdown:
        _require_non_negative_int("unit_price", unit_price)
        _require_non_negative_int("quantity", quantity)

        gross = unit_price * quantity
        commission = round_half_up(Decimal(gross) * self._rate)
        return CommissionBreakdown(
            gross_amount=gross,
            commission_amount=commission,
            net_amount=gross - commission,
        )

    @staticmethod
    def allocate(
        breakdown: CommissionBreakdown,
        quantity: int,
        policy: CommissionAllocation = CommissionAllocation.PER_TICKET,
    ) -> list[int]:
        """Return the commission attributed to each of ``quantity`` tickets.

        The shares always sum to ``breakdown.commission_amount`` and no share
        exceeds the unit price, so every ticket keeps a non-negative net amount.
        """

        if quantity < 1:
            raise InvalidAmountError("quantity must be at least 1 to allocate commission")
        total = breakdown.commission_amount
        if policy is CommissionAllocation.ORDER_LEVEL:
            # Ticket 0 carries the commission up to its own price; the excess spills forward.
            unit_price = breakdown.gross_amount // quantity
            shares = []
            remaining = total
            for _ in range(quantity):
                share = min(remaining, unit_price)
                shares.append(share)
                remaining -= share
            shares[0] += remaining
            return shares

        base, remainder = divmod(total, quantity)
        return [base + 1 if index < remainder else base for index in range(quantity)]


@dataclass(frozen=True, slots=True)
class NetworkFee:
    fixed: int
    percentage: Decimal


DEFAULT_NETWORK_FEES: Mapping[PaymentNetwork, NetworkFee] = {
    PaymentNetwork.MTN: NetworkFee(fixed=500, percentage=Decimal("0.015")),
    PaymentNetwork.AIRTEL: NetworkFee(fixed=500, percentage=Decimal("0.015")),
}


class PaymentFeeSchedule:
    """Processing fee charged by the mobile money network on top of the tickets."""

    def __init__(self, fees: Mapping[PaymentNetwork, NetworkFee] | None = None, *, enabled: bool = True) -> None:
        self._fees = dict(DEFAULT_NETWORK_FEES if fees is None else fees)
        self._enabled = enabled

    def fee_for(self, network: PaymentNetwork, amount: int) -> int:
        _require_non_negative_int("amount", amount)
        if not self._enabled or amount == 0:
            return 0
        fee = self._fees.get(network)
        if fee is None:
            return 0
        return fee.fixed + round_half_up(Decimal(amount) * fee.percentage)


@dataclass(frozen=True, slots=True)
class PurchaseQuote:
    """What the buyer is charged, and how the ticket value is split."""

    unit_price: int
    quantity: int
    network: PaymentNetwork
    breakdown: CommissionBreakdown
    payment_fee: int

    @property
    def total_charge(self) -> int:
        return self.breakdown.gross_amount + self.payment_fee
