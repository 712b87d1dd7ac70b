#!/usr/bin/env python3
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from constants import WEI_DECIMALS

# Quote directions, always from the point of view of the base asset (ETH).
BUY = 'BUY'    # spend quote asset, receive base asset
SELL = 'SELL'  # spend base asset, receive quote asset

# Opportunity directions.
A_TO_B = 'A_TO_B'  # buy on venue A, sell on venue B
B_TO_A = 'B_TO_A'  # buy on venue B, sell on venue A


@dataclass(frozen=True)
class Trigger:
    """A new block notification; one scan cycle per trigger."""
    block_number: int
    block_hash: Optional[str] = None


@dataclass(frozen=True)
class AmountBasis:
    """Fixed trade size in base units plus the equivalent quote notional, derived once at start-up."""
    base_amount: float
    reference_price: float
    base_decimals: int = WEI_DECIMALS
    quote_decimals: int = WEI_DECIMALS

    @property
    def quote_amount(self) -> float:
        return self.base_amount * self.reference_price

    @property
    def base_amount_atomic(self) -> int:
        return _to_atomic(self.base_amount, self.base_decimals)

    @property
    def quote_amount_atomic(self) -> int:
        return _to_atomic(self.quote_amount, self.quote_decimals)


@dataclass(frozen=True)
class AggregatorQuote:
    """Raw answer of an aggregator proxy: a rate scaled by 10**18."""
    direction: str
    src_amount: int
    expected_rate: int
    worst_rate: int = 0


@dataclass(frozen=True)
class PoolQuote:
    """Raw answer of a constant-product pool: the atomic output for an atomic input."""
    direction: str
    input_amount: int
    output_amount: int
    output_decimals: int = WEI_DECIMALS

    @property
    def output_whole_units(self) -> float:
        return self.output_amount / (10 ** self.output_decimals)


@dataclass(frozen=True)
class RatePair:
    """Normalized venue prices in quote per base. buy and sell are independent."""
    buy: float
    sell: float


@dataclass(frozen=True)
class GasCost:
    unit_price_wei: int
    assumed_units: int

    @property
    def total_wei(self) -> int:
        return self.unit_price_wei * self.assumed_units

    @property
    def native_cost(self) -> float:
        """Cost in whole native units (ETH)."""
        return self.total_wei / (10 ** WEI_DECIMALS)


@dataclass
class Opportunity:
    """Represents a detected cross-venue arbitrage opportunity."""
    direction: str  # 'A_TO_B' or 'B_TO_A'
    buy_venue: str
    sell_venue: str
    buy_price: float
    sell_price: float
    expected_profit: float


@dataclass
class ReportedOutcome:
    opportunity: Optional[Opportunity]
    profit1: float
    profit2: float

    @property
    def found(self) -> bool:
        return self.opportunity is not None


@dataclass
class CycleResult:
    """Outcome of one scan cycle, tagged with the block that triggered it."""
    sequence: int
    state: str
    outcome: Optional[ReportedOutcome] = None
    error: Optional[str] = None
    superseded: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.outcome is not None


def _to_atomic(amount: float, decimals: int) -> int:
    # str() first so 100 * 230 scales to exactly 23000 * 10**18.
    scale = Decimal(10) ** decimals
    return int((Decimal(str(amount)) * scale).to_integral_value())
