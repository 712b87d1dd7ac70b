#!/usr/bin/env python3
from typing import Optional, Tuple

from analysis.models import GasCost, RatePair


def reference_price(venue_b: RatePair) -> float:
    """Midpoint of venue B's quotes, used to convert the native gas cost into quote currency."""
    return (venue_b.buy + venue_b.sell) / 2


def gas_cost_in_quote(gas: GasCost, price: float) -> float:
    return gas.native_cost * price


def compute(
    venue_a: RatePair,
    venue_b: RatePair,
    gas: GasCost,
    amount_base: float,
    ref_price: Optional[float] = None,
) -> Tuple[float, float]:
    """Net profit of (buy on A, sell on B) and (buy on B, sell on A) for amount_base units.

    The two figures are not negations of each other; both are evaluated every scan.
    """
    if ref_price is None:
        ref_price = reference_price(venue_b)
    gas_quote = gas_cost_in_quote(gas, ref_price)
    profit1 = amount_base * (venue_b.sell - venue_a.buy) - gas_quote
    profit2 = amount_base * (venue_a.sell - venue_b.buy) - gas_quote
    return profit1, profit2
