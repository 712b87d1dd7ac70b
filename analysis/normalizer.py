#!/usr/bin/env python3
from typing import Sequence

from analysis.models import BUY, SELL, AggregatorQuote, AmountBasis, PoolQuote, RatePair
from constants import WEI_PER_ETH
from services.errors import VenueUnavailable

AGGREGATOR = 'aggregator'
POOL = 'pool'


def normalize(raw_quotes: Sequence, venue_kind: str, basis: AmountBasis, venue_name: str = '') -> RatePair:
    """Turns one venue's (BUY, SELL) raw quotes into a quote-per-base RatePair."""
    venue_name = venue_name or venue_kind
    if len(raw_quotes) != 2:
        raise VenueUnavailable(venue_name, f"expected 2 quotes, got {len(raw_quotes)}")
    buy_quote, sell_quote = _order_by_direction(raw_quotes, venue_name)

    try:
        if venue_kind == AGGREGATOR:
            rates = normalize_aggregator_quotes(buy_quote, sell_quote)
        elif venue_kind == POOL:
            rates = normalize_pool_quotes(buy_quote, sell_quote, basis)
        else:
            raise ValueError(f"Unknown venue kind: {venue_kind}")
    except ZeroDivisionError as exc:
        raise VenueUnavailable(venue_name, "zero liquidity in quote") from exc

    if rates.buy <= 0 or rates.sell <= 0:
        raise VenueUnavailable(venue_name, f"non-economic rates {rates}")
    return rates


def normalize_aggregator_quotes(buy_quote: AggregatorQuote, sell_quote: AggregatorQuote) -> RatePair:
    """Kyber rates are dest units per src unit scaled by 10**18; the BUY leg is DAI->ETH so it is inverted."""
    return RatePair(
        buy=1 / (buy_quote.expected_rate / WEI_PER_ETH),
        sell=sell_quote.expected_rate / WEI_PER_ETH,
    )


def normalize_pool_quotes(buy_quote: PoolQuote, sell_quote: PoolQuote, basis: AmountBasis) -> RatePair:
    return RatePair(
        buy=basis.quote_amount / buy_quote.output_whole_units,
        sell=sell_quote.output_whole_units / basis.base_amount,
    )


def _order_by_direction(raw_quotes: Sequence, venue_name: str):
    by_direction = {quote.direction: quote for quote in raw_quotes}
    if BUY not in by_direction or SELL not in by_direction:
        raise VenueUnavailable(venue_name, "quotes must cover both BUY and SELL")
    return by_direction[BUY], by_direction[SELL]
