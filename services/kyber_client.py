#!/usr/bin/env python3
import asyncio
import logging
from typing import Tuple

from eth_abi.exceptions import DecodingError
from web3 import Web3

from analysis.models import BUY, SELL, AggregatorQuote, AmountBasis
from constants import KYBER_NETWORK_PROXY_ADDRESS, NATIVE_ASSET_SENTINEL, TOKEN_ADDRESSES
from services.errors import RpcError, VenueUnavailable
from services.rpc_client import EthRpcClient, decode_result, encode_call

logger = logging.getLogger(__name__)

GET_EXPECTED_RATE_SIGNATURE = "getExpectedRate(address,address,uint256)"


class KyberProxyVenue:
    """Aggregator venue: asks the Kyber Network Proxy for an expected rate per direction.

    The rate function is not symmetric, so a scan always needs one call per direction:
    BUY swaps the quote token into native ETH, SELL swaps native ETH into the quote token.
    """

    kind = 'aggregator'

    def __init__(
        self,
        rpc: EthRpcClient,
        *,
        name: str = 'Kyber',
        proxy_address: str = KYBER_NETWORK_PROXY_ADDRESS,
        quote_token_address: str = TOKEN_ADDRESSES['dai'],
        native_address: str = NATIVE_ASSET_SENTINEL,
    ) -> None:
        self.rpc = rpc
        self.name = name
        self.proxy_address = Web3.to_checksum_address(proxy_address)
        self.quote_token_address = Web3.to_checksum_address(quote_token_address)
        self.native_address = Web3.to_checksum_address(native_address)

    async def quote(self, direction: str, amount: int) -> AggregatorQuote:
        if direction == BUY:
            src, dest = self.quote_token_address, self.native_address
        elif direction == SELL:
            src, dest = self.native_address, self.quote_token_address
        else:
            raise ValueError(f"Unknown quote direction: {direction}")

        data = encode_call(
            GET_EXPECTED_RATE_SIGNATURE,
            ['address', 'address', 'uint256'],
            [src, dest, amount],
        )
        try:
            result = await self.rpc.eth_call(self.proxy_address, data)
            expected_rate, worst_rate = decode_result(['uint256', 'uint256'], result)
        except (RpcError, DecodingError) as exc:
            raise VenueUnavailable(self.name, f"getExpectedRate {direction} failed: {exc}") from exc

        logger.debug("%s %s expectedRate=%s worstRate=%s", self.name, direction, expected_rate, worst_rate)
        return AggregatorQuote(
            direction=direction,
            src_amount=amount,
            expected_rate=expected_rate,
            worst_rate=worst_rate,
        )

    async def fetch_quotes(self, basis: AmountBasis) -> Tuple[AggregatorQuote, AggregatorQuote]:
        """Issues the BUY (quote notional in) and SELL (base notional in) calls concurrently."""
        buy_quote, sell_quote = await asyncio.gather(
            self.quote(BUY, basis.quote_amount_atomic),
            self.quote(SELL, basis.base_amount_atomic),
        )
        return buy_quote, sell_quote
