#!/usr/bin/env python3
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from eth_abi.exceptions import DecodingError
from web3 import Web3

from analysis.models import BUY, SELL, AmountBasis, PoolQuote
from constants import (
    TOKEN_ADDRESSES,
    UNISWAP_V2_FACTORY_ADDRESS,
    UNISWAP_V2_FEE_DENOMINATOR,
    UNISWAP_V2_FEE_NUMERATOR,
)
from services.errors import RpcError, VenueUnavailable
from services.rpc_client import EthRpcClient, decode_result, encode_call

logger = logging.getLogger(__name__)

ZERO_ADDRESS = '0x' + '0' * 40


@dataclass(frozen=True)
class PairSnapshot:
    """Reserves of a Uniswap V2 pair as read at block_number."""
    pair_address: str
    token0: str
    token1: str
    reserve0: int
    reserve1: int
    decimals0: int
    decimals1: int
    block_number: int

    def reserves_for(self, input_token: str) -> Tuple[int, int, int]:
        """Returns (reserve_in, reserve_out, output_decimals) for a swap starting from input_token."""
        input_token = input_token.lower()
        if input_token == self.token0:
            return self.reserve0, self.reserve1, self.decimals1
        if input_token == self.token1:
            return self.reserve1, self.reserve0, self.decimals0
        raise ValueError(f"{input_token} is not part of pair {self.pair_address}")


class UniswapPairVenue:
    """Constant-product venue evaluated against a cached snapshot of a Uniswap V2 pair."""

    kind = 'pool'

    _TOKEN0_SIG = "0x0dfe1681"
    _TOKEN1_SIG = "0xd21220a7"
    _GET_RESERVES_SIG = "0x0902f1ac"
    _DECIMALS_SIG = "0x313ce567"

    def __init__(
        self,
        rpc: EthRpcClient,
        *,
        name: str = 'Uniswap',
        factory_address: str = UNISWAP_V2_FACTORY_ADDRESS,
        base_token_address: str = TOKEN_ADDRESSES['weth'],
        quote_token_address: str = TOKEN_ADDRESSES['dai'],
    ) -> None:
        self.rpc = rpc
        self.name = name
        self.factory_address = Web3.to_checksum_address(factory_address)
        self.base_token_address = self._normalise_address(base_token_address)
        self.quote_token_address = self._normalise_address(quote_token_address)
        self._decimals_cache: Dict[str, int] = {}
        self._pair_tokens: Optional[Tuple[str, str, str]] = None
        self.snapshot: Optional[PairSnapshot] = None

    async def load(self, block_number: Optional[int] = None) -> PairSnapshot:
        """Resolves the pair, its tokens and decimals, then reads reserves. Raises VenueUnavailable."""
        try:
            if block_number is None:
                block_number = await self.rpc.block_number()
            pair_address, token0, token1 = await self._get_pair_tokens()
            decimals0, decimals1 = await asyncio.gather(
                self._get_decimals(token0),
                self._get_decimals(token1),
            )
            reserve0, reserve1 = await self._get_reserves(pair_address, block_number)
        except (RpcError, DecodingError, ValueError) as exc:
            raise VenueUnavailable(self.name, f"pair snapshot failed: {exc}") from exc

        if reserve0 == 0 or reserve1 == 0:
            raise VenueUnavailable(self.name, f"pair {pair_address} has empty reserves")

        snapshot = PairSnapshot(
            pair_address=pair_address,
            token0=token0,
            token1=token1,
            reserve0=reserve0,
            reserve1=reserve1,
            decimals0=decimals0,
            decimals1=decimals1,
            block_number=block_number,
        )
        if self.snapshot is not None and snapshot.block_number < self.snapshot.block_number:
            logger.debug("%s snapshot for block %s arrived after block %s; keeping the newer one",
                         self.name, block_number, self.snapshot.block_number)
            return self.snapshot
        self.snapshot = snapshot
        logger.info(
            "%s pair %s snapshot at block %s: reserve0=%s reserve1=%s",
            self.name, pair_address, block_number, reserve0, reserve1,
        )
        return snapshot

    async def refresh(self, block_number: int) -> PairSnapshot:
        return await self.load(block_number)

    def needs_refresh(self, block_number: int, every_blocks: int) -> bool:
        if self.snapshot is None:
            return True
        if every_blocks <= 0:
            return False
        return block_number - self.snapshot.block_number >= every_blocks

    def get_output_amount(self, input_token: str, input_amount: int) -> Tuple[int, int]:
        """Uniswap V2 getAmountOut against the cached snapshot; returns (output_amount, output_decimals)."""
        snapshot = self.snapshot
        if snapshot is None:
            raise VenueUnavailable(self.name, "pair snapshot not loaded")
        if input_amount <= 0:
            raise VenueUnavailable(self.name, f"non-positive input amount {input_amount}")

        reserve_in, reserve_out, output_decimals = snapshot.reserves_for(input_token)
        if reserve_in == 0 or reserve_out == 0:
            raise VenueUnavailable(self.name, "empty reserves")

        amount_in_with_fee = input_amount * UNISWAP_V2_FEE_NUMERATOR
        numerator = amount_in_with_fee * reserve_out
        denominator = reserve_in * UNISWAP_V2_FEE_DENOMINATOR + amount_in_with_fee
        output_amount = numerator // denominator
        if output_amount == 0:
            raise VenueUnavailable(self.name, "insufficient output amount")
        return output_amount, output_decimals

    async def quote(self, direction: str, amount: int) -> PoolQuote:
        if direction == BUY:
            input_token = self.quote_token_address
        elif direction == SELL:
            input_token = self.base_token_address
        else:
            raise ValueError(f"Unknown quote direction: {direction}")

        output_amount, output_decimals = self.get_output_amount(input_token, amount)
        return PoolQuote(
            direction=direction,
            input_amount=amount,
            output_amount=output_amount,
            output_decimals=output_decimals,
        )

    async def fetch_quotes(self, basis: AmountBasis) -> Tuple[PoolQuote, PoolQuote]:
        buy_quote, sell_quote = await asyncio.gather(
            self.quote(BUY, basis.quote_amount_atomic),
            self.quote(SELL, basis.base_amount_atomic),
        )
        return buy_quote, sell_quote

    async def _get_pair_tokens(self) -> Tuple[str, str, str]:
        if self._pair_tokens is not None:
            return self._pair_tokens
        data = encode_call(
            "getPair(address,address)",
            ['address', 'address'],
            [Web3.to_checksum_address(self.base_token_address), Web3.to_checksum_address(self.quote_token_address)],
        )
        (pair_address,) = decode_result(['address'], await self.rpc.eth_call(self.factory_address, data))
        pair_address = self._normalise_address(pair_address)
        if pair_address == ZERO_ADDRESS:
            raise ValueError("pair does not exist")

        token0 = self._decode_address(await self.rpc.eth_call(pair_address, self._TOKEN0_SIG))
        token1 = self._decode_address(await self.rpc.eth_call(pair_address, self._TOKEN1_SIG))
        if token0 is None or token1 is None:
            raise ValueError("token resolution missing")
        if {token0, token1} != {self.base_token_address, self.quote_token_address}:
            raise ValueError(f"pair {pair_address} holds {token0}/{token1}")
        self._pair_tokens = (pair_address, token0, token1)
        return self._pair_tokens

    async def _get_reserves(self, pair_address: str, block_number: int) -> Tuple[int, int]:
        result = await self.rpc.eth_call(pair_address, self._GET_RESERVES_SIG, hex(block_number))
        if not result or len(result) < 130:
            raise ValueError("empty_result")
        reserve0 = int(result[2:66], 16)
        reserve1 = int(result[66:130], 16)
        return reserve0, reserve1

    async def _get_decimals(self, token_address: str) -> int:
        cached = self._decimals_cache.get(token_address)
        if cached is not None:
            return cached
        result = await self.rpc.eth_call(token_address, self._DECIMALS_SIG)
        decimals = int(result, 16)
        self._decimals_cache[token_address] = decimals
        return decimals

    @staticmethod
    def _normalise_address(address: str) -> str:
        if address.startswith('0x'):
            return '0x' + address[2:].lower()
        return '0x' + address.lower()

    @staticmethod
    def _decode_address(value: Optional[str]) -> Optional[str]:
        if not value or len(value) < 66:
            return None
        return '0x' + value[-40:].lower()
