#!/usr/bin/env python3
import asyncio
import logging
from typing import Any, Optional

import aiohttp
from aiohttp import ClientSession
from eth_abi import decode, encode
from web3 import Web3

from services.errors import RpcError

logger = logging.getLogger(__name__)


class EthRpcClient:
    """Minimal Ethereum JSON-RPC client over a shared aiohttp session."""

    def __init__(self, session: ClientSession, *, rpc_url: str, timeout: float) -> None:
        self._session = session
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._id_lock = asyncio.Lock()
        self._next_request_id = 1

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        result = await self.call("eth_call", [{"to": to, "data": data}, block])
        if not isinstance(result, str) or not result.startswith("0x"):
            raise RpcError(f"eth_call to {to} returned {result!r}")
        return result

    async def gas_price(self) -> int:
        result = await self.call("eth_gasPrice", [])
        return self._decode_quantity(result, "eth_gasPrice")

    async def block_number(self) -> int:
        result = await self.call("eth_blockNumber", [])
        return self._decode_quantity(result, "eth_blockNumber")

    async def call(self, method: str, params: list) -> Optional[Any]:
        request_id = await self._get_request_id()
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": request_id,
        }
        try:
            async with self._session.post(self._rpc_url, json=payload, timeout=self._timeout) as response:
                response.raise_for_status()
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("RPC %s failed: %s", method, exc)
            raise RpcError(f"{method} transport error: {exc}") from exc
        if 'error' in data:
            logger.warning("RPC %s returned error: %s", method, data['error'])
            raise RpcError(f"{method} error: {data['error']}")
        return data.get('result')

    async def _get_request_id(self) -> int:
        async with self._id_lock:
            request_id = self._next_request_id
            self._next_request_id += 1
        return request_id

    @staticmethod
    def _decode_quantity(value: Optional[Any], method: str) -> int:
        if not isinstance(value, str):
            raise RpcError(f"{method} returned {value!r}")
        try:
            return int(value, 16)
        except ValueError as exc:
            raise RpcError(f"{method} returned non-hex quantity {value!r}") from exc


def function_selector(signature: str) -> str:
    """Returns the 4-byte selector for a Solidity signature as 0x-prefixed hex."""
    return Web3.to_hex(Web3.keccak(text=signature)[:4])


def encode_call(signature: str, arg_types: list[str], args: list) -> str:
    return function_selector(signature) + encode(arg_types, args).hex()


def decode_result(result_types: list[str], result: str) -> tuple:
    return decode(result_types, Web3.to_bytes(hexstr=result))
