#!/usr/bin/env python3
import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional, Set

import aiohttp
from aiohttp import ClientSession, WSMsgType

from analysis.models import Trigger
from constants import C_GREEN, C_RESET, C_YELLOW
from services.errors import RpcError, StreamDisconnected

logger = logging.getLogger(__name__)

_CLOSED_TYPES = (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED, WSMsgType.ERROR)


class BlockSubscriber:
    """Follows `newHeads` over a websocket and spawns one scan task per new block number.

    A dropped stream is re-subscribed after reconnect_delay; only max_reconnect_attempts
    consecutive failures end the run with StreamDisconnected. Block numbers at or below the
    last dispatched one (replays after a reconnect, reorg re-announcements) are ignored.
    """

    _SUBSCRIBE_ID = 1

    def __init__(
        self,
        session: ClientSession,
        *,
        ws_url: str,
        on_trigger: Callable[[Trigger], Awaitable],
        reconnect_delay: float,
        max_reconnect_attempts: int,
        heartbeat: float = 30.0,
    ) -> None:
        self._session = session
        self._ws_url = ws_url
        self._on_trigger = on_trigger
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_attempts = max_reconnect_attempts
        self._heartbeat = heartbeat
        self._last_block: Optional[int] = None
        self._tasks: Set[asyncio.Task] = set()
        self.subscription_id: Optional[str] = None

    @property
    def last_block(self) -> Optional[int]:
        return self._last_block

    async def run(self) -> None:
        """Subscribes and keeps the subscription alive until reconnecting becomes impossible."""
        failures = 0
        while True:
            try:
                async with self._session.ws_connect(self._ws_url, heartbeat=self._heartbeat) as ws:
                    self.subscription_id = await self._subscribe(ws)
                    failures = 0
                    print(f"{C_GREEN}Subscribed to new block headers (subscription {self.subscription_id}).{C_RESET}")
                    await self._consume(ws)
                logger.warning("Block header stream closed by the server")
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError, RpcError) as exc:
                logger.warning("Block header stream error: %s", exc)

            self.subscription_id = None
            failures += 1
            if failures > self._max_reconnect_attempts:
                raise StreamDisconnected(
                    f"could not re-establish block stream after {self._max_reconnect_attempts} attempts"
                )
            print(f"{C_YELLOW}Block stream dropped; reconnecting in {self._reconnect_delay:.0f}s "
                  f"(attempt {failures}/{self._max_reconnect_attempts})...{C_RESET}")
            await asyncio.sleep(self._reconnect_delay)

    async def aclose(self) -> None:
        """Cancels scan tasks that are still in flight."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _subscribe(self, ws) -> str:
        await ws.send_json({
            "jsonrpc": "2.0",
            "id": self._SUBSCRIBE_ID,
            "method": "eth_subscribe",
            "params": ["newHeads"],
        })
        while True:
            msg = await ws.receive()
            if msg.type in _CLOSED_TYPES:
                raise aiohttp.ClientConnectionError("stream closed before subscription was confirmed")
            data = self._parse(msg)
            if data is None:
                continue
            if data.get('id') == self._SUBSCRIBE_ID:
                if 'error' in data:
                    raise RpcError(f"eth_subscribe error: {data['error']}")
                return data.get('result')
            self._handle_notification(data)

    async def _consume(self, ws) -> None:
        while True:
            msg = await ws.receive()
            if msg.type in _CLOSED_TYPES:
                if msg.type == WSMsgType.ERROR:
                    logger.warning("Websocket error: %s", ws.exception())
                return
            data = self._parse(msg)
            if data is not None:
                self._handle_notification(data)

    def _handle_notification(self, data: dict) -> None:
        if data.get('method') != 'eth_subscription':
            return
        params = data.get('params')
        header = params.get('result') if isinstance(params, dict) else None
        if not isinstance(header, dict):
            logger.warning("Ignoring malformed notification: %s", data)
            return
        try:
            block_number = int(header['number'], 16)
        except (KeyError, TypeError, ValueError):
            logger.warning("Ignoring malformed block header: %s", header)
            return
        self.dispatch(Trigger(block_number=block_number, block_hash=header.get('hash')))

    def dispatch(self, trigger: Trigger) -> Optional[asyncio.Task]:
        """Starts a scan task for a block not seen before; cycles may overlap."""
        if self._last_block is not None and trigger.block_number <= self._last_block:
            logger.debug("Skipping already handled block %s", trigger.block_number)
            return None
        self._last_block = trigger.block_number
        task = asyncio.create_task(self._on_trigger(trigger))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    def _parse(msg) -> Optional[dict]:
        if msg.type != WSMsgType.TEXT:
            return None
        try:
            data = json.loads(msg.data)
        except ValueError:
            logger.warning("Ignoring non-JSON message: %r", msg.data)
            return None
        return data if isinstance(data, dict) else None
