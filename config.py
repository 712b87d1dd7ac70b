#!/usr/bin/env python3
import os
import argparse
from typing import NamedTuple

from dotenv import load_dotenv

import constants

class AppConfig(NamedTuple):
    """Typed configuration object."""
    ws_url: str
    rpc_url: str
    amount_eth: float
    reference_price: float
    gas_units: int
    pool_refresh_blocks: int
    cycle_timeout: float
    rpc_timeout: float
    reconnect_delay: float
    max_reconnect_attempts: int
    supersede_stale_cycles: bool
    telegram_enabled: bool
    alert_cooldown: int
    telegram_bot_token: str | None
    telegram_chat_id: str | None
    log_level: str


def derive_rpc_url(ws_url: str) -> str:
    """Maps a websocket endpoint onto its HTTP JSON-RPC twin (wss -> https, ws -> http)."""
    if ws_url.startswith('wss://'):
        return 'https://' + ws_url[len('wss://'):]
    if ws_url.startswith('ws://'):
        return 'http://' + ws_url[len('ws://'):]
    return ws_url


def load_config() -> AppConfig:
    """
    Parses command-line arguments and loads environment variables (including a local .env file)
    to create a configuration object.
    """
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Watch new blocks and compare Kyber and Uniswap ETH/DAI rates for arbitrage opportunities.",
        epilog="Example: ./main.py --amount-eth 50 --reference-price 1800 --pool-refresh-blocks 5"
    )
    parser.add_argument('--amount-eth', type=float, default=constants.DEFAULT_AMOUNT_ETH, help='Trade size in ETH used for every quote (default: 100).')
    parser.add_argument('--reference-price', type=float, default=constants.DEFAULT_REFERENCE_PRICE, help='Assumed ETH price in DAI used to size the DAI notional (default: 230).')
    parser.add_argument('--gas-units', type=int, default=constants.DEFAULT_GAS_UNITS, help='Assumed gas units for the arbitrage transaction (default: 200000).')
    parser.add_argument('--pool-refresh-blocks', type=int, default=0, help='Reload Uniswap reserves every N blocks; 0 loads them once at start-up (default: 0).')
    parser.add_argument('--cycle-timeout', type=float, default=constants.DEFAULT_CYCLE_TIMEOUT, help='Seconds before an unfinished scan cycle is abandoned (default: 15).')
    parser.add_argument('--rpc-timeout', type=float, default=constants.DEFAULT_RPC_TIMEOUT, help='Timeout in seconds for a single JSON-RPC call (default: 8).')
    parser.add_argument('--reconnect-delay', type=float, default=constants.DEFAULT_RECONNECT_DELAY, help='Seconds to wait before re-subscribing after a dropped stream (default: 5).')
    parser.add_argument('--max-reconnect-attempts', type=int, default=constants.DEFAULT_MAX_RECONNECT_ATTEMPTS, help='Consecutive failed reconnects before giving up (default: 10).')
    parser.add_argument('--supersede-stale-cycles', action='store_true', help='Drop results from cycles that finish after a newer block was already reported.')
    parser.add_argument('--telegram-enabled', action='store_true', help='Enable Telegram notifications.')
    parser.add_argument('--alert-cooldown', type=int, default=constants.DEFAULT_ALERT_COOLDOWN, help='Cooldown in seconds before re-alerting for the same direction (default: 300).')
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level for service diagnostics (default: INFO).')

    args = parser.parse_args()

    if args.amount_eth <= 0:
        parser.error('--amount-eth must be positive.')
    if args.reference_price <= 0:
        parser.error('--reference-price must be positive.')
    if args.pool_refresh_blocks < 0:
        parser.error('--pool-refresh-blocks cannot be negative.')
    if args.cycle_timeout <= 0:
        parser.error('--cycle-timeout must be positive.')
    if args.rpc_timeout <= 0:
        parser.error('--rpc-timeout must be positive.')
    if args.max_reconnect_attempts < 0:
        parser.error('--max-reconnect-attempts cannot be negative.')

    # Load from environment
    ws_url = os.environ.get(constants.ETH_WS_URL_ENV_VAR)
    rpc_url = os.environ.get(constants.ETH_RPC_URL_ENV_VAR)
    telegram_bot_token = os.environ.get(constants.TELEGRAM_BOT_TOKEN_ENV_VAR)
    telegram_chat_id = os.environ.get(constants.TELEGRAM_CHAT_ID_ENV_VAR)

    if not ws_url:
        print(f"{constants.C_RED}{constants.ETH_WS_URL_ENV_VAR} environment variable not set. A websocket endpoint is required to follow new blocks.{constants.C_RESET}")
        exit(1)

    if args.telegram_enabled and not (telegram_bot_token and telegram_chat_id):
        print(f"{constants.C_RED}Telegram is enabled, but {constants.TELEGRAM_BOT_TOKEN_ENV_VAR} or {constants.TELEGRAM_CHAT_ID_ENV_VAR} are not set.{constants.C_RESET}")
        exit(1)

    return AppConfig(
        ws_url=ws_url,
        rpc_url=rpc_url or derive_rpc_url(ws_url),
        amount_eth=args.amount_eth,
        reference_price=args.reference_price,
        gas_units=args.gas_units,
        pool_refresh_blocks=args.pool_refresh_blocks,
        cycle_timeout=args.cycle_timeout,
        rpc_timeout=args.rpc_timeout,
        reconnect_delay=args.reconnect_delay,
        max_reconnect_attempts=args.max_reconnect_attempts,
        supersede_stale_cycles=args.supersede_stale_cycles,
        telegram_enabled=args.telegram_enabled,
        alert_cooldown=args.alert_cooldown,
        telegram_bot_token=telegram_bot_token,
        telegram_chat_id=telegram_chat_id,
        log_level=args.log_level,
    )
