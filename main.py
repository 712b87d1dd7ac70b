#!/usr/bin/env python3
import asyncio
import logging

import aiohttp
from telegram import Bot

import constants
from analysis.models import AmountBasis
from analysis.reporter import OpportunityReporter
from config import AppConfig, load_config
from scanner import ScanCoordinator
from services.block_subscriber import BlockSubscriber
from services.errors import StreamDisconnected, VenueUnavailable
from services.gas_estimator import GasEstimator
from services.kyber_client import KyberProxyVenue
from services.rpc_client import EthRpcClient
from services.uniswap_pair import UniswapPairVenue


async def run(config: AppConfig) -> None:
    """Owns every long-lived resource for the lifetime of the block subscription."""
    basis = AmountBasis(base_amount=config.amount_eth, reference_price=config.reference_price)
    print(
        f"Trade size: {basis.base_amount} {constants.BASE_SYMBOL} "
        f"/ {basis.quote_amount} {constants.QUOTE_SYMBOL.upper()} (reference price {basis.reference_price})"
    )

    async with aiohttp.ClientSession(headers={'User-Agent': 'KyberUniswapArb/1.0'}) as session:
        rpc = EthRpcClient(session, rpc_url=config.rpc_url, timeout=config.rpc_timeout)
        kyber = KyberProxyVenue(rpc, name=constants.VENUE_A_NAME)
        uniswap = UniswapPairVenue(rpc, name=constants.VENUE_B_NAME)

        try:
            await uniswap.load()
            print(f"{constants.C_GREEN}Uniswap pair snapshot loaded.{constants.C_RESET}")
        except VenueUnavailable as exc:
            print(
                f"{constants.C_YELLOW}Could not load the Uniswap pair at start-up ({exc}); "
                f"retrying on the next block.{constants.C_RESET}"
            )

        bot = None
        if config.telegram_enabled:
            bot = Bot(config.telegram_bot_token)
            await bot.initialize()
            print("Telegram bot initialized.")

        reporter = OpportunityReporter(
            kyber.name,
            uniswap.name,
            bot=bot,
            chat_id=config.telegram_chat_id,
            alert_cooldown=config.alert_cooldown,
        )
        coordinator = ScanCoordinator(
            config,
            basis,
            kyber,
            uniswap,
            GasEstimator(rpc, config.gas_units),
            reporter,
        )
        subscriber = BlockSubscriber(
            session,
            ws_url=config.ws_url,
            on_trigger=coordinator.run_cycle,
            reconnect_delay=config.reconnect_delay,
            max_reconnect_attempts=config.max_reconnect_attempts,
        )

        try:
            await subscriber.run()
        finally:
            await subscriber.aclose()
            if bot is not None:
                await bot.shutdown()


def main() -> None:
    """The main synchronous entry point for the application."""
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        asyncio.run(run(config))
    except StreamDisconnected as exc:
        print(f"{constants.C_RED}Block stream lost for good: {exc}{constants.C_RESET}")
        exit(1)
    except KeyboardInterrupt:
        print("Stopped.")


if __name__ == "__main__":
    main()
