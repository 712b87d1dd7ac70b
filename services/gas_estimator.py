#!/usr/bin/env python3
import logging

from analysis.models import GasCost
from constants import DEFAULT_GAS_UNITS
from services.errors import GasQueryFailed, RpcError
from services.rpc_client import EthRpcClient

logger = logging.getLogger(__name__)


class GasEstimator:
    """Prices the arbitrage transaction at the live gas price times a fixed unit count.

    The unit count is a configured approximation, not an estimateGas simulation.
    A failed query raises GasQueryFailed; there is no fallback price.
    """

    def __init__(self, rpc: EthRpcClient, assumed_units: int = DEFAULT_GAS_UNITS) -> None:
        self.rpc = rpc
        self.assumed_units = assumed_units

    async def estimate(self) -> GasCost:
        try:
            gas_price = await self.rpc.gas_price()
        except RpcError as exc:
            raise GasQueryFailed(f"gas price unavailable: {exc}") from exc
        if gas_price <= 0:
            raise GasQueryFailed(f"gas price reported as {gas_price}")
        logger.debug("Gas price %s wei x %s units", gas_price, self.assumed_units)
        return GasCost(unit_price_wei=gas_price, assumed_units=self.assumed_units)
