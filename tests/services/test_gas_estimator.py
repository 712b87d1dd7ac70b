import pytest
from unittest.mock import AsyncMock, MagicMock

from services.errors import GasQueryFailed, RpcError
from services.gas_estimator import GasEstimator


def _rpc(**kwargs):
    rpc = MagicMock()
    rpc.gas_price = AsyncMock(**kwargs)
    return rpc


@pytest.mark.asyncio
async def test_estimate_multiplies_live_price_by_assumed_units():
    estimator = GasEstimator(_rpc(return_value=30 * 10 ** 9), assumed_units=200000)

    gas = await estimator.estimate()

    assert gas.unit_price_wei == 30 * 10 ** 9
    assert gas.assumed_units == 200000
    assert gas.native_cost == pytest.approx(0.006)


@pytest.mark.asyncio
async def test_estimate_is_recomputed_each_call():
    rpc = _rpc(side_effect=[10 * 10 ** 9, 40 * 10 ** 9])
    estimator = GasEstimator(rpc)

    first = await estimator.estimate()
    second = await estimator.estimate()

    assert first.unit_price_wei != second.unit_price_wei
    assert rpc.gas_price.await_count == 2


@pytest.mark.asyncio
async def test_rpc_failure_raises_gas_query_failed_without_fallback():
    estimator = GasEstimator(_rpc(side_effect=RpcError('eth_gasPrice transport error')))

    with pytest.raises(GasQueryFailed):
        await estimator.estimate()


@pytest.mark.asyncio
async def test_zero_gas_price_is_rejected():
    estimator = GasEstimator(_rpc(return_value=0))

    with pytest.raises(GasQueryFailed):
        await estimator.estimate()
