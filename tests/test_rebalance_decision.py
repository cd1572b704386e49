#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tests for the rebalance decision and its tick math.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from cachetools import TTLCache

from rebalancer_keeper.rebalance_decision import (
    MAX_TICK,
    MIN_TICK,
    PositionRange,
    RebalanceDecision,
    RebalanceParams,
    centered_range,
    sqrt_price_x96_to_price,
    tick_to_price,
    usable_tick_bounds,
)
from rebalancer_keeper.transaction_core import TxResult


def make_contracts(current_tick, tick_lower, tick_upper, tick_spacing=60):
    pool = MagicMock()
    pool.functions.slot0.return_value.call = AsyncMock(
        return_value=(2**96, current_tick, 0, 1, 1, 0, True)
    )
    pool.functions.tickSpacing.return_value.call = AsyncMock(return_value=tick_spacing)

    rebalancer = MagicMock()
    rebalancer.functions.tickLower.return_value.call = AsyncMock(return_value=tick_lower)
    rebalancer.functions.tickUpper.return_value.call = AsyncMock(return_value=tick_upper)
    rebalancer.functions.rebalance.return_value.transact = AsyncMock(return_value=b"\x01" * 32)
    return rebalancer, pool


# --------------------------------------------------------------------------- #
# tick math                                                                   #
# --------------------------------------------------------------------------- #

def test_position_range_lower_inclusive_upper_exclusive():
    position = PositionRange(-120, 120)
    assert position.contains(-120)
    assert position.contains(0)
    assert position.contains(119)
    assert not position.contains(120)
    assert not position.contains(-121)
    assert position.width == 240


def test_usable_tick_bounds():
    assert usable_tick_bounds(1) == (MIN_TICK, MAX_TICK)
    assert usable_tick_bounds(60) == (-887220, 887220)
    assert usable_tick_bounds(200) == (-887200, 887200)


def test_prices():
    assert tick_to_price(0) == 1
    assert tick_to_price(1) == Decimal("1.0001")
    assert sqrt_price_x96_to_price(2**96) == 1
    assert sqrt_price_x96_to_price(2 * 2**96) == 4


@pytest.mark.parametrize(
    "tick, width, spacing, expected",
    [
        (125, 120, 60, (60, 180)),
        (-1, 60, 60, (-60, 0)),
        (0, 60, 60, (0, 60)),
        (125, 100, 60, (60, 180)),
        (125, 0, 60, (120, 180)),
        (-887200, 600, 60, (-887220, -886620)),
        (887219, 600, 60, (886620, 887220)),
    ],
)
def test_centered_range(tick, width, spacing, expected):
    new_range = centered_range(tick, width, spacing)

    assert (new_range.tick_lower, new_range.tick_upper) == expected
    assert new_range.tick_lower % spacing == 0
    assert new_range.tick_upper % spacing == 0
    assert new_range.contains(tick)


def test_centered_range_rejects_bad_spacing():
    with pytest.raises(ValueError):
        centered_range(0, 60, 0)


# --------------------------------------------------------------------------- #
# decision                                                                    #
# --------------------------------------------------------------------------- #

@pytest.mark.asyncio
async def test_in_range_takes_no_action(transaction_core):
    rebalancer, pool = make_contracts(current_tick=10, tick_lower=-60, tick_upper=60)
    decision = RebalanceDecision(rebalancer, pool, transaction_core)

    assert await decision.price_in_position_range() is True
    assert await decision.run() is True
    transaction_core.send_transaction.assert_not_called()


@pytest.mark.asyncio
async def test_upper_bound_counts_as_out_of_range(transaction_core):
    rebalancer, pool = make_contracts(current_tick=60, tick_lower=-60, tick_upper=60)
    decision = RebalanceDecision(rebalancer, pool, transaction_core)

    assert await decision.price_in_position_range() is False


@pytest.mark.asyncio
async def test_calc_params_keeps_current_width(transaction_core):
    rebalancer, pool = make_contracts(current_tick=500, tick_lower=-60, tick_upper=60)
    decision = RebalanceDecision(rebalancer, pool, transaction_core)

    params = await decision.calc_rebalance_params()

    assert params == RebalanceParams(tick_lower=420, tick_upper=540, current_tick=500, tick_spacing=60)


@pytest.mark.asyncio
async def test_calc_params_uses_configured_width(transaction_core):
    rebalancer, pool = make_contracts(current_tick=500, tick_lower=-60, tick_upper=60)
    decision = RebalanceDecision(rebalancer, pool, transaction_core, width_ticks=600)

    params = await decision.calc_rebalance_params()

    assert (params.tick_lower, params.tick_upper) == (180, 780)
    rebalancer.functions.tickLower.return_value.call.assert_not_called()


@pytest.mark.asyncio
async def test_out_of_range_rebalances_once(transaction_core):
    rebalancer, pool = make_contracts(current_tick=-500, tick_lower=-60, tick_upper=60)
    decision = RebalanceDecision(rebalancer, pool, transaction_core)

    assert await decision.run() is True

    assert transaction_core.sent == ["rebalance"]
    func, name = transaction_core.send_transaction.call_args.args
    await func()
    rebalancer.functions.rebalance.assert_called_once_with(-600, -480)


@pytest.mark.asyncio
async def test_failed_rebalance_is_not_retried(transaction_core):
    transaction_core.send_transaction = AsyncMock(
        return_value=TxResult(name="rebalance", success=False)
    )
    rebalancer, pool = make_contracts(current_tick=-500, tick_lower=-60, tick_upper=60)
    decision = RebalanceDecision(rebalancer, pool, transaction_core)

    assert await decision.run() is False
    transaction_core.send_transaction.assert_awaited_once()


@pytest.mark.asyncio
async def test_tick_spacing_is_cached(transaction_core):
    rebalancer, pool = make_contracts(current_tick=500, tick_lower=-60, tick_upper=60)
    decision = RebalanceDecision(rebalancer, pool, transaction_core)

    await decision.calc_rebalance_params()
    await decision.calc_rebalance_params()

    pool.functions.tickSpacing.return_value.call.assert_awaited_once()


@pytest.mark.asyncio
async def test_tick_spacing_survives_expired_cache(transaction_core):
    rebalancer, pool = make_contracts(current_tick=500, tick_lower=-60, tick_upper=60)
    decision = RebalanceDecision(rebalancer, pool, transaction_core)
    decision._spacing_cache = TTLCache(maxsize=1, ttl=0)

    assert await decision.get_tick_spacing() == 60
    assert await decision.get_tick_spacing() == 60
