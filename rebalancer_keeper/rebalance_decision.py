# rebalance_decision.py
"""
Rebalancer Keeper – RebalanceDecision
=====================================
Checks whether the pool price is still inside the rebalancer's position and,
when it is not, computes a new range around the current tick and submits the
``rebalance`` transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Tuple

from cachetools import TTLCache

from rebalancer_keeper.loggingconfig import setup_logging
from rebalancer_keeper.transaction_core import TransactionCore, TxResult

logger = setup_logging("RebalanceDecision", level="DEBUG")

MIN_TICK = -887272
MAX_TICK = 887272
Q96 = Decimal(2**96)


# --------------------------------------------------------------------------- #
# tick math                                                                   #
# --------------------------------------------------------------------------- #

def tick_to_price(tick: int) -> Decimal:
    """Raw token1/token0 price at *tick* (no decimal adjustment)."""
    return Decimal("1.0001") ** tick


def sqrt_price_x96_to_price(sqrt_price_x96: int) -> Decimal:
    return (Decimal(sqrt_price_x96) / Q96) ** 2


def usable_tick_bounds(tick_spacing: int) -> Tuple[int, int]:
    """Lowest and highest ticks that are multiples of *tick_spacing*."""
    lowest = -(-MIN_TICK // tick_spacing) * tick_spacing
    highest = (MAX_TICK // tick_spacing) * tick_spacing
    return lowest, highest


@dataclass(frozen=True)
class PositionRange:
    tick_lower: int
    tick_upper: int

    @property
    def width(self) -> int:
        return self.tick_upper - self.tick_lower

    def contains(self, tick: int) -> bool:
        # liquidity is active for tick_lower <= tick < tick_upper
        return self.tick_lower <= tick < self.tick_upper


@dataclass(frozen=True)
class RebalanceParams:
    tick_lower: int
    tick_upper: int
    current_tick: int
    tick_spacing: int


def centered_range(current_tick: int, width: int, tick_spacing: int) -> PositionRange:
    """Spacing-aligned range of at least *width* ticks containing *current_tick*."""
    if tick_spacing <= 0:
        raise ValueError(f"tick spacing must be positive, got {tick_spacing}")

    spacings = max(1, -(-width // tick_spacing))
    base = (current_tick // tick_spacing) * tick_spacing
    lower = base - (spacings // 2) * tick_spacing
    upper = lower + spacings * tick_spacing

    lowest, highest = usable_tick_bounds(tick_spacing)
    if lower < lowest:
        lower, upper = lowest, min(highest, lowest + spacings * tick_spacing)
    elif upper > highest:
        lower, upper = max(lowest, highest - spacings * tick_spacing), highest
    return PositionRange(lower, upper)


# --------------------------------------------------------------------------- #
# decision                                                                    #
# --------------------------------------------------------------------------- #

class RebalanceDecision:
    """check -> compute -> execute, with no retries between the steps."""

    def __init__(
        self,
        rebalancer: Any,
        pool: Any,
        transaction_core: TransactionCore,
        width_ticks: int = 0,
    ) -> None:
        self.rebalancer = rebalancer
        self.pool = pool
        self.transaction_core = transaction_core
        self.width_ticks = width_ticks
        self._spacing_cache: TTLCache = TTLCache(maxsize=1, ttl=3600)

    async def get_current_tick(self) -> int:
        slot0 = await self.pool.functions.slot0().call()
        return int(slot0[1])

    async def get_tick_spacing(self) -> int:
        spacing = self._spacing_cache.get("spacing")
        if spacing is None:
            spacing = int(await self.pool.functions.tickSpacing().call())
            self._spacing_cache["spacing"] = spacing
        return spacing

    async def get_position_range(self) -> PositionRange:
        lower = await self.rebalancer.functions.tickLower().call()
        upper = await self.rebalancer.functions.tickUpper().call()
        return PositionRange(int(lower), int(upper))

    async def price_in_position_range(self, current_tick: Optional[int] = None) -> bool:
        if current_tick is None:
            current_tick = await self.get_current_tick()
        position = await self.get_position_range()
        in_range = position.contains(current_tick)
        logger.debug(
            "Tick %d %s position [%d, %d)",
            current_tick, "inside" if in_range else "outside",
            position.tick_lower, position.tick_upper,
        )
        return in_range

    async def calc_rebalance_params(self, current_tick: Optional[int] = None) -> RebalanceParams:
        if current_tick is None:
            current_tick = await self.get_current_tick()
        spacing = await self.get_tick_spacing()
        width = self.width_ticks
        if width <= 0:
            width = (await self.get_position_range()).width

        new_range = centered_range(current_tick, width, spacing)
        params = RebalanceParams(
            tick_lower=new_range.tick_lower,
            tick_upper=new_range.tick_upper,
            current_tick=current_tick,
            tick_spacing=spacing,
        )
        logger.info(
            "New range [%d, %d) around tick %d (price %.6g .. %.6g)",
            params.tick_lower, params.tick_upper, current_tick,
            tick_to_price(params.tick_lower), tick_to_price(params.tick_upper),
        )
        return params

    async def execute_rebalancing(self, params: RebalanceParams) -> TxResult:
        return await self.transaction_core.send_transaction(
            lambda: self.rebalancer.functions.rebalance(params.tick_lower, params.tick_upper).transact(),
            "rebalance",
        )

    async def run(self) -> bool:
        """Returns True when no action was needed or the rebalance succeeded."""
        current_tick = await self.get_current_tick()
        if await self.price_in_position_range(current_tick):
            return True

        logger.info("Price left the position range at tick %d; rebalancing", current_tick)
        params = await self.calc_rebalance_params(current_tick)
        result = await self.execute_rebalancing(params)
        return result.success
