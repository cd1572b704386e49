# summarization.py
"""
Rebalancer Keeper – Summarization
=================================
Decides when the rebalancer's trade summarization must start or continue and
drives it, one confirmed transaction at a time, until the contract reports
stage 0 again. The contract owns the stage transitions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from cachetools import TTLCache

from rebalancer_keeper.loggingconfig import setup_logging
from rebalancer_keeper.transaction_core import TransactionCore

logger = setup_logging("Summarization", level="DEBUG")


@dataclass(frozen=True)
class SummarizationParams:
    stage: int
    last_block: int

    @classmethod
    def from_call(cls, result: Any) -> "SummarizationParams":
        """Build from the ``summParams()`` return value (tuple or named struct)."""
        if isinstance(result, dict):
            return cls(stage=int(result["stage"]), last_block=int(result["lastBlock"]))
        values: Sequence[Any] = tuple(result)
        return cls(stage=int(values[0]), last_block=int(values[1]))

    @property
    def idle(self) -> bool:
        return self.stage == 0


class StageOutcome(enum.Enum):
    IDLE = "idle"            # nothing was due
    COMPLETED = "completed"  # driven back to stage 0
    ABORTED = "aborted"      # a stage transaction failed


class SummarizationDriver:
    """Drives ``startSummarizeTrades`` / ``summarizeUsersStates``."""

    def __init__(
        self,
        rebalancer: Any,
        factory: Any,
        transaction_core: TransactionCore,
        frequency_cache_ttl: float = 60,
    ) -> None:
        self.rebalancer = rebalancer
        self.factory = factory
        self.transaction_core = transaction_core
        self._frequency_cache: TTLCache = TTLCache(maxsize=1, ttl=frequency_cache_ttl)

    # ------------------------------------------------------------------ #
    # reads                                                              #
    # ------------------------------------------------------------------ #

    async def get_summ_params(self) -> SummarizationParams:
        result = await self.rebalancer.functions.summParams().call()
        return SummarizationParams.from_call(result)

    async def get_summarization_frequency(self) -> int:
        frequency = self._frequency_cache.get("frequency")
        if frequency is None:
            frequency = int(await self.factory.functions.summarizationFrequency().call())
            self._frequency_cache["frequency"] = frequency
        return frequency

    # ------------------------------------------------------------------ #
    # triggers                                                           #
    # ------------------------------------------------------------------ #

    async def need_to_start_summarization(
        self, block_number: int, params: Optional[SummarizationParams] = None
    ) -> bool:
        """True when idle and ``block_number - lastBlock >= frequency``."""
        params = params or await self.get_summ_params()
        if not params.idle:
            return False
        frequency = await self.get_summarization_frequency()
        return block_number - params.last_block >= frequency

    async def summarization_in_process(self, params: Optional[SummarizationParams] = None) -> bool:
        params = params or await self.get_summ_params()
        return params.stage > 0

    # ------------------------------------------------------------------ #
    # transactions                                                       #
    # ------------------------------------------------------------------ #

    async def start_summarize_trades(self) -> bool:
        result = await self.transaction_core.send_transaction(
            lambda: self.rebalancer.functions.startSummarizeTrades().transact(),
            "startSummarizeTrades",
        )
        return result.success

    async def summarize_users_states_till_the_end(
        self, params: Optional[SummarizationParams] = None
    ) -> bool:
        """Send ``summarizeUsersStates`` until the contract reports stage 0.

        Every transaction is confirmed and followed by a fresh read of
        ``summParams()`` before the next one is sent. A failed transaction
        stops the loop; the next cycle resumes from the on-chain stage.
        """
        params = params or await self.get_summ_params()
        while not params.idle:
            result = await self.transaction_core.send_transaction(
                lambda: self.rebalancer.functions.summarizeUsersStates().transact(),
                "summarizeUsersStates",
            )
            if not result:
                logger.warning("summarizeUsersStates failed at stage %d; resuming next block", params.stage)
                return False
            params = await self.get_summ_params()
            logger.info("Summarization stage: %d", params.stage)
        return True

    async def drive(self, block_number: int) -> StageOutcome:
        """Start and/or continue summarization as required at *block_number*."""
        params = await self.get_summ_params()

        if params.idle:
            if not await self.need_to_start_summarization(block_number, params):
                logger.debug(
                    "Summarization not due (block %d, last summarized %d)",
                    block_number, params.last_block,
                )
                return StageOutcome.IDLE

            logger.info("Starting summarization at block %d (last %d)", block_number, params.last_block)
            # a failed start must not be treated as started
            if not await self.start_summarize_trades():
                return StageOutcome.ABORTED
            params = await self.get_summ_params()
            logger.info("Summarization stage: %d", params.stage)
        else:
            logger.info("Summarization in progress at stage %d; continuing", params.stage)

        if not await self.summarize_users_states_till_the_end(params):
            return StageOutcome.ABORTED
        logger.info("Summarization complete")
        return StageOutcome.COMPLETED
