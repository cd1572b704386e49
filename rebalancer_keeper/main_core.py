#========================================================================================================================
# File: main_core.py
#========================================================================================================================
import asyncio
from typing import Optional

from web3 import AsyncWeb3

from rebalancer_keeper.abi_registry import ABIRegistry
from rebalancer_keeper.block_watcher import BlockWatcher
from rebalancer_keeper.chain_connector import ChainConnector
from rebalancer_keeper.configuration import Configuration
from rebalancer_keeper.contract_binding import ContractHandles, get_contracts
from rebalancer_keeper.loggingconfig import setup_logging
from rebalancer_keeper.rebalance_decision import RebalanceDecision
from rebalancer_keeper.summarization import StageOutcome, SummarizationDriver
from rebalancer_keeper.transaction_core import TransactionCore

logger = setup_logging("MainCore", level="DEBUG")


class MainCore:
    """
    Builds the keeper components and runs the block-driven control loop:
    summarization first, then the rebalance decision, one block at a time.
    """

    def __init__(self, configuration: Configuration) -> None:
        self.configuration = configuration
        self.connector = ChainConnector(configuration)
        self.web3: Optional[AsyncWeb3] = None
        self.contracts: Optional[ContractHandles] = None
        self.transaction_core: Optional[TransactionCore] = None
        self.summarization: Optional[SummarizationDriver] = None
        self.rebalance: Optional[RebalanceDecision] = None
        self.running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()
        self._closed: bool = False

    async def initialize(self) -> None:
        """Connect, pick the signer, bind contracts and build the components."""
        logger.debug("Initializing Web3...")
        self.web3 = await self.connector.connect()
        await self.connector.setup_signer()

        logger.debug("Initializing ABI Registry...")
        abi_registry = ABIRegistry()
        await abi_registry.initialize(self.configuration)

        self.transaction_core = TransactionCore(
            self.web3, receipt_timeout=self.configuration.RECEIPT_TIMEOUT
        )

        logger.debug("Binding contracts...")
        self.contracts = await get_contracts(
            self.web3, self.configuration, abi_registry, self.transaction_core
        )

        self.summarization = SummarizationDriver(
            self.contracts.rebalancer,
            self.contracts.factory,
            self.transaction_core,
            frequency_cache_ttl=self.configuration.FREQUENCY_CACHE_TTL,
        )
        self.rebalance = RebalanceDecision(
            self.contracts.rebalancer,
            self.contracts.pool,
            self.transaction_core,
            width_ticks=self.configuration.REBALANCE_WIDTH_TICKS,
        )
        logger.info("Keeper initialization complete ✅")

    async def process_block(self, block_number: int) -> None:
        """One polling cycle."""
        logger.info("New block %d", block_number)

        outcome = await self.summarization.drive(block_number)
        if outcome is StageOutcome.ABORTED:
            logger.warning("Summarization did not complete; skipping rebalance check this block")
            return

        if not await self.rebalance.run():
            logger.warning("Rebalancing failed at block %d", block_number)

    async def run(self) -> None:
        """Main loop; returns once stop() has been called."""
        logger.info("Starting keeper main loop...")
        self.running = True
        watcher = BlockWatcher(
            self.web3,
            poll_interval=self.configuration.POLL_INTERVAL,
            provider_timeout=self.configuration.PROVIDER_TIMEOUT,
            stop_event=self._stop_event,
        )

        try:
            async for block_number in watcher.watch():
                try:
                    await self.process_block(block_number)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Cycle for block {block_number} failed: {e}", exc_info=True)
        finally:
            self.running = False
            logger.info("Keeper main loop stopped")

    def request_stop(self) -> None:
        """Ask the main loop to finish after the current block; signal-handler safe."""
        if not self._stop_event.is_set():
            logger.warning("Initiating graceful shutdown...")
            self._stop_event.set()

    async def stop(self) -> None:
        """Graceful shutdown."""
        self.request_stop()
        if self._closed:
            return
        self._closed = True
        try:
            await self.connector.disconnect()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)
        finally:
            logger.info("Shutdown complete")
