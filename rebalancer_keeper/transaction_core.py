# transaction_core.py
"""
Rebalancer Keeper – TransactionCore
===================================
Runs one contract transaction at a time: submit, wait for the receipt, log.
Failures are returned as a ``TxResult`` instead of being raised so a caller
driving a multi-step sequence can decide whether to stop.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from eth_utils import to_hex
from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted

from rebalancer_keeper.loggingconfig import setup_logging

logger = setup_logging("TransactionCore", level="DEBUG")

TxThunk = Callable[[], Awaitable[Any]]


@dataclass
class TxResult:
    """Outcome of a single keeper transaction."""

    name: str
    success: bool
    tx_hash: Optional[str] = None
    receipt: Optional[Any] = None
    error: Optional[BaseException] = None

    def __bool__(self) -> bool:
        return self.success


class TransactionReverted(Exception):
    """Receipt came back with status 0."""

    def __init__(self, tx_hash: str) -> None:
        self.transaction_hash = tx_hash
        super().__init__(f"Transaction {tx_hash} reverted")


def _format_hash(tx_hash: Any) -> Optional[str]:
    if tx_hash is None:
        return None
    if isinstance(tx_hash, (bytes, bytearray)):
        return to_hex(tx_hash)
    return str(tx_hash)


def _error_tx_hash(exc: BaseException) -> Optional[str]:
    """Best-effort transaction identifier carried by an exception."""
    for attr in ("transaction_hash", "transactionHash", "tx_hash"):
        value = getattr(exc, attr, None)
        if value:
            return _format_hash(value)
    return None


class TransactionCore:
    """Submits keeper transactions and waits for their confirmation."""

    def __init__(self, web3: AsyncWeb3, receipt_timeout: float = 120.0) -> None:
        self.web3 = web3
        self.receipt_timeout = receipt_timeout

    async def send_transaction(self, func: TxThunk, name: str) -> TxResult:
        """Invoke *func*, wait for the mined receipt and report the outcome.

        Args:
            func: zero-argument callable returning an awaitable tx hash,
                e.g. ``lambda: contract.functions.foo().transact()``.
            name: label used in log lines.
        """
        tx_hash: Optional[str] = None
        try:
            tx_hash = _format_hash(await func())
            logger.debug("Submitted %s", name, extra={"tx_hash": tx_hash})

            receipt = await self.web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
            if receipt.get("status", 1) == 0:
                raise TransactionReverted(tx_hash)

            logger.info(
                "Executed %s (tx %s, block %s, gas used %s)",
                name, tx_hash, receipt.get("blockNumber"), receipt.get("gasUsed"),
                extra={"tx_hash": tx_hash},
            )
            logger.debug("Receipt for %s: %s", name, dict(receipt))
            return TxResult(name=name, success=True, tx_hash=tx_hash, receipt=receipt)

        except asyncio.CancelledError:
            raise
        except TimeExhausted as exc:
            return self._failed(name, tx_hash, exc, "receipt not received in time")
        except Exception as exc:
            return self._failed(name, tx_hash or _error_tx_hash(exc), exc, "transaction failed")

    @staticmethod
    def _failed(name: str, tx_hash: Optional[str], exc: BaseException, reason: str) -> TxResult:
        logger.error(
            "%s: %s: %s (tx %s)", name, reason, exc, tx_hash or "unknown",
            extra={"tx_hash": tx_hash},
        )
        return TxResult(name=name, success=False, tx_hash=tx_hash, error=exc)
