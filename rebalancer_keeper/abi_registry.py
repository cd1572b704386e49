# abi_registry.py
"""
Rebalancer Keeper – ABIRegistry
===============================
Loads and validates the ABI JSON files of the rebalancer, its factory and the
underlying Uniswap V3 pool.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from rebalancer_keeper.configuration import Configuration
from rebalancer_keeper.loggingconfig import setup_logging
from rebalancer_keeper.pyutils.keepererrors import ContractBindingError

logger = setup_logging("ABIRegistry", level="DEBUG")

# --------------------------------------------------------------------------- #
# constants                                                                   #
# --------------------------------------------------------------------------- #

_REQUIRED: Dict[str, set[str]] = {
    "rebalancer": {
        "summParams",
        "factory",
        "pool",
        "startSummarizeTrades",
        "summarizeUsersStates",
        "tickLower",
        "tickUpper",
        "rebalance",
    },
    "rebalancer_factory": {"summarizationFrequency", "createRebalancer"},
    "uniswap_v3_pool": {"slot0", "tickSpacing"},
}

# abi type -> configuration key holding its path
_ABI_KEYS: Dict[str, str] = {
    "rebalancer": "REBALANCER_ABI",
    "rebalancer_factory": "REBALANCER_FACTORY_ABI",
    "uniswap_v3_pool": "UNISWAP_V3_POOL_ABI",
}


class ABIRegistry:
    """
    Holds the validated ABIs for one keeper process.
    """

    def __init__(self) -> None:
        self._abis: Dict[str, List[Dict[str, Any]]] = {}
        self._init_lock = asyncio.Lock()
        self._initialized = False

    # ---------------- public API -------------------------

    async def initialize(self, configuration: Configuration) -> None:
        """
        Load & validate all ABIs if not done yet.  Multiple callers are safe.
        """
        async with self._init_lock:
            if self._initialized:
                return
            for abi_type, key in _ABI_KEYS.items():
                path = Path(getattr(configuration, key))
                self._abis[abi_type] = await self._load_single(abi_type, path)
            self._initialized = True
            logger.info("ABIRegistry initialised (loaded %d ABIs)", len(self._abis))

    def get_abi(self, abi_type: str) -> Optional[List[Dict[str, Any]]]:
        return self._abis.get(abi_type)

    def require_abi(self, abi_type: str) -> List[Dict[str, Any]]:
        abi = self._abis.get(abi_type)
        if abi is None:
            raise ContractBindingError(f"ABI '{abi_type}' not loaded")
        return abi

    # ---------------- internals -------------------------

    async def _load_single(self, abi_type: str, file_path: Path) -> List[Dict[str, Any]]:
        try:
            content = await asyncio.to_thread(file_path.read_bytes)
        except FileNotFoundError:
            raise ContractBindingError(f"ABI file missing: {file_path}") from None

        try:
            abi_json = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ContractBindingError(f"Invalid ABI JSON {file_path.name}: {exc}") from exc

        # hardhat artifacts wrap the ABI
        if isinstance(abi_json, dict) and "abi" in abi_json:
            abi_json = abi_json["abi"]

        try:
            self._validate_schema(abi_json, abi_type)
        except ValueError as exc:
            raise ContractBindingError(f"Invalid ABI {abi_type}: {exc}") from exc

        functions = sum(1 for e in abi_json if e.get("type") == "function")
        logger.debug("Loaded ABI %-18s (%2d funcs)", abi_type, functions)
        return abi_json

    @staticmethod
    def _validate_schema(abi: Any, abi_type: str) -> None:
        if not isinstance(abi, list):
            raise ValueError("Not a JSON-array")

        names = {e.get("name") for e in abi if e.get("type") == "function"}
        missing = _REQUIRED.get(abi_type, set()) - names
        if missing:
            raise ValueError(f"Missing required functions: {', '.join(sorted(missing))}")


async def load_artifact(path: str | Path) -> Tuple[List[Dict[str, Any]], str]:
    """Read ``(abi, bytecode)`` from a hardhat compilation artifact."""
    artifact_path = Path(path)
    try:
        content = await asyncio.to_thread(artifact_path.read_text)
    except FileNotFoundError:
        raise ContractBindingError(f"Contract artifact missing: {artifact_path}") from None

    try:
        artifact = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ContractBindingError(f"Invalid artifact JSON {artifact_path.name}: {exc}") from exc

    abi = artifact.get("abi") if isinstance(artifact, dict) else None
    bytecode = artifact.get("bytecode") if isinstance(artifact, dict) else None
    if not abi or not bytecode or bytecode == "0x":
        raise ContractBindingError(f"Artifact {artifact_path.name} has no abi/bytecode")
    return abi, bytecode
