# configuration.py
"""
Rebalancer Keeper – Configuration
=================================

Runtime configuration, loaded once at startup and passed to every component.

"""

from __future__ import annotations
import logging
import os
import types
from pathlib import Path
from typing import Any, Dict, Optional

import dotenv
import yaml
from eth_utils import is_checksum_address, to_checksum_address

from rebalancer_keeper.loggingconfig import setup_logging
from rebalancer_keeper.pyutils.keepererrors import ConfigurationError

logger = setup_logging("Configuration", level="DEBUG")


# --------------------------------------------------------------------------- #
# defaults                                                                    #
# --------------------------------------------------------------------------- #

_DEFAULTS: Dict[str, Any] = {
    # chain
    "PROVIDER": "",
    "PROVIDER_TYPE": "",
    "NODE_ENV": "",
    "WALLET_KEY": "",
    # timing
    "POLL_INTERVAL": 1.0,
    "PROVIDER_TIMEOUT": 10.0,
    "RECEIPT_TIMEOUT": 120.0,
    "FREQUENCY_CACHE_TTL": 60,
    # rebalancing
    "REBALANCE_WIDTH_TICKS": 0,
    # development deploy
    "FACTORY_ARTIFACT": "artifacts/contracts/RebalancerFactory.sol/RebalancerFactory.json",
    "DEV_POOL_FEE": 3000,
    # logging
    "LOG_LEVEL": "INFO",
    "LOG_JSON": False,
    # ABIs
    "REBALANCER_ABI": "abi/rebalancer_abi.json",
    "REBALANCER_FACTORY_ABI": "abi/rebalancer_factory_abi.json",
    "UNISWAP_V3_POOL_ABI": "abi/uniswap_v3_pool_abi.json",
}

# resolved against the package directory
_PATH_KEYS = {
    "REBALANCER_ABI",
    "REBALANCER_FACTORY_ABI",
    "UNISWAP_V3_POOL_ABI",
}

_ADDR_KEYS = {
    "REBALANCER_ADDRESS",
    "DEV_TOKEN_A",
    "DEV_TOKEN_B",
}

_ADDR_DEFAULTS: Dict[str, str] = {
    "REBALANCER_ADDRESS": "",
    "DEV_TOKEN_A": "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2",  # WETH
    "DEV_TOKEN_B": "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48",  # USDC
}

PROVIDER_TYPES = ("ipc", "http")
DEVELOPMENT = "development"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}

# --------------------------------------------------------------------------- #
# helper                                                                      #
# --------------------------------------------------------------------------- #


def _checksum(addr: str, key_name: str) -> str:
    if not addr:
        return ""
    if not addr.startswith("0x") or len(addr) != 42:
        raise ValueError(f"{key_name}: invalid address '{addr}'")
    if is_checksum_address(addr):
        return addr
    try:
        return to_checksum_address(addr)
    except ValueError:
        raise ValueError(f"{key_name}: invalid address '{addr}'") from None


def _coerce(key: str, value: Any, default: Any) -> Any:
    """Cast *value* to the type of *default*; env values always arrive as str."""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigurationError(f"{key}: expected a boolean, got '{value}'")
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{key}: expected an integer, got '{value}'") from None
    if isinstance(default, float):
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{key}: expected a number, got '{value}'") from None
    return "" if value is None else str(value)


# --------------------------------------------------------------------------- #
# main class                                                                  #
# --------------------------------------------------------------------------- #


class Configuration(types.SimpleNamespace):
    """Flat attribute bag: ``cfg.PROVIDER``, ``cfg.POLL_INTERVAL`` and so on."""

    BASE_PATH: Path = Path(__file__).parent  # package directory

    # NB: kwargs allow tests to override env/file easily
    def __init__(
        self,
        env_path: str | Path = ".env",
        yaml_file: str | Path = "config.yaml",
        **overrides: Any,
    ) -> None:
        super().__init__()
        self._env_path = Path(env_path)
        self._yaml_file = Path(yaml_file)
        self._overrides = dict(overrides)
        self._raw: Dict[str, Any] = {}
        self._load(self._overrides)

    # ------------------------------------------------------------------ #
    # public API                                                         #
    # ------------------------------------------------------------------ #

    def reload(self) -> None:
        """Reload from YAML/env; keeps existing object identity."""
        self._load(self._overrides)
        logger.info("Configuration reloaded successfully")

    @property
    def is_development(self) -> bool:
        return self.NODE_ENV == DEVELOPMENT

    # ------------------------------------------------------------------ #
    # internals                                                          #
    # ------------------------------------------------------------------ #

    def _load(self, overrides: Optional[Dict[str, Any]] = None) -> None:
        overrides = overrides or {}
        dotenv.load_dotenv(self._env_path, override=False)

        # 1) defaults
        data: Dict[str, Any] = dict(_DEFAULTS)
        data.update(_ADDR_DEFAULTS)

        # 2) NODE_ENV decides which YAML section applies
        environment = str(
            overrides.get("NODE_ENV", os.environ.get("NODE_ENV", ""))
        ) or "production"

        # 3) YAML
        if self._yaml_file.exists():
            try:
                yaml_data = yaml.safe_load(self._yaml_file.read_text()) or {}
                data.update(yaml_data.get(environment, {}) or {})
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Config YAML parse error in {self._yaml_file}: {exc}"
                ) from exc

        # 4) .env / process environment
        for k in set(os.environ):  # env vars are *uppercase* already
            if k in data:
                data[k] = os.environ[k]

        # 5) explicit kwargs
        data.update(overrides)

        # type fix-ups ------------------------------------------------
        for key, default in _DEFAULTS.items():
            data[key] = _coerce(key, data[key], default)
        data["PROVIDER_TYPE"] = data["PROVIDER_TYPE"].strip().lower()
        data["LOG_LEVEL"] = data["LOG_LEVEL"].strip().upper()
        if not isinstance(logging.getLevelName(data["LOG_LEVEL"]), int):
            raise ConfigurationError(f"LOG_LEVEL: unknown level '{data['LOG_LEVEL']}'")
        if data["FREQUENCY_CACHE_TTL"] < 0:
            raise ConfigurationError(
                f"FREQUENCY_CACHE_TTL must be >= 0, got {data['FREQUENCY_CACHE_TTL']}"
            )

        # path fix-ups -------------------------------------------------
        for key in _PATH_KEYS:
            if data.get(key):
                path = Path(str(data[key]))
                if not path.is_absolute():
                    path = self.BASE_PATH / path
                if not path.exists():
                    logger.warning("%s file missing: %s", key, path)
                data[key] = str(path.resolve())

        artifact = Path(str(data["FACTORY_ARTIFACT"]))
        data["FACTORY_ARTIFACT"] = str(artifact if artifact.is_absolute() else Path.cwd() / artifact)

        # checksum addresses ------------------------------------------
        for key in _ADDR_KEYS:
            try:
                data[key] = _checksum(str(data.get(key) or ""), key)
            except ValueError as exc:
                raise ConfigurationError(str(exc)) from exc

        # expose as attributes
        self.__dict__.update(data)
        self._raw = data  # keep original mapping for debug

        logger.debug("Configuration loaded (%d keys, environment=%s)", len(data), environment)

    # ------------------------------------------------------------------ #
    # dunder helpers                                                     #
    # ------------------------------------------------------------------ #

    def __repr__(self) -> str:
        keys = ("PROVIDER", "PROVIDER_TYPE", "NODE_ENV", "REBALANCER_ADDRESS")
        preview = ", ".join(f"{k}={getattr(self, k, '')!s}" for k in keys)
        return f"<Configuration {preview} …>"

