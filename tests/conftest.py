# Shared fixtures for the keeper tests.

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

from rebalancer_keeper import configuration as configuration_module
from rebalancer_keeper.configuration import Configuration
from rebalancer_keeper.transaction_core import TxResult

REBALANCER_ADDRESS = "0x1111111111111111111111111111111111111111"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of configuration tests."""
    known = set(configuration_module._DEFAULTS) | set(configuration_module._ADDR_DEFAULTS)
    for key in list(os.environ):
        if key in known:
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def make_configuration(tmp_path):
    def _make(**overrides):
        return Configuration(
            env_path=tmp_path / ".env",
            yaml_file=tmp_path / "config.yaml",
            **overrides,
        )
    return _make


@pytest.fixture
def configuration(make_configuration):
    return make_configuration(
        PROVIDER="http://localhost:8545",
        PROVIDER_TYPE="http",
        REBALANCER_ADDRESS=REBALANCER_ADDRESS,
        POLL_INTERVAL=0.001,
    )


@pytest.fixture
def transaction_core():
    """TransactionCore stand-in that records labels and succeeds by default."""
    core = MagicMock()
    core.sent = []

    async def _send(func, name):
        core.sent.append(name)
        return TxResult(name=name, success=True, tx_hash="0x" + "ab" * 32, receipt={"status": 1})

    core.send_transaction = AsyncMock(side_effect=_send)
    return core
