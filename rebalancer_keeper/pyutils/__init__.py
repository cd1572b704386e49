"""
Shared helpers for the rebalancer keeper.
"""

from rebalancer_keeper.pyutils.keepererrors import (
    ConfigurationError,
    ContractBindingError,
    KeeperError,
)

__all__: list[str] = ["KeeperError", "ConfigurationError", "ContractBindingError"]
