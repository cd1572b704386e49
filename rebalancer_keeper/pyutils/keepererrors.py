# ========================================================================================================================
# Exceptions raised by the keeper. Transaction failures are never raised;
# they are reported through TxResult instead.
# ========================================================================================================================


class KeeperError(Exception):
    """Base exception for keeper failures."""

    def __init__(self, message: str = "Keeper failure") -> None:
        self.message: str = message
        super().__init__(self.message)


class ConfigurationError(KeeperError):
    """Missing or invalid configuration value. Fatal at startup."""

    def __init__(self, message: str = "Invalid configuration") -> None:
        super().__init__(message)


class ContractBindingError(KeeperError):
    """Contracts could not be resolved, loaded or deployed."""

    def __init__(self, message: str = "Contract binding failed") -> None:
        super().__init__(message)
