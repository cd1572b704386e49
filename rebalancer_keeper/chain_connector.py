#========================================================================================================================
# File: chain_connector.py
#========================================================================================================================
import asyncio
from typing import Optional, Union

import async_timeout
from eth_account import Account
from web3 import AsyncWeb3, AsyncHTTPProvider, AsyncIPCProvider
from web3.eth import AsyncEth
from web3.middleware import ExtraDataToPOAMiddleware, SignAndSendRawMiddlewareBuilder

from rebalancer_keeper.configuration import Configuration
from rebalancer_keeper.loggingconfig import setup_logging
from rebalancer_keeper.pyutils.keepererrors import ConfigurationError

logger = setup_logging("ChainConnector", level="DEBUG")

POA_CHAIN_IDS = {99, 100, 77, 7766, 56, 137, 80001}

AsyncProvider = Union[AsyncHTTPProvider, AsyncIPCProvider]


def get_provider(configuration: Configuration) -> AsyncProvider:
    """Build the provider named by PROVIDER_TYPE for the PROVIDER endpoint.

    Raises:
        ConfigurationError: endpoint missing or transport kind unrecognized.
    """
    endpoint = configuration.PROVIDER
    if not endpoint:
        raise ConfigurationError("PROVIDER is undefined")

    provider_type = configuration.PROVIDER_TYPE
    if provider_type == "ipc":
        return AsyncIPCProvider(endpoint)
    if provider_type == "http":
        return AsyncHTTPProvider(endpoint)
    raise ConfigurationError(f"Unrecognized PROVIDER_TYPE == {provider_type!r}")


class ChainConnector:
    """
    Owns the AsyncWeb3 instance and the signer used for every transaction.
    """

    def __init__(self, configuration: Configuration) -> None:
        self.configuration = configuration
        self.web3: Optional[AsyncWeb3] = None
        self.signer_address: Optional[str] = None
        self.chain_id: Optional[int] = None

    async def connect(self) -> AsyncWeb3:
        """Create the web3 instance and check the endpoint answers.

        No retry: an unreachable endpoint is reported to the caller, which
        is expected to exit.
        """
        provider = get_provider(self.configuration)
        web3 = AsyncWeb3(provider, modules={"eth": (AsyncEth,)})

        try:
            async with async_timeout.timeout(self.configuration.PROVIDER_TIMEOUT):
                connected = await web3.is_connected()
                chain_id = await web3.eth.chain_id if connected else None
        except asyncio.TimeoutError:
            raise ConnectionError(
                f"Timed out connecting to {self.configuration.PROVIDER_TYPE} provider"
            ) from None

        if not connected:
            raise ConnectionError(f"Provider at {self.configuration.PROVIDER} is not reachable")

        self.chain_id = chain_id
        logger.info(
            "Connected to network via %s provider (Chain ID: %s)",
            self.configuration.PROVIDER_TYPE.upper(), chain_id,
        )
        self._add_middleware(web3, chain_id)
        self.web3 = web3
        return web3

    def _add_middleware(self, web3: AsyncWeb3, chain_id: int) -> None:
        """Middleware based on network."""
        if chain_id in POA_CHAIN_IDS:
            web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
            logger.info("Injected POA middleware.")

    async def setup_signer(self) -> str:
        """Select the account that signs keeper transactions.

        With WALLET_KEY the key signs locally; otherwise the node's first
        unlocked account is used (the usual case on a development node).
        """
        if self.web3 is None:
            raise RuntimeError("setup_signer() called before connect()")

        if self.configuration.WALLET_KEY:
            account = Account.from_key(self.configuration.WALLET_KEY)
            self.web3.middleware_onion.inject(
                SignAndSendRawMiddlewareBuilder.build(account), layer=0
            )
            address = account.address
            logger.info("Using local signer %s...%s", address[:8], address[-6:])
        else:
            accounts = await self.web3.eth.accounts
            if not accounts:
                raise ConfigurationError(
                    "No signer available: set WALLET_KEY or unlock an account on the node"
                )
            address = accounts[0]
            logger.info("Using node account %s...%s", address[:8], address[-6:])

        self.web3.eth.default_account = address
        self.signer_address = address
        return address

    async def disconnect(self) -> None:
        if self.web3 and hasattr(self.web3.provider, "disconnect"):
            await self.web3.provider.disconnect()
            logger.info("Web3 provider disconnected.")
