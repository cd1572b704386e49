# contract_binding.py
"""
Rebalancer Keeper – ContractBinding
===================================
Resolves the rebalancer, its factory and its Uniswap V3 pool. In development
mode a fresh factory is deployed and asked to create a rebalancer first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from web3 import AsyncWeb3
from web3.logs import DISCARD

from rebalancer_keeper.abi_registry import ABIRegistry, load_artifact
from rebalancer_keeper.configuration import Configuration
from rebalancer_keeper.loggingconfig import setup_logging
from rebalancer_keeper.pyutils.keepererrors import ConfigurationError, ContractBindingError
from rebalancer_keeper.transaction_core import TransactionCore

logger = setup_logging("ContractBinding", level="DEBUG")


@dataclass
class ContractHandles:
    rebalancer: Any
    factory: Any
    pool: Any


def _creation_events(abi: List[Dict[str, Any]]) -> List[str]:
    """Names of events that report a created rebalancer address."""
    return [
        entry["name"]
        for entry in abi
        if entry.get("type") == "event"
        and any(arg.get("name") == "rebalancer" for arg in entry.get("inputs", []))
    ]


def rebalancer_from_receipt(factory: Any, abi: List[Dict[str, Any]], receipt: Any) -> Optional[str]:
    """Address carried by the first creation event in *receipt*."""
    for event_name in _creation_events(abi):
        events = factory.events[event_name]().process_receipt(receipt, errors=DISCARD)
        if events:
            return events[0]["args"]["rebalancer"]
    return None


async def deploy_rebalancer(
    web3: AsyncWeb3,
    configuration: Configuration,
    transaction_core: TransactionCore,
) -> str:
    """Deploy a RebalancerFactory and create a rebalancer for the dev pair.

    Issues exactly two transactions: the deployment and ``createRebalancer``.
    """
    abi, bytecode = await load_artifact(configuration.FACTORY_ARTIFACT)
    factory_deployer = web3.eth.contract(abi=abi, bytecode=bytecode)

    deployed = await transaction_core.send_transaction(
        lambda: factory_deployer.constructor().transact(), "deployRebalancerFactory"
    )
    if not deployed:
        raise ContractBindingError(f"RebalancerFactory deployment failed: {deployed.error}")
    factory_address = deployed.receipt["contractAddress"]
    logger.info("Deployed RebalancerFactory at %s", factory_address)

    factory = web3.eth.contract(address=factory_address, abi=abi)
    created = await transaction_core.send_transaction(
        lambda: factory.functions.createRebalancer(
            configuration.DEV_TOKEN_A,
            configuration.DEV_TOKEN_B,
            configuration.DEV_POOL_FEE,
        ).transact(),
        "createRebalancer",
    )
    if not created:
        raise ContractBindingError(f"createRebalancer failed: {created.error}")

    rebalancer_address = rebalancer_from_receipt(factory, abi, created.receipt)
    if not rebalancer_address:
        raise ContractBindingError("createRebalancer receipt carries no rebalancer address")
    logger.info("Created Rebalancer at %s", rebalancer_address)
    return rebalancer_address


async def get_contracts(
    web3: AsyncWeb3,
    configuration: Configuration,
    abi_registry: ABIRegistry,
    transaction_core: TransactionCore,
) -> ContractHandles:
    if configuration.is_development:
        rebalancer_address = await deploy_rebalancer(web3, configuration, transaction_core)
    else:
        if not configuration.REBALANCER_ADDRESS:
            raise ConfigurationError(
                "In production contract should be deployed. You must set REBALANCER_ADDRESS"
            )
        rebalancer_address = configuration.REBALANCER_ADDRESS

    rebalancer = web3.eth.contract(
        address=web3.to_checksum_address(rebalancer_address),
        abi=abi_registry.require_abi("rebalancer"),
    )
    factory_address = await rebalancer.functions.factory().call()
    pool_address = await rebalancer.functions.pool().call()

    factory = web3.eth.contract(
        address=web3.to_checksum_address(factory_address),
        abi=abi_registry.require_abi("rebalancer_factory"),
    )
    pool = web3.eth.contract(
        address=web3.to_checksum_address(pool_address),
        abi=abi_registry.require_abi("uniswap_v3_pool"),
    )
    logger.info(
        "Bound Rebalancer %s (factory %s, pool %s)",
        rebalancer.address, factory.address, pool.address,
    )
    return ContractHandles(rebalancer=rebalancer, factory=factory, pool=pool)
