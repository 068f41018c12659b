"""
Lottery deployment.

On development chains a VRFCoordinatorV2Mock is deployed, a subscription is
created and funded, and the lottery is registered as its consumer. On any
other network the coordinator address and subscription id come from the
network config table; anything missing aborts the deployment.
"""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from web3 import Web3

from vrf_lottery.blockchain.chain import LocalChain
from vrf_lottery.blockchain.errors import DeploymentConfigError
from vrf_lottery.blockchain.frontend import FrontEndExporter
from vrf_lottery.blockchain.vrf import RandomnessOracle, VRFCoordinatorV2Mock
from vrf_lottery.lottery.core import Lottery
from vrf_lottery.networks import (
    DEVELOPMENT_CHAINS,
    VERIFICATION_BLOCK_CONFIRMATIONS,
    NetworkConfig,
    get_network_config,
)
from vrf_lottery.utils.config import as_bool, get_config_value
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)

FUND_AMOUNT = Web3.to_wei(2, "ether")


@dataclass
class Deployment:
    """What a deployment produced, as recorded for later tooling."""

    network: str
    chain_id: int
    deployer: str
    lottery_address: str
    vrf_coordinator: str
    subscription_id: int
    args: List[Any]
    wait_confirmations: int
    block_number: int
    deployment_time: int
    lottery: Optional[Lottery] = field(default=None, repr=False)
    coordinator: Optional[RandomnessOracle] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in ("lottery", "coordinator")
        }


class LotteryDeployer:
    """Deploys the lottery (and local mocks) onto a chain."""

    def __init__(self, chain: LocalChain, deployer: Optional[str] = None, fund_amount: int = FUND_AMOUNT):
        self.chain = chain
        self.deployer = Web3.to_checksum_address(deployer or chain.accounts[0].address)
        self.fund_amount = fund_amount

    @property
    def is_development(self) -> bool:
        return self.chain.name in DEVELOPMENT_CHAINS

    def deploy(self, output: Optional[Union[str, Path]] = None) -> Deployment:
        network_config = get_network_config(self.chain.chain_id)
        wait_confirmations = 1 if self.is_development else VERIFICATION_BLOCK_CONFIRMATIONS

        logger.info(f"Deploying Lottery to {self.chain.name} (chain id {self.chain.chain_id})...")

        if self.is_development:
            coordinator = self._deploy_mocks()
            subscription_id = coordinator.create_subscription(self.deployer)
            # the mock does not move real LINK, funding is bookkeeping only
            coordinator.fund_subscription(subscription_id, self.fund_amount)
        else:
            network_config.require("vrf_coordinator", "subscription_id")
            coordinator = self._resolve_coordinator(network_config)
            subscription_id = network_config.subscription_id

        network_config.require("entrance_fee", "gas_lane", "callback_gas_limit", "interval")
        args = [
            coordinator.address,
            network_config.entrance_fee,
            network_config.gas_lane,
            subscription_id,
            network_config.callback_gas_limit,
            network_config.interval,
        ]

        lottery = Lottery.deploy(self.chain, self.deployer, coordinator, *args[1:])
        self.chain.mine()

        if self.is_development:
            # without this the mock rejects the lottery's requests
            coordinator.add_consumer(subscription_id, lottery.address, sender=self.deployer)

        deployment = Deployment(
            network=self.chain.name,
            chain_id=self.chain.chain_id,
            deployer=self.deployer,
            lottery_address=lottery.address,
            vrf_coordinator=coordinator.address,
            subscription_id=int(subscription_id),
            args=args,
            wait_confirmations=wait_confirmations,
            block_number=self.chain.clock.block_number,
            deployment_time=self.chain.block_timestamp(),
            lottery=lottery,
            coordinator=coordinator,
        )
        logger.info(f"Lottery deployed successfully at: {lottery.address}")

        if output:
            save_deployment_info(deployment, output)
        return deployment

    def _deploy_mocks(self) -> VRFCoordinatorV2Mock:
        logger.info("Local network detected! Deploying mocks...")
        return VRFCoordinatorV2Mock.deploy(self.chain, self.deployer)

    def _resolve_coordinator(self, network_config: NetworkConfig) -> RandomnessOracle:
        address = network_config.vrf_coordinator
        if not self.chain.has_code(address):
            raise DeploymentConfigError(f"no VRF coordinator deployed at {address} on {self.chain.name}")
        coordinator = self.chain.get_contract(address)
        exists = getattr(coordinator, "subscription_exists", None)
        if exists is not None and not exists(network_config.subscription_id):
            raise DeploymentConfigError(
                f"subscription {network_config.subscription_id} does not exist on coordinator {address}"
            )
        return coordinator


def save_deployment_info(deployment: Deployment, output: Union[str, Path]) -> Path:
    """Save deployment information for future reference"""
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(deployment.to_dict(), f, indent=2)
    logger.info(f"Deployment info saved to: {path}")
    return path


def deploy_all(chain: LocalChain, config: Dict[str, Any], update_front_end: Optional[bool] = None) -> Deployment:
    """Run the deploy step, then the front-end export step when it is enabled."""
    output = get_config_value(config, "deploy.output") or None
    deployment = LotteryDeployer(chain).deploy(output=output)

    if update_front_end is None:
        update_front_end = as_bool(get_config_value(config, "frontend.update", False))
    if update_front_end:
        FrontEndExporter.from_config(config).update(deployment.lottery_address, chain.chain_id)
    return deployment
