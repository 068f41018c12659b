"""
Per-network deployment parameters.

Keyed by chain id. Local development chains get a coordinator mock and a
fresh subscription at deploy time, so their entries carry no coordinator
address or usable subscription id.
"""

from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from web3 import Web3

from vrf_lottery.blockchain.errors import DeploymentConfigError
from vrf_lottery.utils.common import parse_ether

GAS_LANE_30_GWEI = "0x474e34a077df58807dbe9c96d3c009b23b3c6d0cce433e59bbf5b34f823bc56c"

DEVELOPMENT_CHAINS: Tuple[str, ...] = ("hardhat", "localhost")
VERIFICATION_BLOCK_CONFIRMATIONS = 6


class NetworkConfig(BaseModel):
    """Deployment parameters for one network. Fee in wei, interval in seconds."""

    model_config = ConfigDict(frozen=True)

    name: str
    entrance_fee: Optional[int] = Field(default=None, gt=0)
    gas_lane: Optional[str] = None
    subscription_id: Optional[int] = Field(default=None, ge=0)
    callback_gas_limit: Optional[int] = Field(default=None, gt=0)
    interval: Optional[int] = Field(default=None, gt=0)
    vrf_coordinator: Optional[str] = None

    @field_validator("gas_lane")
    @classmethod
    def _check_gas_lane(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        body = value[2:] if value.startswith("0x") else value
        if len(body) != 64:
            raise ValueError("gas lane must be a 32-byte hex key hash")
        int(body, 16)
        return "0x" + body.lower()

    @field_validator("vrf_coordinator")
    @classmethod
    def _check_coordinator(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not Web3.is_address(value):
            raise ValueError(f"invalid coordinator address {value}")
        return Web3.to_checksum_address(value)

    @property
    def is_development(self) -> bool:
        return self.name in DEVELOPMENT_CHAINS

    def require(self, *fields: str) -> None:
        """Raise DeploymentConfigError naming every listed field that is unset."""
        missing = [name for name in fields if getattr(self, name) is None]
        if missing:
            raise DeploymentConfigError(
                f"network '{self.name}' is missing required config: {', '.join(missing)}"
            )


NETWORK_CONFIG: Dict[int, NetworkConfig] = {
    31337: NetworkConfig(
        name="hardhat",
        entrance_fee=parse_ether("0.1"),
        gas_lane=GAS_LANE_30_GWEI,
        subscription_id=588,
        callback_gas_limit=500_000,
        interval=30,
    ),
    11155111: NetworkConfig(
        name="sepolia",
        vrf_coordinator="0x8103B0A8A00be2DDC778e6e7eaa21791Cd364625",
        entrance_fee=parse_ether("0.1"),
        gas_lane=GAS_LANE_30_GWEI,
        subscription_id=6623,
        callback_gas_limit=5_000_000,
        interval=180,
    ),
    1: NetworkConfig(
        name="mainnet",
        interval=30,
    ),
}


def get_network_config(chain_id: int) -> NetworkConfig:
    try:
        return NETWORK_CONFIG[int(chain_id)]
    except KeyError:
        raise DeploymentConfigError(f"no network config for chain id {chain_id}") from None


def find_chain_id(network_name: str) -> int:
    """Chain id for a network name; ``localhost`` shares the hardhat entry."""
    if network_name == "localhost":
        network_name = "hardhat"
    for chain_id, config in NETWORK_CONFIG.items():
        if config.name == network_name:
            return chain_id
    raise DeploymentConfigError(f"unknown network '{network_name}'")
