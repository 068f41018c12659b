"""
Front-end artifact export.

Keeps two JSON files in the front-end project up to date: a map of chain id
to every lottery address deployed on it, and the lottery interface
descriptor.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from web3 import Web3

from vrf_lottery.blockchain.contracts import format_interface
from vrf_lottery.utils.config import get_config_value
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONTRACT_ADDRESSES_FILE = "../lottery-front-end/constants/contractAddresses.json"
DEFAULT_ABI_FILE = "../lottery-front-end/constants/abi.json"


class FrontEndExporter:
    """Writes the lottery address book and ABI for the web front end."""

    def __init__(
        self,
        contract_addresses_file: Union[str, Path] = DEFAULT_CONTRACT_ADDRESSES_FILE,
        abi_file: Union[str, Path] = DEFAULT_ABI_FILE,
        abi: Optional[List[Dict[str, Any]]] = None,
    ):
        self.contract_addresses_file = Path(contract_addresses_file)
        self.abi_file = Path(abi_file)
        self.abi = abi

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "FrontEndExporter":
        return cls(
            contract_addresses_file=get_config_value(
                config, "frontend.contract_addresses_file", DEFAULT_CONTRACT_ADDRESSES_FILE
            ),
            abi_file=get_config_value(config, "frontend.abi_file", DEFAULT_ABI_FILE),
        )

    def update(self, lottery_address: str, chain_id: int) -> None:
        logger.info("Writing to front end...")
        self.update_contract_addresses(lottery_address, chain_id)
        self.update_abi()
        logger.info("Front end written!")

    def update_abi(self) -> Path:
        self.abi_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.abi_file, "w", encoding="utf-8") as f:
            json.dump(format_interface(self.abi), f)
        logger.debug("ABI written to %s", self.abi_file)
        return self.abi_file

    def update_contract_addresses(self, lottery_address: str, chain_id: int) -> Dict[str, List[str]]:
        """Record ``lottery_address`` under ``chain_id`` unless it is already listed."""
        contract_addresses = self.read_contract_addresses()
        address = Web3.to_checksum_address(lottery_address)
        key = str(chain_id)

        known = contract_addresses.setdefault(key, [])
        if address.lower() not in (item.lower() for item in known):
            known.append(address)
            logger.info("Recorded %s for chain %s", address, key)
        else:
            logger.info("Address %s already recorded for chain %s", address, key)

        self.contract_addresses_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.contract_addresses_file, "w", encoding="utf-8") as f:
            json.dump(contract_addresses, f)
        return contract_addresses

    def read_contract_addresses(self) -> Dict[str, List[str]]:
        if not self.contract_addresses_file.exists():
            return {}
        text = self.contract_addresses_file.read_text(encoding="utf-8").strip()
        if not text:
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {self.contract_addresses_file}: {e}")
        if not isinstance(data, dict):
            raise ValueError(f"{self.contract_addresses_file} must hold a JSON object")
        for chain_id, addresses in data.items():
            if not isinstance(addresses, list):
                raise ValueError(f"{self.contract_addresses_file}: entry for chain {chain_id} must be a list")
        return data
