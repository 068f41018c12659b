"""Local development chain: block clock, wei ledger, accounts and contract registry.

This stands in for the node the deploy scripts talk to. It only models what
the lottery relies on: the current block timestamp, native balances and a
place to look contracts up by address. Gas, signing and consensus are not
modelled.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import RLock
from typing import Any, Dict, List, Optional, Set

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from vrf_lottery.blockchain.errors import ContractRevert, InsufficientFunds
from vrf_lottery.blockchain.events import ContractEvent, EventBus, LogEntry
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_ACCOUNT_COUNT = 20
DEFAULT_ACCOUNT_BALANCE = Web3.to_wei(10_000, "ether")


class BlockClock:
    """Block number and timestamp, advanced explicitly like evm_increaseTime/evm_mine."""

    def __init__(self, genesis_timestamp: Optional[int] = None) -> None:
        self.block_number = 0
        self.timestamp = int(genesis_timestamp if genesis_timestamp is not None else time.time())
        self._pending_increase = 0

    def now(self) -> int:
        return self.timestamp

    def increase_time(self, seconds: int) -> int:
        """Shift the timestamp of the next mined block forward by ``seconds``."""
        if seconds < 0:
            raise ValueError("cannot move time backwards")
        self._pending_increase += int(seconds)
        return self._pending_increase

    def mine(self) -> int:
        """Mine one block; timestamps never go backwards and grow by at least one second."""
        self.block_number += 1
        self.timestamp += max(self._pending_increase, 1)
        self._pending_increase = 0
        return self.block_number


class Ledger:
    """Native-currency balances in wei."""

    def __init__(self) -> None:
        self._balances: Dict[str, int] = {}
        self._rejecting: Set[str] = set()

    @staticmethod
    def _key(address: str) -> str:
        return Web3.to_checksum_address(address)

    def balance_of(self, address: str) -> int:
        return self._balances.get(self._key(address), 0)

    def credit(self, address: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        key = self._key(address)
        self._balances[key] = self._balances.get(key, 0) + amount

    def set_rejects_payments(self, address: str, rejects: bool = True) -> None:
        """Mark an address as unable to receive funds (e.g. a contract without a receive hook)."""
        key = self._key(address)
        if rejects:
            self._rejecting.add(key)
        else:
            self._rejecting.discard(key)

    def accepts_payments(self, address: str) -> bool:
        return self._key(address) not in self._rejecting

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Move ``amount`` wei; returns False if the recipient refuses it.

        Mirrors a low-level ``call{value: amount}("")``: the caller decides
        what a refusal means. Insufficient sender funds always raise.
        """
        if amount < 0:
            raise ValueError("amount must be non-negative")
        src, dst = self._key(sender), self._key(recipient)
        balance = self._balances.get(src, 0)
        if balance < amount:
            raise InsufficientFunds(src, balance, amount)
        if not self.accepts_payments(dst):
            return False
        self._balances[src] = balance - amount
        self._balances[dst] = self._balances.get(dst, 0) + amount
        return True


@dataclass
class ChainInfo:
    name: str
    chain_id: int


class LocalChain:
    """In-process chain used for local deployments, tests and simulations."""

    def __init__(
        self,
        name: str = "hardhat",
        chain_id: int = 31337,
        *,
        genesis_timestamp: Optional[int] = None,
        account_count: int = DEFAULT_ACCOUNT_COUNT,
        account_balance: int = DEFAULT_ACCOUNT_BALANCE,
        event_capacity: int = 1000,
    ) -> None:
        self.info = ChainInfo(name=name, chain_id=chain_id)
        self.clock = BlockClock(genesis_timestamp)
        self.ledger = Ledger()
        self.events = EventBus(capacity=event_capacity)
        # serializes state-changing calls the way a node orders transactions
        self.lock = RLock()
        self._contracts: Dict[str, Any] = {}
        self._nonces: Dict[str, int] = {}

        self.accounts: List[LocalAccount] = [self._derive_account(i) for i in range(account_count)]
        for account in self.accounts:
            self.ledger.credit(account.address, account_balance)

        logger.info(
            "Local chain %s (chain id %s) started with %d funded accounts",
            name, chain_id, len(self.accounts),
        )

    @property
    def name(self) -> str:
        return self.info.name

    @property
    def chain_id(self) -> int:
        return self.info.chain_id

    @staticmethod
    def _derive_account(index: int) -> LocalAccount:
        # Deterministic keys so addresses are stable between runs
        key = Web3.keccak(text=f"vrf-lottery local account {index}")
        return Account.from_key(key)

    # ------------------------------------------------------------------
    # Time helpers
    # ------------------------------------------------------------------
    def block_timestamp(self) -> int:
        return self.clock.now()

    def increase_time(self, seconds: int) -> None:
        self.clock.increase_time(seconds)

    def mine(self) -> int:
        return self.clock.mine()

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------
    def next_contract_address(self, deployer: str) -> str:
        """Reserve the address the next contract deployed by ``deployer`` will get."""
        deployer = Web3.to_checksum_address(deployer)
        nonce = self._nonces.get(deployer, 0)
        self._nonces[deployer] = nonce + 1
        digest = Web3.solidity_keccak(["address", "uint256"], [deployer, nonce])
        return Web3.to_checksum_address(digest[12:])

    def register_contract(self, address: str, contract: Any) -> None:
        address = Web3.to_checksum_address(address)
        if address in self._contracts:
            raise ValueError(f"address {address} already holds a contract")
        self._contracts[address] = contract
        logger.debug("Registered %s at %s", type(contract).__name__, address)

    def get_contract(self, address: str) -> Any:
        try:
            return self._contracts[Web3.to_checksum_address(address)]
        except KeyError:
            raise ContractRevert(f"no contract at {address}") from None

    def has_code(self, address: str) -> bool:
        return Web3.to_checksum_address(address) in self._contracts

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def emit(self, event: ContractEvent, address: str) -> LogEntry:
        entry = LogEntry(
            event=event,
            address=address,
            block_number=self.clock.block_number,
            timestamp=self.clock.now(),
        )
        self.events.publish(entry)
        return entry

    def get_balance(self, address: str) -> int:
        return self.ledger.balance_of(address)
