"""Randomness oracle client: request/fulfill protocol plus a local coordinator.

A consumer submits a :class:`RandomWordsRequest` through
:meth:`RandomnessOracle.request_random_words` and gets a request id back
immediately. Some time later the oracle calls the consumer's
:meth:`VRFConsumerBase.raw_fulfill_random_words` with that id and the random
words. :class:`VRFCoordinatorV2Mock` plays the oracle on local chains; tests
and the responder decide when each fulfillment is delivered.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from web3 import Web3

from vrf_lottery.blockchain.chain import LocalChain
from vrf_lottery.blockchain.errors import (
    ContractRevert,
    InsufficientBalance,
    InvalidConsumer,
    InvalidRandomWords,
    InvalidSubscription,
    MustBeSubOwner,
    NonexistentRequest,
)
from vrf_lottery.blockchain.events import ContractEvent
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)

# Chainlink mock defaults used by the local deploy: 0.25 LINK premium, 1e9 LINK per gas
BASE_FEE = Web3.to_wei("0.25", "ether")
GAS_PRICE_LINK = 10**9

MAX_NUM_WORDS = 500


@dataclass(frozen=True)
class RandomWordsRequest:
    """Parameters of a randomness request, as passed to requestRandomWords."""

    key_hash: str
    sub_id: int
    request_confirmations: int
    callback_gas_limit: int
    num_words: int
    sender: str


class RandomnessOracle(ABC):
    """Anything that accepts randomness requests and later fulfills them."""

    address: str

    @abstractmethod
    def request_random_words(self, request: RandomWordsRequest) -> int:
        """Submit a request and return its id without waiting for the result."""


class OnlyCoordinatorCanFulfill(ContractRevert):
    def __init__(self, have: str, want: str) -> None:
        self.have = have
        self.want = want
        super().__init__(f"OnlyCoordinatorCanFulfill({have}, {want})")


class VRFConsumerBase(ABC):
    """Callback side of the protocol; only the configured coordinator may deliver."""

    def __init__(self, vrf_coordinator: RandomnessOracle) -> None:
        self._vrf_coordinator = vrf_coordinator

    def raw_fulfill_random_words(self, sender: str, request_id: int, random_words: Sequence[int]) -> None:
        want = self._vrf_coordinator.address
        if Web3.to_checksum_address(sender) != Web3.to_checksum_address(want):
            raise OnlyCoordinatorCanFulfill(sender, want)
        self.fulfill_random_words(request_id, random_words)

    @abstractmethod
    def fulfill_random_words(self, request_id: int, random_words: Sequence[int]) -> None:
        """Handle the random words for ``request_id``."""


# ----------------------------------------------------------------------
# Coordinator events
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class SubscriptionCreated(ContractEvent):
    sub_id: int
    owner: str


@dataclass(frozen=True)
class SubscriptionFunded(ContractEvent):
    sub_id: int
    old_balance: int
    new_balance: int


@dataclass(frozen=True)
class SubscriptionCanceled(ContractEvent):
    sub_id: int
    to: str
    amount: int


@dataclass(frozen=True)
class ConsumerAdded(ContractEvent):
    sub_id: int
    consumer: str


@dataclass(frozen=True)
class ConsumerRemoved(ContractEvent):
    sub_id: int
    consumer: str


@dataclass(frozen=True)
class RandomWordsRequested(ContractEvent):
    key_hash: str
    request_id: int
    pre_seed: int
    sub_id: int
    minimum_request_confirmations: int
    callback_gas_limit: int
    num_words: int
    sender: str


@dataclass(frozen=True)
class RandomWordsFulfilled(ContractEvent):
    request_id: int
    output_seed: int
    payment: int
    success: bool


@dataclass
class Subscription:
    owner: str
    balance: int = 0
    consumers: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class _PendingRequest:
    sub_id: int
    callback_gas_limit: int
    num_words: int


class VRFCoordinatorV2Mock(RandomnessOracle):
    """Local randomness coordinator with subscription bookkeeping.

    Fulfillment is never automatic: call :meth:`fulfill_random_words` (or let
    the responder do it) to deliver the words for a pending request.
    """

    def __init__(
        self,
        chain: LocalChain,
        address: str,
        base_fee: int = BASE_FEE,
        gas_price_link: int = GAS_PRICE_LINK,
    ) -> None:
        self._chain = chain
        self.address = Web3.to_checksum_address(address)
        self.base_fee = base_fee
        self.gas_price_link = gas_price_link
        self._current_sub_id = 0
        self._next_request_id = 1
        self._next_pre_seed = 100
        self._subscriptions: Dict[int, Subscription] = {}
        self._requests: Dict[int, _PendingRequest] = {}

    @classmethod
    def deploy(
        cls,
        chain: LocalChain,
        deployer: str,
        base_fee: int = BASE_FEE,
        gas_price_link: int = GAS_PRICE_LINK,
    ) -> "VRFCoordinatorV2Mock":
        address = chain.next_contract_address(deployer)
        coordinator = cls(chain, address, base_fee, gas_price_link)
        chain.register_contract(address, coordinator)
        logger.info("Deployed VRFCoordinatorV2Mock at %s", address)
        return coordinator

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def _subscription(self, sub_id: int) -> Subscription:
        sub = self._subscriptions.get(int(sub_id))
        if sub is None:
            raise InvalidSubscription()
        return sub

    def create_subscription(self, owner: str) -> int:
        with self._chain.lock:
            self._current_sub_id += 1
            sub_id = self._current_sub_id
            self._subscriptions[sub_id] = Subscription(owner=Web3.to_checksum_address(owner))
            self._chain.emit(SubscriptionCreated(sub_id, Web3.to_checksum_address(owner)), self.address)
        logger.info("Created VRF subscription %s for %s", sub_id, owner)
        return sub_id

    def fund_subscription(self, sub_id: int, amount: int) -> None:
        with self._chain.lock:
            sub = self._subscription(sub_id)
            old_balance = sub.balance
            sub.balance += int(amount)
            self._chain.emit(SubscriptionFunded(int(sub_id), old_balance, sub.balance), self.address)

    def get_subscription(self, sub_id: int) -> Subscription:
        sub = self._subscription(sub_id)
        return Subscription(owner=sub.owner, balance=sub.balance, consumers=list(sub.consumers))

    def subscription_exists(self, sub_id: int) -> bool:
        return int(sub_id) in self._subscriptions

    def add_consumer(self, sub_id: int, consumer: str, sender: Optional[str] = None) -> None:
        with self._chain.lock:
            sub = self._subscription(sub_id)
            if sender is not None and Web3.to_checksum_address(sender) != sub.owner:
                raise MustBeSubOwner(sub.owner)
            consumer = Web3.to_checksum_address(consumer)
            if consumer in sub.consumers:
                return
            sub.consumers.append(consumer)
            self._chain.emit(ConsumerAdded(int(sub_id), consumer), self.address)
        logger.info("Added consumer %s to subscription %s", consumer, sub_id)

    def remove_consumer(self, sub_id: int, consumer: str, sender: Optional[str] = None) -> None:
        with self._chain.lock:
            sub = self._subscription(sub_id)
            if sender is not None and Web3.to_checksum_address(sender) != sub.owner:
                raise MustBeSubOwner(sub.owner)
            consumer = Web3.to_checksum_address(consumer)
            if consumer not in sub.consumers:
                raise InvalidConsumer(int(sub_id), consumer)
            sub.consumers.remove(consumer)
            self._chain.emit(ConsumerRemoved(int(sub_id), consumer), self.address)

    def consumer_is_added(self, sub_id: int, consumer: str) -> bool:
        return Web3.to_checksum_address(consumer) in self._subscription(sub_id).consumers

    def cancel_subscription(self, sub_id: int, to: str, sender: Optional[str] = None) -> int:
        with self._chain.lock:
            sub = self._subscription(sub_id)
            if sender is not None and Web3.to_checksum_address(sender) != sub.owner:
                raise MustBeSubOwner(sub.owner)
            del self._subscriptions[int(sub_id)]
            self._chain.emit(SubscriptionCanceled(int(sub_id), Web3.to_checksum_address(to), sub.balance), self.address)
        return sub.balance

    # ------------------------------------------------------------------
    # Request / fulfill
    # ------------------------------------------------------------------
    def request_random_words(self, request: RandomWordsRequest) -> int:
        with self._chain.lock:
            sub = self._subscription(request.sub_id)
            sender = Web3.to_checksum_address(request.sender)
            if sender not in sub.consumers:
                raise InvalidConsumer(request.sub_id, sender)
            if not 0 < request.num_words <= MAX_NUM_WORDS:
                raise InvalidRandomWords(f"numWords must be between 1 and {MAX_NUM_WORDS}")

            request_id = self._next_request_id
            pre_seed = self._next_pre_seed
            self._next_request_id += 1
            self._next_pre_seed += 1
            self._requests[request_id] = _PendingRequest(
                sub_id=int(request.sub_id),
                callback_gas_limit=int(request.callback_gas_limit),
                num_words=int(request.num_words),
            )
            self._chain.emit(
                RandomWordsRequested(
                    key_hash=request.key_hash,
                    request_id=request_id,
                    pre_seed=pre_seed,
                    sub_id=int(request.sub_id),
                    minimum_request_confirmations=request.request_confirmations,
                    callback_gas_limit=request.callback_gas_limit,
                    num_words=request.num_words,
                    sender=sender,
                ),
                self.address,
            )
        logger.info("Random words requested: id=%s sub=%s sender=%s", request_id, request.sub_id, sender)
        return request_id

    def pending_request_ids(self) -> Set[int]:
        return set(self._requests)

    @staticmethod
    def default_words(request_id: int, num_words: int) -> List[int]:
        """keccak256(abi.encode(requestId, i)) for each word index."""
        return [
            int.from_bytes(Web3.solidity_keccak(["uint256", "uint256"], [request_id, i]), "big")
            for i in range(num_words)
        ]

    def fulfill_random_words(self, request_id: int, consumer: str) -> bool:
        return self.fulfill_random_words_with_override(request_id, consumer, [])

    def fulfill_random_words_with_override(self, request_id: int, consumer: str, words: Sequence[int]) -> bool:
        """Deliver words for ``request_id`` to ``consumer``.

        Returns whether the consumer accepted them. The request is consumed
        either way; a consumer failure is reported through the
        ``RandomWordsFulfilled`` event rather than raised.
        """
        request_id = int(request_id)
        with self._chain.lock:
            pending = self._requests.get(request_id)
            if pending is None:
                raise NonexistentRequest(request_id)

            if not words:
                words = self.default_words(request_id, pending.num_words)
            elif len(words) != pending.num_words:
                raise InvalidRandomWords()

            sub = self._subscription(pending.sub_id)
            payment = self.base_fee
            if sub.balance < payment:
                raise InsufficientBalance()

            target = self._chain.get_contract(consumer)
            del self._requests[request_id]
            try:
                target.raw_fulfill_random_words(self.address, request_id, list(words))
                success = True
            except ContractRevert as exc:
                logger.warning("Consumer %s rejected fulfillment %s: %s", consumer, request_id, exc.reason)
                success = False
            except Exception:
                # not a revert: keep the request so it can be delivered again
                self._requests[request_id] = pending
                raise

            sub.balance -= payment
            self._chain.emit(RandomWordsFulfilled(request_id, request_id, payment, success), self.address)

        logger.info("Fulfilled request %s for %s (success=%s)", request_id, consumer, success)
        return success
