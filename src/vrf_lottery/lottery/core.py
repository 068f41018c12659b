"""
Lottery core - entry accounting, upkeep and winner selection.

The lottery owns exactly one :class:`Round`. Players enter while it is OPEN;
once the interval has elapsed with at least one paid entry, upkeep moves it
to CALCULATING and asks the randomness oracle for a word. The oracle's
fulfillment picks ``players[word % len(players)]``, pays out the whole
balance and re-opens the same round object for the next cycle.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from web3 import Web3

from vrf_lottery.blockchain.chain import LocalChain
from vrf_lottery.blockchain.errors import ContractRevert, InvalidRandomWords, NonexistentRequest
from vrf_lottery.blockchain.vrf import RandomnessOracle, RandomWordsRequest, VRFConsumerBase
from vrf_lottery.lottery.errors import (
    LotteryNotOpen,
    SendMoreToEnterLottery,
    TransferFailed,
    UpkeepNotNeeded,
)
from vrf_lottery.lottery.models import (
    LotteryConfig,
    LotteryEnter,
    LotteryState,
    RandomnessRequest,
    RequestedLotteryWinner,
    Round,
    WinnerPicked,
)
from vrf_lottery.utils.common import format_ether, shorten_eth_address
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)


class Lottery(VRFConsumerBase):
    """Raffle state machine driven by upkeep calls and oracle fulfillments."""

    def __init__(
        self,
        chain: LocalChain,
        address: str,
        vrf_coordinator: RandomnessOracle,
        entrance_fee: int,
        gas_lane: str,
        subscription_id: int,
        callback_gas_limit: int,
        interval: int,
    ) -> None:
        super().__init__(vrf_coordinator)
        self._chain = chain
        self.address = Web3.to_checksum_address(address)
        self.config = LotteryConfig(
            entrance_fee=int(entrance_fee),
            interval=int(interval),
            gas_lane=gas_lane,
            subscription_id=int(subscription_id),
            callback_gas_limit=int(callback_gas_limit),
        )
        self._round = Round(last_timestamp=chain.block_timestamp())
        self._requests: Dict[int, RandomnessRequest] = {}

    @classmethod
    def deploy(
        cls,
        chain: LocalChain,
        deployer: str,
        vrf_coordinator: RandomnessOracle,
        entrance_fee: int,
        gas_lane: str,
        subscription_id: int,
        callback_gas_limit: int,
        interval: int,
    ) -> "Lottery":
        address = chain.next_contract_address(deployer)
        lottery = cls(
            chain,
            address,
            vrf_coordinator,
            entrance_fee,
            gas_lane,
            subscription_id,
            callback_gas_limit,
            interval,
        )
        chain.register_contract(address, lottery)
        logger.info(
            "Deployed Lottery at %s (fee=%s, interval=%ss)",
            address, format_ether(lottery.config.entrance_fee), lottery.config.interval,
        )
        return lottery

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def enter_lottery(self, sender: str, value: int) -> None:
        """Pay ``value`` wei from ``sender`` to join the current round."""
        with self._chain.lock:
            if value < self.config.entrance_fee:
                logger.debug("Rejected entry from %s: sent %s < %s", sender, value, self.config.entrance_fee)
                raise SendMoreToEnterLottery(value, self.config.entrance_fee)
            if self._round.state != LotteryState.OPEN:
                logger.debug("Rejected entry from %s: lottery is %s", sender, self._round.state.name)
                raise LotteryNotOpen()

            player = Web3.to_checksum_address(sender)
            if not self._chain.ledger.transfer(player, self.address, value):
                raise ContractRevert(f"{self.address} refused payment")
            self._round.players.append(player)
            self._chain.emit(LotteryEnter(player), self.address)

        logger.info("Player %s entered round %s", shorten_eth_address(player), self._round.round_number)

    def check_upkeep(self, check_data: bytes = b"") -> Tuple[bool, bytes]:
        """Whether a winner should be requested now. Read-only."""
        is_open = self._round.state == LotteryState.OPEN
        time_passed = (self._chain.block_timestamp() - self._round.last_timestamp) >= self.config.interval
        has_players = len(self._round.players) > 0
        has_balance = self.get_balance() > 0
        upkeep_needed = is_open and time_passed and has_players and has_balance
        return upkeep_needed, b""

    def perform_upkeep(self, perform_data: bytes = b"") -> int:
        """Close entry and request a random word; returns the request id."""
        with self._chain.lock:
            upkeep_needed, _ = self.check_upkeep(b"")
            if not upkeep_needed:
                raise UpkeepNotNeeded(self.get_balance(), len(self._round.players), self._round.state)

            request = RandomWordsRequest(
                key_hash=self.config.gas_lane,
                sub_id=self.config.subscription_id,
                request_confirmations=self.config.request_confirmations,
                callback_gas_limit=self.config.callback_gas_limit,
                num_words=self.config.num_words,
                sender=self.address,
            )
            self._round.state = LotteryState.CALCULATING
            try:
                request_id = self._vrf_coordinator.request_random_words(request)
            except Exception:
                self._round.state = LotteryState.OPEN
                raise

            self._round.pending_request_id = request_id
            self._requests[request_id] = RandomnessRequest(
                request_id=request_id,
                round_number=self._round.round_number,
                num_players=len(self._round.players),
                balance=self.get_balance(),
                requested_at=self._chain.block_timestamp(),
            )
            self._chain.emit(RequestedLotteryWinner(request_id), self.address)

        logger.info("Requested winner for round %s (request id %s)", self._round.round_number, request_id)
        return request_id

    def fulfill_random_words(self, request_id: int, random_words: Sequence[int]) -> None:
        """Pick and pay the winner for ``request_id``, then re-open the round.

        Either everything happens or nothing does: if the payout is refused
        the round is restored exactly and :class:`TransferFailed` is raised.
        """
        with self._chain.lock:
            request = self._requests.get(request_id)
            if request is None or request_id != self._round.pending_request_id:
                raise NonexistentRequest(request_id)
            if not random_words:
                raise InvalidRandomWords("no random words delivered")

            players = self._round.players
            winner_index = int(random_words[0]) % len(players)
            winner = players[winner_index]
            prize = self.get_balance()
            saved = self._round.snapshot()

            # bookkeeping first so the payout cannot be claimed twice
            del self._requests[request_id]
            self._round.recent_winner = winner
            self._round.players.clear()
            self._round.state = LotteryState.OPEN
            self._round.last_timestamp = max(self._chain.block_timestamp(), saved.last_timestamp)
            self._round.pending_request_id = None
            self._round.round_number += 1

            if not self._chain.ledger.transfer(self.address, winner, prize):
                self._round.restore(saved)
                self._requests[request_id] = request
                logger.warning("Payout of %s to %s failed", format_ether(prize), winner)
                raise TransferFailed(winner, prize)

            self._chain.emit(WinnerPicked(winner), self.address)

        logger.info(
            "Round %s winner %s (index %s of %s) received %s",
            saved.round_number, shorten_eth_address(winner), winner_index, len(saved.players), format_ether(prize),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_entrance_fee(self) -> int:
        return self.config.entrance_fee

    def get_interval(self) -> int:
        return self.config.interval

    def get_lottery_state(self) -> LotteryState:
        return self._round.state

    def get_number_of_players(self) -> int:
        return len(self._round.players)

    def get_player(self, index: int) -> str:
        if index < 0:
            raise IndexError("player index out of range")
        return self._round.players[index]

    def get_players(self) -> List[str]:
        return list(self._round.players)

    def get_recent_winner(self) -> Optional[str]:
        return self._round.recent_winner

    def get_last_timestamp(self) -> int:
        return self._round.last_timestamp

    def get_block_timestamp(self) -> int:
        return self._chain.block_timestamp()

    def get_request_confirmations(self) -> int:
        return self.config.request_confirmations

    def get_num_words(self) -> int:
        return self.config.num_words

    def get_balance(self) -> int:
        return self._chain.ledger.balance_of(self.address)

    def get_subscription_id(self) -> int:
        return self.config.subscription_id

    def get_gas_lane(self) -> str:
        return self.config.gas_lane

    def get_callback_gas_limit(self) -> int:
        return self.config.callback_gas_limit

    def get_vrf_coordinator(self) -> str:
        return self._vrf_coordinator.address

    def get_pending_request_id(self) -> Optional[int]:
        return self._round.pending_request_id

    def get_pending_request(self, request_id: int) -> Optional[RandomnessRequest]:
        return self._requests.get(request_id)

    def get_round_number(self) -> int:
        return self._round.round_number

    @property
    def round(self) -> Round:
        """The live round object; its identity never changes."""
        return self._round
