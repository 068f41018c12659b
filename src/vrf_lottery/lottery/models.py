"""Core data models for the lottery state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional

from vrf_lottery.blockchain.events import ContractEvent

REQUEST_CONFIRMATIONS = 3
NUM_WORDS = 1


class LotteryState(IntEnum):
    """Round states, numbered as the contract reports them."""

    OPEN = 0
    CALCULATING = 1


@dataclass(frozen=True)
class LotteryConfig:
    """Constructor parameters; fixed for the lifetime of a deployment.

    ``entrance_fee`` is in wei and ``interval`` in seconds.
    """

    entrance_fee: int
    interval: int
    gas_lane: str
    subscription_id: int
    callback_gas_limit: int
    request_confirmations: int = REQUEST_CONFIRMATIONS
    num_words: int = NUM_WORDS

    def __post_init__(self) -> None:
        if self.entrance_fee <= 0:
            raise ValueError("entrance_fee must be positive")
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        if self.callback_gas_limit <= 0:
            raise ValueError("callback_gas_limit must be positive")


@dataclass
class Round:
    """The single live round. Reset in place after every payout."""

    last_timestamp: int
    state: LotteryState = LotteryState.OPEN
    players: List[str] = field(default_factory=list)
    recent_winner: Optional[str] = None
    pending_request_id: Optional[int] = None
    round_number: int = 1

    def snapshot(self) -> "Round":
        return Round(
            last_timestamp=self.last_timestamp,
            state=self.state,
            players=list(self.players),
            recent_winner=self.recent_winner,
            pending_request_id=self.pending_request_id,
            round_number=self.round_number,
        )

    def restore(self, saved: "Round") -> None:
        """Copy ``saved`` back into this instance without replacing it."""
        self.last_timestamp = saved.last_timestamp
        self.state = saved.state
        self.players[:] = saved.players
        self.recent_winner = saved.recent_winner
        self.pending_request_id = saved.pending_request_id
        self.round_number = saved.round_number


@dataclass(frozen=True)
class RandomnessRequest:
    """Context captured when a winner is requested; consumed by one fulfillment."""

    request_id: int
    round_number: int
    num_players: int
    balance: int
    requested_at: int


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class LotteryEnter(ContractEvent):
    player: str


@dataclass(frozen=True)
class RequestedLotteryWinner(ContractEvent):
    request_id: int


@dataclass(frozen=True)
class WinnerPicked(ContractEvent):
    winner: str
