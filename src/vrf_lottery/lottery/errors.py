"""Errors raised by the lottery when a call is rejected."""

from __future__ import annotations

from vrf_lottery.blockchain.errors import ContractRevert
from vrf_lottery.lottery.models import LotteryState


class SendMoreToEnterLottery(ContractRevert):
    def __init__(self, sent: int, required: int) -> None:
        self.sent = sent
        self.required = required
        super().__init__("Lottery__SendMoreToEnterLottery")


class LotteryNotOpen(ContractRevert):
    def __init__(self) -> None:
        super().__init__("Lottery__LotteryNotOpen")


class UpkeepNotNeeded(ContractRevert):
    def __init__(self, balance: int, num_players: int, lottery_state: LotteryState) -> None:
        self.balance = balance
        self.num_players = num_players
        self.lottery_state = LotteryState(lottery_state)
        super().__init__(
            f"Lottery__UpkeepNotNeeded({balance}, {num_players}, {int(self.lottery_state)})"
        )


class TransferFailed(ContractRevert):
    def __init__(self, winner: str, amount: int) -> None:
        self.winner = winner
        self.amount = amount
        super().__init__("Lottery__TransferFailed")
