"""Lottery state machine and its automation."""

from vrf_lottery.lottery.core import Lottery
from vrf_lottery.lottery.models import LotteryState

__all__ = ["Lottery", "LotteryState"]
