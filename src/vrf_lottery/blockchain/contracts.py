"""
Contract interface descriptors (JSON ABI) for the front end.
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from eth_utils import event_abi_to_log_topic, function_abi_to_4byte_selector

from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)


def _inputs(*pairs) -> List[Dict[str, Any]]:
    return [{"internalType": typ, "name": name, "type": typ} for name, typ in pairs]


def _view(name: str, output_type: str, inputs=()) -> Dict[str, Any]:
    return {
        "inputs": _inputs(*inputs),
        "name": name,
        "outputs": [{"internalType": output_type, "name": "", "type": output_type}],
        "stateMutability": "view",
        "type": "function",
    }


def _event(name: str, *pairs, indexed=()) -> Dict[str, Any]:
    inputs = _inputs(*pairs)
    for item in inputs:
        item["indexed"] = item["name"] in indexed
    return {"anonymous": False, "inputs": inputs, "name": name, "type": "event"}


LOTTERY_ABI: List[Dict[str, Any]] = [
    {
        "inputs": _inputs(
            ("vrfCoordinatorV2", "address"),
            ("entranceFee", "uint256"),
            ("gasLane", "bytes32"),
            ("subscriptionId", "uint64"),
            ("callbackGasLimit", "uint32"),
            ("interval", "uint256"),
        ),
        "stateMutability": "nonpayable",
        "type": "constructor",
    },
    {"inputs": _inputs(("have", "address"), ("want", "address")), "name": "OnlyCoordinatorCanFulfill", "type": "error"},
    {"inputs": [], "name": "Lottery__LotteryNotOpen", "type": "error"},
    {"inputs": [], "name": "Lottery__SendMoreToEnterLottery", "type": "error"},
    {"inputs": [], "name": "Lottery__TransferFailed", "type": "error"},
    {
        "inputs": _inputs(("currentBalance", "uint256"), ("numPlayers", "uint256"), ("lotteryState", "uint256")),
        "name": "Lottery__UpkeepNotNeeded",
        "type": "error",
    },
    _event("LotteryEnter", ("player", "address"), indexed=("player",)),
    _event("RequestedLotteryWinner", ("requestId", "uint256"), indexed=("requestId",)),
    _event("WinnerPicked", ("player", "address"), indexed=("player",)),
    {
        "inputs": _inputs(("", "bytes")),
        "name": "checkUpkeep",
        "outputs": _inputs(("upkeepNeeded", "bool"), ("", "bytes")),
        "stateMutability": "view",
        "type": "function",
    },
    {"inputs": [], "name": "enterLottery", "outputs": [], "stateMutability": "payable", "type": "function"},
    _view("getBlockTimeStamp", "uint256"),
    _view("getEntranceFee", "uint256"),
    _view("getInterval", "uint256"),
    _view("getLastTimeStamp", "uint256"),
    {
        "inputs": [],
        "name": "getLotteryState",
        "outputs": [{"internalType": "enum Lottery.LotteryState", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    _view("getNumWords", "uint256"),
    _view("getNumberOfPlayers", "uint256"),
    _view("getPlayer", "address", inputs=(("index", "uint256"),)),
    _view("getRecentWinner", "address"),
    _view("getRequestConfirmations", "uint256"),
    {
        "inputs": _inputs(("", "bytes")),
        "name": "performUpkeep",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": _inputs(("requestId", "uint256"), ("randomWords", "uint256[]")),
        "name": "rawFulfillRandomWords",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


def get_lottery_abi() -> List[Dict[str, Any]]:
    return copy.deepcopy(LOTTERY_ABI)


def format_interface(abi: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    """Return the ABI with event topics and function selectors filled in.

    Front ends can match raw logs and calls without hashing signatures themselves.
    """
    items = copy.deepcopy(abi if abi is not None else LOTTERY_ABI)
    for item in items:
        if item.get("type") == "event":
            item["topic"] = "0x" + event_abi_to_log_topic(item).hex()
        elif item.get("type") == "function":
            item["selector"] = "0x" + function_abi_to_4byte_selector(item).hex()
    return items


def event_topics(abi: Optional[List[Dict[str, Any]]] = None) -> Dict[str, str]:
    """Event name -> topic0 hex."""
    return {
        item["name"]: item["topic"]
        for item in format_interface(abi)
        if item.get("type") == "event"
    }


def load_abi(path: Path) -> List[Dict[str, Any]]:
    """Load an ABI file written by the exporter (or a raw artifact with an 'abi' key)."""
    with Path(path).open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if isinstance(data, dict):
        data = data.get("abi", [])
    logger.info("Loaded ABI with %d items from %s", len(data), path)
    return data
