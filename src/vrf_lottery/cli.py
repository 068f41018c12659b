"""
Command line entry point.

    vrf-lottery deploy [--network hardhat] [--update-front-end] [--out deployment.json]
    vrf-lottery simulate [--players 4] [--rounds 1]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from vrf_lottery.blockchain.chain import LocalChain
from vrf_lottery.blockchain.deploy import Deployment, deploy_all
from vrf_lottery.blockchain.errors import DeploymentConfigError
from vrf_lottery.blockchain.events import LogEntry
from vrf_lottery.lottery.operator import UpkeepOperator, VRFResponder
from vrf_lottery.networks import find_chain_id
from vrf_lottery.utils.common import format_ether
from vrf_lottery.utils.config import get_config_value, load_config
from vrf_lottery.utils.logger import get_logger, set_level

logger = get_logger(__name__)

DEFAULT_ROUND_TIMEOUT = 30.0


def _print_console(deployment: Deployment) -> None:
    lottery = deployment.lottery
    print("=" * 60)
    print(f"✅ Lottery deployed on {deployment.network} (chain id {deployment.chain_id})")
    print(f"📄 Lottery:         {deployment.lottery_address}")
    print(f"🎲 VRF coordinator: {deployment.vrf_coordinator}")
    print(f"🆔 Subscription:    {deployment.subscription_id}")
    print(f"💰 Entrance fee:    {format_ether(lottery.get_entrance_fee())}")
    print(f"⏱️  lastTime={lottery.get_last_timestamp()} interval={lottery.get_interval()} "
          f"currentTime={lottery.get_block_timestamp()}")
    print("=" * 60)


def _local_chain(network: str) -> LocalChain:
    return LocalChain(name=network, chain_id=find_chain_id(network))


def cmd_deploy(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    if args.out:
        config.setdefault("deploy", {})["output"] = args.out
    try:
        chain = _local_chain(args.network)
        deployment = deploy_all(chain, config, update_front_end=True if args.update_front_end else None)
    except DeploymentConfigError as e:
        print(f"❌ Deployment aborted: {e}")
        return 1
    _print_console(deployment)
    return 0


async def run_simulation(
    chain: LocalChain,
    deployment: Deployment,
    players: int,
    rounds: int,
    config: Dict[str, Any],
    round_timeout: float = DEFAULT_ROUND_TIMEOUT,
) -> List[str]:
    """Drive ``rounds`` full rounds through the keeper and oracle loops; returns the winners.

    Raises ``asyncio.TimeoutError`` if a round has no winner after ``round_timeout`` seconds.
    """
    lottery = deployment.lottery
    fee = lottery.get_entrance_fee()
    poll = float(get_config_value(config, "keeper.poll_interval_seconds", 1.0))
    winners: List[str] = []

    def _record(entry: LogEntry) -> None:
        winners.append(entry.args["winner"])

    async def _wait_for_winners(count: int) -> None:
        while len(winners) < count:
            await asyncio.sleep(min(poll, 0.05))

    chain.events.add_listener("WinnerPicked", _record)
    operator = UpkeepOperator(lottery, config)
    responder = VRFResponder(chain, deployment.coordinator, config)
    await responder.start()
    await operator.start()
    try:
        for round_index in range(rounds):
            for account in chain.accounts[1:players + 1]:
                lottery.enter_lottery(account.address, fee)
            chain.increase_time(lottery.get_interval() + 1)
            chain.mine()
            await asyncio.wait_for(_wait_for_winners(round_index + 1), timeout=round_timeout)
    finally:
        await operator.stop()
        await responder.stop()
        chain.events.remove_listener("WinnerPicked", _record)
    return winners


def cmd_simulate(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    chain = _local_chain("hardhat")
    if not 0 < args.players < len(chain.accounts):
        print(f"❌ --players must be between 1 and {len(chain.accounts) - 1}")
        return 1
    config.setdefault("keeper", {})["poll_interval_seconds"] = args.poll_interval

    deployment = deploy_all(chain, config, update_front_end=False)
    _print_console(deployment)
    try:
        winners = asyncio.run(
            run_simulation(chain, deployment, args.players, args.rounds, config, round_timeout=args.round_timeout)
        )
    except asyncio.TimeoutError:
        print(f"❌ Simulation stalled: no winner within {args.round_timeout}s")
        return 1

    for number, winner in enumerate(winners, start=1):
        print(f"🏆 Round {number}: winner {winner} balance {format_ether(chain.get_balance(winner))}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="vrf-lottery",
        description="Local deployment and simulation tooling for the VRF lottery.",
    )
    p.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    p.add_argument("--config", default=None, help="Path to a JSON config file.")

    sub = p.add_subparsers(dest="cmd", required=True)

    d = sub.add_parser("deploy", help="Deploy the lottery on a fresh local chain.")
    d.add_argument("--network", default=None, help="Network name (default from config, else hardhat).")
    d.add_argument("--update-front-end", action="store_true", help="Export address and ABI for the front end.")
    d.add_argument("--out", default=None, help="Write the deployment record to this JSON file.")
    d.set_defaults(func=cmd_deploy)

    s = sub.add_parser("simulate", help="Run full rounds with the keeper and oracle loops.")
    s.add_argument("--players", type=int, default=4, help="Entrants per round.")
    s.add_argument("--rounds", type=int, default=1, help="Number of rounds to run.")
    s.add_argument("--poll-interval", type=float, default=0.05, help="Keeper poll interval in seconds.")
    s.add_argument("--round-timeout", type=float, default=DEFAULT_ROUND_TIMEOUT, help="Seconds to wait for each winner.")
    s.set_defaults(func=cmd_simulate)

    return p


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        set_level(logging.DEBUG)
    config = load_config(args.config)
    if getattr(args, "network", None) is None and args.cmd == "deploy":
        args.network = get_config_value(config, "network.name", "hardhat")
    raise SystemExit(args.func(args, config))
