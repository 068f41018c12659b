"""
Automation for the lottery.

UpkeepOperator plays the keeper network: it polls check_upkeep and calls
perform_upkeep when a round is due. VRFResponder plays the oracle node: it
watches for RandomWordsRequested events and delivers each fulfillment later,
as its own task, so requests and fulfillments stay decoupled.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional, Sequence, Set

from vrf_lottery.blockchain.chain import LocalChain
from vrf_lottery.blockchain.errors import ContractRevert
from vrf_lottery.blockchain.events import LogEntry
from vrf_lottery.blockchain.vrf import VRFCoordinatorV2Mock
from vrf_lottery.lottery.core import Lottery
from vrf_lottery.utils.config import get_config_value
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)


class UpkeepOperator:
    """Periodically checks upkeep and triggers winner requests."""

    def __init__(self, lottery: Lottery, config: Optional[Dict[str, Any]] = None) -> None:
        self._lottery = lottery
        self._config = config or {}
        self._poll_interval = float(get_config_value(self._config, "keeper.poll_interval_seconds", 1.0))
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.upkeeps_performed = 0
        self.last_request_id: Optional[int] = None

    async def start(self) -> None:
        if self._running:
            logger.warning("Upkeep operator already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Upkeep operator started (poll every %ss)", self._poll_interval)

    async def stop(self) -> None:
        if not self._running:
            return
        logger.info("Stopping upkeep operator")
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Upkeep operator stopped")

    def get_status(self) -> Dict[str, Any]:
        return {
            "status": "running" if self._running else "stopped",
            "lottery_state": self._lottery.get_lottery_state().name,
            "players": self._lottery.get_number_of_players(),
            "upkeeps_performed": self.upkeeps_performed,
            "last_request_id": self.last_request_id,
        }

    def run_once(self) -> Optional[int]:
        """One check/perform cycle. Returns the request id if upkeep was performed."""
        upkeep_needed, perform_data = self._lottery.check_upkeep(b"")
        if not upkeep_needed:
            return None
        try:
            request_id = self._lottery.perform_upkeep(perform_data)
        except ContractRevert as exc:
            # another keeper may have won the race since check_upkeep
            logger.error("perform_upkeep failed: %s", exc.reason)
            return None
        self.upkeeps_performed += 1
        self.last_request_id = request_id
        return request_id

    async def _loop(self) -> None:
        while self._running:
            try:
                self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Error in upkeep loop: %s", exc)
            await asyncio.sleep(self._poll_interval)


WordsProvider = Callable[[int], Sequence[int]]


class VRFResponder:
    """Delivers coordinator fulfillments asynchronously after a delay."""

    def __init__(
        self,
        chain: LocalChain,
        coordinator: VRFCoordinatorV2Mock,
        config: Optional[Dict[str, Any]] = None,
        words_provider: Optional[WordsProvider] = None,
    ) -> None:
        self._chain = chain
        self._coordinator = coordinator
        self._config = config or {}
        self._delay = float(get_config_value(self._config, "oracle.fulfillment_delay_seconds", 0.0))
        self._words_provider = words_provider
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Task] = set()
        self._running = False
        self.fulfilled = 0
        self.failed = 0

    async def start(self) -> None:
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._chain.events.add_listener("RandomWordsRequested", self._on_request)
        self._running = True
        logger.info("VRF responder registered for RandomWordsRequested events")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._chain.events.remove_listener("RandomWordsRequested", self._on_request)
        # flush _schedule callbacks already queued by call_soon_threadsafe
        await asyncio.sleep(0)
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        logger.info("VRF responder stopped")

    async def drain(self) -> None:
        """Wait until every scheduled fulfillment has been delivered."""
        # let callbacks queued by call_soon_threadsafe create their tasks
        await asyncio.sleep(0)
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            await asyncio.sleep(0)

    def _on_request(self, entry: LogEntry) -> None:
        if not self._running or self._loop is None:
            return
        if entry.address != self._coordinator.address:
            return
        args = entry.args
        self._loop.call_soon_threadsafe(self._schedule, args["request_id"], args["sender"])

    def _schedule(self, request_id: int, consumer: str) -> None:
        if not self._running:
            logger.debug("Responder stopped, dropping request %s", request_id)
            return
        task = asyncio.ensure_future(self._fulfill(request_id, consumer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fulfill(self, request_id: int, consumer: str) -> None:
        if self._delay > 0:
            await asyncio.sleep(self._delay)
        try:
            if self._words_provider is not None:
                words = list(self._words_provider(request_id))
                success = self._coordinator.fulfill_random_words_with_override(request_id, consumer, words)
            else:
                success = self._coordinator.fulfill_random_words(request_id, consumer)
        except ContractRevert as exc:
            self.failed += 1
            logger.error("Fulfillment of request %s failed: %s", request_id, exc.reason)
            return

        if success:
            self.fulfilled += 1
        else:
            self.failed += 1
            logger.error("Consumer %s rejected fulfillment of request %s", consumer, request_id)
