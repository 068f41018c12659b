"""In-memory event log and listener registry for the local contracts."""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ContractEvent:
    """Base class for typed event records emitted by contracts."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def args(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LogEntry:
    """An emitted event together with the emitting address and block context."""

    event: ContractEvent
    address: str
    block_number: int
    timestamp: int

    @property
    def name(self) -> str:
        return self.event.name

    @property
    def args(self) -> Dict[str, Any]:
        return self.event.args()


Listener = Callable[[LogEntry], None]


class EventBus:
    """Volatile event log plus publish/subscribe for external watchers."""

    def __init__(self, *, capacity: int = 1000) -> None:
        self._lock = Lock()
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._capacity = capacity
        self._logs: deque[LogEntry] = deque(maxlen=capacity)

    # ------------------------------------------------------------------
    # Listener management
    # ------------------------------------------------------------------
    def add_listener(self, event_name: str, callback: Listener) -> None:
        """Register ``callback`` for ``event_name``; ``"*"`` receives everything."""
        with self._lock:
            self._listeners[event_name].append(callback)
        logger.debug("[EventBus] Adding listener for event_name=%s, callback=%s", event_name, callback)

    def remove_listener(self, event_name: str, callback: Listener) -> None:
        with self._lock:
            callbacks = self._listeners.get(event_name, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def once(self, event_name: str, callback: Listener) -> None:
        """Register a listener that is removed after its first delivery."""

        def _wrapper(entry: LogEntry) -> None:
            self.remove_listener(event_name, _wrapper)
            callback(entry)

        self.add_listener(event_name, _wrapper)

    def listener_count(self, event_name: str) -> int:
        with self._lock:
            return len(self._listeners.get(event_name, []))

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------
    def publish(self, entry: LogEntry) -> None:
        with self._lock:
            self._logs.append(entry)
            listeners = list(self._listeners.get(entry.name, [])) + list(self._listeners.get("*", []))

        logger.debug("[EventBus] %s from %s args=%s", entry.name, entry.address, entry.args)
        for callback in listeners:
            try:
                callback(entry)
            except Exception as exc:
                # a broken watcher must not undo the emitting transaction
                logger.error("Listener for %s failed: %s", entry.name, exc)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def get_logs(
        self,
        name: Optional[str] = None,
        *,
        address: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[LogEntry]:
        with self._lock:
            items = list(self._logs)
        if name is not None:
            items = [item for item in items if item.name == name]
        if address is not None:
            items = [item for item in items if item.address.lower() == address.lower()]
        if limit is not None:
            return items[-limit:] if limit > 0 else []
        return items

    def set_capacity(self, capacity: int) -> None:
        """Resize the log capacity (max entries)."""
        with self._lock:
            if capacity == self._capacity:
                return
            old_items = list(self._logs)
            self._logs = deque(old_items[-capacity:], maxlen=capacity)
            self._capacity = capacity
        logger.info("[EventBus] log capacity set to %s", capacity)

    def clear(self) -> None:
        with self._lock:
            self._logs.clear()
