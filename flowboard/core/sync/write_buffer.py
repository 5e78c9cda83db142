"""
Write-coalescing buffer for Flowboard
Collapses bursts of parameter edits into one persistence write per node.

Each enqueue() merges the patch into the node's pending patch and restarts
that node's quiet-period timer. When the timer fires, the merged patch is
written once. The in-memory graph is updated by the caller immediately; only
the write to storage is deferred.
"""
import asyncio
import copy
import threading
from typing import Any, Callable, Dict, Mapping, Optional, Set, Tuple

from ..config import Config
from ..types import NodeID
from ...utils.logger import get_logger

logger = get_logger(__name__)

WriteFunc = Callable[[NodeID, Dict[str, Any]], Any]


def deep_merge(base: Dict[str, Any], patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge `patch` into `base` in place; nested dicts merge, everything else is replaced"""
    for key, value in patch.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)
    return base


class WriteCoalescingBuffer:
    """
    Debounced per-node write buffer

    Features:
    - Nested merge of consecutive patches for the same node
    - One timer per node, reset on every enqueue (loop.call_later)
    - Writes for one node are serialized; a flush waits for the write in flight
    - Explicit flush() for shutdown, tests and loop-less callers
    """

    def __init__(self, write_fn: WriteFunc, delay: Optional[float] = None):
        """
        Initialize buffer

        Args:
            write_fn: Called as write_fn(node_id, patch) with the merged patch
            delay: Quiet period in seconds (default: Config.WRITE_DEBOUNCE_SECONDS)
        """
        self.write_fn = write_fn
        self.delay = Config.WRITE_DEBOUNCE_SECONDS if delay is None else delay
        self._pending: Dict[NodeID, Dict[str, Any]] = {}
        self._timers: Dict[NodeID, Tuple[asyncio.AbstractEventLoop, asyncio.TimerHandle]] = {}
        self._write_locks: Dict[NodeID, threading.Lock] = {}
        self._in_flight: Set[NodeID] = set()
        self._lock = threading.Lock()
        self.writes = 0
        self.failures = 0

    def enqueue(self, node_id: NodeID, patch: Mapping[str, Any]):
        with self._lock:
            merged = self._pending.setdefault(node_id, {})
            deep_merge(merged, patch)
        self._schedule(node_id)

    def pending(self) -> Dict[NodeID, Dict[str, Any]]:
        """Copy of the patches not yet written"""
        with self._lock:
            return copy.deepcopy(self._pending)

    def has_pending(self, node_id: Optional[NodeID] = None) -> bool:
        with self._lock:
            if node_id is None:
                return bool(self._pending)
            return node_id in self._pending

    def in_flight(self, node_id: NodeID) -> bool:
        """True while a write for the node is running"""
        with self._lock:
            return node_id in self._in_flight

    def cancel(self, node_id: Optional[NodeID] = None):
        """Drop pending writes (for one node, or all) without writing them"""
        with self._lock:
            node_ids = [node_id] if node_id is not None else list(self._timers)
        for nid in node_ids:
            self._cancel_timer(nid)
        with self._lock:
            if node_id is None:
                self._pending.clear()
            else:
                self._pending.pop(node_id, None)

    def flush_node(self, node_id: NodeID) -> bool:
        """
        Write one node's pending patch now

        Blocks until any write already running for the node has finished, so
        patches reach storage in the order they were enqueued.

        Returns:
            True if a patch was written, False if there was nothing to write or the write failed
        """
        self._cancel_timer(node_id)
        with self._write_lock(node_id):
            with self._lock:
                patch = self._pending.pop(node_id, None)
                if patch:
                    self._in_flight.add(node_id)
            if not patch:
                return False
            try:
                self.write_fn(node_id, patch)
            except Exception as e:
                self.failures += 1
                logger.error(f"Failed to persist buffered update for node {node_id}: {e}")
                return False
            finally:
                with self._lock:
                    self._in_flight.discard(node_id)
        self.writes += 1
        logger.debug(f"Flushed buffered update for node {node_id}: {sorted(patch)}")
        return True

    def flush(self) -> int:
        """
        Write every pending patch now

        Returns:
            Number of patches written successfully
        """
        with self._lock:
            node_ids = list(self._pending)
        return sum(1 for node_id in node_ids if self.flush_node(node_id))

    async def aflush(self) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.flush)

    def _write_lock(self, node_id: NodeID) -> threading.Lock:
        with self._lock:
            lock = self._write_locks.get(node_id)
            if lock is None:
                lock = self._write_locks[node_id] = threading.Lock()
            return lock

    def _cancel_timer(self, node_id: NodeID):
        with self._lock:
            entry = self._timers.pop(node_id, None)
        if entry is None:
            return
        loop, timer = entry
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            timer.cancel()
        elif not loop.is_closed():
            # Timer handles belong to their loop's thread
            loop.call_soon_threadsafe(timer.cancel)

    def _schedule(self, node_id: NodeID):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop: writes wait for an explicit flush()
            return
        self._cancel_timer(node_id)
        timer = loop.call_later(self.delay, self._on_timer, loop, node_id)
        with self._lock:
            self._timers[node_id] = (loop, timer)

    def _on_timer(self, loop: asyncio.AbstractEventLoop, node_id: NodeID):
        with self._lock:
            self._timers.pop(node_id, None)
        loop.run_in_executor(None, self.flush_node, node_id)
