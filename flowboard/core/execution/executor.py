"""
Node executor for Flowboard
Drives a node through idle -> running -> completed | error.

Provider calls are synchronous (HTTP); they run in the loop's default
executor so several nodes can be outstanding at once. Asynchronous jobs are
followed by one poll task per node, held in a PollHandle so deleting or
re-executing the node stops it deterministically.
"""
import asyncio
import copy
import functools
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from .adapters import AdapterContext, select_adapter
from .resolver import ExecutionInputResolver
from .results import classify_output, normalize_output
from ..config import Config
from ..errors import ExecutionPreconditionError
from ..graph.models import Node
from ..graph.node_registry import get_node_definition
from ..graph.store import GraphStore
from ..types import GenerationProviderProtocol, JobID, NodeID, ProviderResponse
from ...utils.logger import get_logger

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]

ERROR_STATES = ("error", "failed")
RUNNING_STATES = ("running", "pending", "queued", "processing")


@dataclass
class PollHandle:
    """Cancellable poll task for one running node"""
    node_id: NodeID
    job_id: Optional[JobID]
    run_id: int
    task: Optional["asyncio.Task"] = None
    cancelled: bool = False
    polls: int = 0
    delays: list = field(default_factory=list)

    def cancel(self):
        self.cancelled = True
        if self.task is not None and not self.task.done():
            self.task.cancel()


class NodeExecutor:
    """
    Executes nodes against a generation provider

    Features:
    - Dispatch through the node definition's provider binding
    - Synchronous completion and polled asynchronous completion
    - Best-effort persistence of results (never fails the run)
    - Poll cancellation on node delete and on re-execute
    """

    def __init__(
        self,
        store: GraphStore,
        provider: GenerationProviderProtocol,
        persistence: Optional[Any] = None,
        resolver: Optional[ExecutionInputResolver] = None,
        *,
        poll_initial_delay: Optional[float] = None,
        poll_interval: Optional[float] = None,
        poll_retry_interval: Optional[float] = None,
        default_model: Optional[str] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Initialize executor

        Args:
            store: Graph store holding the nodes
            provider: Generation provider (uniform execute, get_status, invoke)
            persistence: Optional object with update_node(node_id, patch) -> bool
            resolver: Input resolver (default: ExecutionInputResolver())
            poll_initial_delay: Seconds before the first poll (default: Config.POLL_INITIAL_DELAY)
            poll_interval: Seconds between polls (default: Config.POLL_INTERVAL)
            poll_retry_interval: Seconds after a failed poll (default: Config.POLL_RETRY_INTERVAL)
            default_model: Model for uniform calls when the node names none
            sleep: Awaitable sleep, injectable for tests
        """
        self.store = store
        self.provider = provider
        self.persistence = persistence
        self.resolver = resolver or ExecutionInputResolver()
        self.poll_initial_delay = Config.POLL_INITIAL_DELAY if poll_initial_delay is None else poll_initial_delay
        self.poll_interval = Config.POLL_INTERVAL if poll_interval is None else poll_interval
        self.poll_retry_interval = Config.POLL_RETRY_INTERVAL if poll_retry_interval is None else poll_retry_interval
        self.default_model = default_model or Config.DEFAULT_MODEL
        self._sleep = sleep
        self._polls: Dict[NodeID, PollHandle] = {}
        self._runs: Dict[NodeID, int] = {}
        self._run_ids = count(1)
        self._unsubscribe = store.on_node_removed(self._on_node_removed)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_polling(self, node_id: NodeID) -> bool:
        handle = self._polls.get(node_id)
        return handle is not None and not handle.cancelled

    def poll_handle(self, node_id: NodeID) -> Optional[PollHandle]:
        return self._polls.get(node_id)

    async def execute(self, node_id: NodeID) -> Optional[Node]:
        """
        Execute a node

        Args:
            node_id: Node to run (any state; a new run re-arms it)

        Returns:
            The node after the provider answered (running, completed or error),
            or None if the node was deleted while the call was in flight

        Raises:
            NodeNotFoundError: if the node does not exist
        """
        node = self.store.get_node(node_id)
        self.cancel_polling(node_id)
        run_id = next(self._run_ids)
        self._runs[node_id] = run_id

        definition = get_node_definition(node.node_type)
        self.store.mark_running(node_id)
        snapshot = self.store.snapshot()
        inputs = self.resolver.resolve(snapshot, node_id)
        parameters = copy.deepcopy(snapshot.nodes[node_id].parameters)
        logger.info(f"Executing {node.node_type} node {node_id} with inputs {sorted(inputs)}")

        try:
            adapter = select_adapter(definition)
            if adapter is None:
                # Input/logic/output nodes carry their value in parameters
                response = ProviderResponse(status="completed", output=None)
            else:
                context = AdapterContext(
                    node=snapshot.nodes[node_id],
                    inputs=inputs,
                    parameters=parameters,
                    provider=self.provider,
                    default_model=self.default_model,
                )
                response = await self._run_sync(adapter, context)
        except ExecutionPreconditionError as e:
            logger.warning(f"Node {node_id} cannot run: {e}")
            return await self._fail(node_id, run_id, str(e))
        except Exception as e:
            logger.error(f"Provider call failed for node {node_id}: {e}")
            return await self._fail(node_id, run_id, str(e) or type(e).__name__)

        return await self._handle_response(node_id, run_id, response, parameters)

    def cancel_polling(self, node_id: NodeID) -> bool:
        """Stop the poll task for a node, if any. Returns True if one was running."""
        handle = self._polls.pop(node_id, None)
        if handle is None:
            return False
        handle.cancel()
        logger.debug(f"Cancelled polling for node {node_id}")
        return True

    async def wait(self, node_id: NodeID):
        """Wait until the node's poll task (if any) finishes"""
        handle = self._polls.get(node_id)
        if handle is None or handle.task is None:
            return
        try:
            await handle.task
        except asyncio.CancelledError:
            pass

    async def shutdown(self):
        """Cancel every outstanding poll and wait for the tasks to unwind"""
        handles = list(self._polls.values())
        self._polls.clear()
        for handle in handles:
            handle.cancel()
        for handle in handles:
            if handle.task is None:
                continue
            try:
                await handle.task
            except asyncio.CancelledError:
                pass
        self._unsubscribe()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_node_removed(self, node_id: NodeID):
        self.cancel_polling(node_id)
        self._runs.pop(node_id, None)

    def _is_current(self, node_id: NodeID, run_id: int) -> bool:
        return self._runs.get(node_id) == run_id and self.store.has_node(node_id)

    async def _run_sync(self, func: Callable, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    async def _handle_response(
        self,
        node_id: NodeID,
        run_id: int,
        response: Optional[Mapping[str, Any]],
        parameters: Dict[str, Any],
    ) -> Optional[Node]:
        if not self._is_current(node_id, run_id):
            logger.debug(f"Dropping stale provider response for node {node_id}")
            return None
        response = response if isinstance(response, Mapping) else {}
        status = response.get("status") or "running"

        if response.get("success") is False or status in ERROR_STATES:
            return await self._fail(node_id, run_id, response.get("error") or "Failed to execute node")

        if status == "completed":
            output = normalize_output(response.get("output"))
            result = classify_output(output) if output else classify_output(parameters)
            return await self._complete(node_id, run_id, output, result)

        self._start_polling(node_id, response.get("jobId"), run_id)
        return self.store.get_node(node_id)

    async def _complete(
        self,
        node_id: NodeID,
        run_id: int,
        output: Optional[Dict[str, Any]],
        result: Optional[Dict[str, Any]] = None,
    ) -> Optional[Node]:
        if not self._is_current(node_id, run_id):
            return None
        output = normalize_output(output)
        if result is None:
            result = classify_output(output)
        node = self.store.mark_completed(node_id, output, result)
        logger.info(f"Node {node_id} completed ({(result or {}).get('type', 'no output')})")
        await self._persist(node_id, {
            "status": node.status.value,
            "cachedOutput": copy.deepcopy(output),
            "lastExecution": node.last_execution.to_dict(),
        })
        return node

    async def _fail(self, node_id: NodeID, run_id: int, message: str) -> Optional[Node]:
        if not self._is_current(node_id, run_id):
            return None
        node = self.store.mark_error(node_id, message)
        logger.error(f"Node {node_id} failed: {message}")
        await self._persist(node_id, {
            "status": node.status.value,
            "lastExecution": node.last_execution.to_dict(),
        })
        return node

    async def _persist(self, node_id: NodeID, patch: Dict[str, Any]):
        if self.persistence is None:
            return
        try:
            await self._run_sync(self.persistence.update_node, node_id, patch)
        except Exception as e:
            # In-memory state already reflects the run
            logger.warning(f"Failed to persist execution state for node {node_id}: {e}")

    def _start_polling(self, node_id: NodeID, job_id: Optional[JobID], run_id: int):
        handle = PollHandle(node_id=node_id, job_id=job_id, run_id=run_id)
        handle.task = asyncio.get_running_loop().create_task(self._poll(handle))
        self._polls[node_id] = handle
        logger.info(f"Node {node_id} running as job {job_id}; polling every {self.poll_interval}s")

    def _should_stop(self, handle: PollHandle) -> bool:
        return handle.cancelled or not self._is_current(handle.node_id, handle.run_id)

    async def _poll(self, handle: PollHandle):
        delay = self.poll_initial_delay
        try:
            while True:
                handle.delays.append(delay)
                await self._sleep(delay)
                if self._should_stop(handle):
                    return
                try:
                    payload = await self._run_sync(self.provider.get_status, handle.node_id)
                except Exception as e:
                    logger.warning(
                        f"Status poll failed for node {handle.node_id}: {e}; "
                        f"retrying in {self.poll_retry_interval}s"
                    )
                    delay = self.poll_retry_interval
                    continue
                handle.polls += 1
                if self._should_stop(handle):
                    return

                payload = payload if isinstance(payload, Mapping) else {}
                state = payload.get("status")
                if state == "completed":
                    await self._complete(handle.node_id, handle.run_id, payload.get("cachedOutput"))
                    return
                if state in ERROR_STATES:
                    await self._fail(handle.node_id, handle.run_id, payload.get("error") or "Execution failed")
                    return
                if payload and state not in RUNNING_STATES:
                    await self._fail(handle.node_id, handle.run_id, f"Unexpected job status: {state}")
                    return
                delay = self.poll_interval
        except asyncio.CancelledError:
            logger.debug(f"Poll task for node {handle.node_id} cancelled")
            raise
        finally:
            if self._polls.get(handle.node_id) is handle:
                del self._polls[handle.node_id]
