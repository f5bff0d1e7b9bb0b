"""Generic request batcher.

Callers enqueue small per-item requests; the batcher collects them until a
flush fires (debounce timer, queue size limit or an explicit ``flush()``),
sends one aggregate request and routes each part of the response back to
the future the caller is awaiting.

Subclasses provide the request-specific hooks:

- ``fingerprint_request`` / ``fingerprint_response``: stable keys that
  match a queued item to its future.
- ``prepare_request``: shape the flushed queue into one payload.
- ``submit_http_request``: send the payload.
- ``handle_http_success`` / ``handle_http_error``: demultiplex the outcome.
- ``did_item_fail`` / ``handle_item_success`` / ``handle_item_failure``:
  settle a single item.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ..utils import BatchError
from .scheduler import LoopScheduler, Scheduler, TimerHandle


logger = logging.getLogger(__name__)


class Batcher:
    """Coalesces concurrent item requests into aggregate requests."""

    namespace = "Batcher"

    def __init__(
        self,
        wait: float = 0.1,
        max_calls: int = 100,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.wait = wait
        self.max_calls = max_calls
        self.scheduler = scheduler or LoopScheduler()
        self._queue: List[Any] = []
        self._deferreds: Dict[str, asyncio.Future] = {}
        self._timer: Optional[TimerHandle] = None
        self._flushes: Set[asyncio.Task] = set()

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def outstanding(self) -> int:
        return sum(1 for future in self._deferreds.values() if not future.done())

    def enqueue(self, item: Any) -> asyncio.Future:
        """
        Register an item for the next batch.

        Items whose fingerprint is already queued or in flight share the
        existing future instead of being requested again.

        Args:
            item: Request payload for a single item.

        Returns:
            Future settled with the item's result.
        """
        fingerprint = self.fingerprint_request(item)
        existing = self._deferreds.get(fingerprint)
        if existing is not None and not existing.done():
            return existing

        future = asyncio.get_running_loop().create_future()
        self._deferreds[fingerprint] = future
        self._queue.append(item)

        if len(self._queue) >= self.max_calls:
            self._start_flush()
        elif self._timer is None:
            self._timer = self.scheduler.call_later(self.wait, self._start_flush)
        return future

    async def request(self, item: Any) -> Any:
        """Enqueue an item and wait for its result."""
        return await asyncio.shield(self.enqueue(item))

    def _take_queue(self) -> List[Any]:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        queue, self._queue = self._queue, []
        return queue

    def _start_flush(self) -> None:
        queue = self._take_queue()
        if not queue:
            return
        task = asyncio.ensure_future(self._flush_batch(queue))
        self._flushes.add(task)
        task.add_done_callback(self._flush_done)

    def _flush_done(self, task: asyncio.Task) -> None:
        self._flushes.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("%s: flush failed: %s", self.namespace, error)

    async def flush(self) -> None:
        """Send everything queued so far as one batch."""
        queue = self._take_queue()
        if queue:
            await self._flush_batch(queue)

    async def _flush_batch(self, queue: List[Any]) -> None:
        batch: List[Tuple[str, Optional[asyncio.Future]]] = []
        for item in queue:
            fingerprint = self.fingerprint_request(item)
            batch.append((fingerprint, self._deferreds.get(fingerprint)))

        try:
            try:
                payload = self.prepare_request(queue)
            except Exception as exc:
                logger.error("%s: failed to prepare request: %s", self.namespace, exc)
                self._reject_batch(batch, exc)
                return

            try:
                response = await self.submit_http_request(payload)
            except Exception as exc:
                logger.warning("%s: batch request failed: %s", self.namespace, exc)
                await self.handle_http_error(exc, payload)
            else:
                await self.handle_http_success(response, payload)
        finally:
            self._reject_batch(
                batch, BatchError(f"{self.namespace}: no result delivered for item")
            )

    async def drain(self) -> None:
        """Flush the queue and wait for every in-flight batch."""
        await self.flush()
        if self._flushes:
            await asyncio.gather(*list(self._flushes), return_exceptions=True)

    def _reject_batch(
        self, batch: Iterable[Tuple[str, Optional[asyncio.Future]]], error: BaseException
    ) -> None:
        for fingerprint, future in batch:
            if future is None:
                continue
            if not future.done():
                future.set_exception(error)
            if self._deferreds.get(fingerprint) is future:
                del self._deferreds[fingerprint]

    def _pop_deferred(self, fingerprint: str) -> Optional[asyncio.Future]:
        future = self._deferreds.pop(fingerprint, None)
        if future is None or future.done():
            logger.debug("%s: no pending request for %s", self.namespace, fingerprint)
            return None
        return future

    def get_deferred_for_request(self, item: Any) -> Optional[asyncio.Future]:
        return self._pop_deferred(self.fingerprint_request(item))

    def get_deferred_for_response(self, item: Any) -> Optional[asyncio.Future]:
        return self._pop_deferred(self.fingerprint_response(item))

    def resolve_request(self, item: Any, value: Any) -> None:
        future = self.get_deferred_for_response(item)
        if future is not None:
            future.set_result(value)

    def reject_request(self, item: Any, error: BaseException) -> None:
        future = self.get_deferred_for_request(item)
        if future is not None:
            future.set_exception(error)

    async def accept_item(self, item: Any) -> None:
        """Settle one item of a successful batch."""
        if self.did_item_fail(item):
            self.handle_item_failure(item)
        else:
            self.handle_item_success(item)

    async def accept_items(self, items: Iterable[Any]) -> None:
        """Settle every item; one failing item never blocks the others."""
        results = await asyncio.gather(
            *(self.accept_item(item) for item in items), return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("%s: failed to settle item: %s", self.namespace, result)

    def fingerprint_request(self, item: Any) -> str:
        raise NotImplementedError

    def fingerprint_response(self, item: Any) -> str:
        return self.fingerprint_request(item)

    def prepare_request(self, queue: List[Any]) -> Any:
        return list(queue)

    async def submit_http_request(self, payload: Any) -> Any:
        raise NotImplementedError

    async def handle_http_success(self, response: Any, payload: Any) -> None:
        raise NotImplementedError

    async def handle_http_error(self, error: BaseException, payload: Any) -> None:
        raise NotImplementedError

    def did_item_fail(self, item: Any) -> bool:
        return False

    def handle_item_success(self, item: Any) -> None:
        raise NotImplementedError

    def handle_item_failure(self, item: Any) -> None:
        raise NotImplementedError
