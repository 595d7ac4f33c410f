# statekit/persistence/manager.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Throttled persistence of machine state through a user-supplied adapter.

Adapter calls are fire-and-forget from the machine's point of view. Results
that are awaitables are run on the current asyncio loop when one is running,
otherwise on a private worker thread; ``concurrent.futures.Future`` results
are observed through their done callbacks. Either way, failures surface only
as diagnostics.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Hashable, Optional

from statekit.core.config import PersistenceOptions
from statekit.core.diagnostics import DiagnosticKind, DiagnosticReporter
from statekit.core.errors import PersistenceError
from statekit.persistence.serializer import SerializedState
from statekit.runtime.scheduler import Scheduler

logger = logging.getLogger(__name__)


async def _await(awaitable: Any) -> Any:
    return await awaitable


class PersistenceManager:
    """
    Serializes snapshots to an adapter, optionally debounced.

    With a ``throttle`` configured every save cancels the pending one and
    reschedules, so only the latest state of a quiet window is written. The
    pending save is guarded by a lock, since the debounce usually fires on a
    scheduler thread while the machine keeps saving on its own.
    """

    def __init__(
        self,
        options: PersistenceOptions,
        scheduler: Scheduler,
        reporter: DiagnosticReporter,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        :param options: Key, adapter and throttle interval.
        :param scheduler: Scheduler used for the debounce timer.
        :param reporter: Diagnostic channel for adapter failures.
        :param clock: Source of epoch seconds for snapshot timestamps.
        """
        self._key = options.key
        self._adapter = options.adapter
        self._throttle = options.throttle
        self._scheduler = scheduler
        self._reporter = reporter
        self._clock = clock
        self._pending_handle: Any = None
        self._pending_data: Optional[Dict[str, Any]] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._closed = False
        self._lock = threading.RLock()

    @property
    def key(self) -> str:
        return self._key

    @property
    def throttle(self) -> Optional[float]:
        return self._throttle

    @property
    def has_pending(self) -> bool:
        return self._pending_data is not None

    def save(self, value: Hashable, context: Any) -> None:
        """
        Persist the given state now, or after the throttle window if one is
        configured.
        """
        data = SerializedState.capture(value, context, now=self._clock()).to_dict()
        with self._lock:
            if self._closed:
                return
            if not self._throttle:
                self._write(data)
                return

            self._cancel_pending()
            self._pending_data = data
            self._pending_handle = self._scheduler.after(self._throttle, self.flush)

    def flush(self) -> bool:
        """
        Write the pending throttled save immediately.

        :return: True if there was a pending save.
        """
        with self._lock:
            data = self._pending_data
            self._cancel_pending()
            if data is None or self._closed:
                return False
            self._write(data)
            return True

    def _write(self, data: Dict[str, Any]) -> None:
        logger.debug("Saving state '%s' under key '%s'", data["value"], self._key)
        try:
            result = self._adapter.save(self._key, data)
        except Exception as e:
            self._report("save", e)
            return
        self._settle(result, "save")

    def load(self, on_loaded: Callable[[SerializedState], None]) -> None:
        """
        Ask the adapter for the last saved state and pass it to ``on_loaded``
        once available. A synchronous adapter completes before this returns; an
        asynchronous one completes whenever its result arrives. Nothing is
        delivered when the adapter has no saved state.
        """

        def deliver(data: Any) -> None:
            if data is None:
                logger.debug("No persisted state under key '%s'", self._key)
                return
            on_loaded(SerializedState.from_dict(data))

        try:
            result = self._adapter.load(self._key)
        except Exception as e:
            self._report("load", e)
            return
        self._settle(result, "load", deliver)

    def clear(self) -> None:
        """Drop any pending save and remove the stored state."""
        with self._lock:
            self._cancel_pending()
        try:
            result = self._adapter.remove(self._key)
        except Exception as e:
            self._report("remove", e)
            return
        self._settle(result, "remove")

    def close(self) -> None:
        """Cancel the pending save and release the worker thread, if any."""
        with self._lock:
            self._cancel_pending()
            self._closed = True
            if self._executor is not None:
                self._executor.shutdown(wait=False)
                self._executor = None

    def _cancel_pending(self) -> None:
        if self._pending_handle is not None:
            self._scheduler.cancel(self._pending_handle)
        self._pending_handle = None
        self._pending_data = None

    def _settle(self, result: Any, operation: str, on_success: Optional[Callable[[Any], None]] = None) -> None:
        if isinstance(result, Future) or asyncio.isfuture(result):
            future = result
        elif inspect.isawaitable(result):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                future = self._get_executor().submit(asyncio.run, _await(result))
            else:
                future = asyncio.ensure_future(result, loop=loop)
        else:
            if on_success is not None:
                self._finish(operation, on_success, result)
            return

        future.add_done_callback(lambda f: self._complete(f, operation, on_success))

    def _complete(self, future: Any, operation: str, on_success: Optional[Callable[[Any], None]]) -> None:
        if future.cancelled():
            logger.debug("Persistence %s for key '%s' was cancelled", operation, self._key)
            return
        error = future.exception()
        if error is not None:
            self._report(operation, error)
            return
        if on_success is not None and not self._closed:
            self._finish(operation, on_success, future.result())

    def _finish(self, operation: str, on_success: Callable[[Any], None], value: Any) -> None:
        try:
            on_success(value)
        except Exception as e:
            self._report(operation, e)

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="statekit-persistence")
            return self._executor

    def _report(self, operation: str, error: BaseException) -> None:
        wrapped = error if isinstance(error, PersistenceError) else PersistenceError(f"{operation} failed: {error}")
        self._reporter.report(
            DiagnosticKind.PERSISTENCE_FAILED,
            f"Persistence {operation} for key '{self._key}' failed: {error}",
            error=wrapped,
        )
