from __future__ import annotations

import asyncio
from typing import Callable, Optional, TypeVar

from evaltrack.application.ports.storage_port import CommitDeadline, StoragePort, StorageSession
from evaltrack.domain.errors import BackendError
from evaltrack.utils.logging_config import LogFiles, Logger

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 15.0


def _consume_result(task: "asyncio.Future") -> None:
    # A refused commit finishes after the caller gave up; nobody awaits it.
    if not task.cancelled():
        task.exception()


class StoreBase:
    """
    Shared plumbing for the entity stores: runs one unit of work in a worker
    thread, bounded by a per-operation timeout.

    The worker thread cannot be interrupted, so the unit of work is handed a
    CommitDeadline and refuses to commit once the caller has given up. A call
    that reports a timeout has written nothing.
    """

    def __init__(self, storage: StoragePort, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        self._storage = storage
        self._timeout = float(timeout_seconds)

    @property
    def storage(self) -> StoragePort:
        return self._storage

    def _run_sync(
        self, work: Callable[[StorageSession], T], deadline: Optional[CommitDeadline] = None
    ) -> T:
        with self._storage.unit_of_work(deadline=deadline) as session:
            return work(session)

    async def _run(self, work: Callable[[StorageSession], T], *, op: str) -> T:
        deadline = CommitDeadline(self._timeout)
        task = asyncio.ensure_future(asyncio.to_thread(self._run_sync, work, deadline))
        try:
            return await self._settle(
                asyncio.wait_for(asyncio.shield(task), timeout=self._timeout), op
            )
        except asyncio.TimeoutError as exc:
            if deadline.cancel():
                task.add_done_callback(_consume_result)
                Logger.error(
                    f"{type(self).__name__}.{op} timed out after {self._timeout:.1f}s "
                    f"({self._storage.backend_name})",
                    file=LogFiles.ERROR,
                )
                raise BackendError(f"{op} timed out after {self._timeout:.1f}s") from exc
        except asyncio.CancelledError:
            if deadline.cancel():
                task.add_done_callback(_consume_result)
            raise
        # The commit began before the timeout fired; report what it did.
        return await self._settle(task, op)

    async def _settle(self, pending, op: str):
        try:
            return await pending
        except BackendError as exc:
            Logger.error(f"{type(self).__name__}.{op} failed: {exc}", file=LogFiles.ERROR)
            raise
