"""StoragePort: the single data-access port shared by every entity store."""

from __future__ import annotations

import threading
import time
from typing import ContextManager, List, Optional, Protocol, runtime_checkable

from evaltrack.domain.annotation import Annotation
from evaltrack.domain.errors import BackendError
from evaltrack.domain.planned_fix import PlannedFix
from evaltrack.domain.run import Run


class CommitDeadline:
    """
    Commit gate shared by a store call and the worker thread running its unit
    of work.

    The worker calls `begin_commit()` right before publishing its writes. The
    caller calls `cancel()` once its timeout fires. Exactly one of them wins:
    either the commit is refused and the unit of work rolls back, or the
    commit is already under way and the caller waits for its outcome.
    """

    def __init__(self, seconds: float):
        self._expires_at = time.monotonic() + seconds
        self._lock = threading.Lock()
        self._cancelled = False
        self._committing = False

    def begin_commit(self) -> None:
        with self._lock:
            if self._cancelled or time.monotonic() >= self._expires_at:
                self._cancelled = True
                raise BackendError("deadline passed before commit; nothing was written")
            self._committing = True

    def cancel(self) -> bool:
        """Refuse any later commit. False when the commit has already begun."""
        with self._lock:
            if self._committing:
                return False
            self._cancelled = True
            return True

@runtime_checkable
class StorageSession(Protocol):
    """
    Collection primitives available inside one unit of work.

    Implementations perform no business rules (no id generation, no cascades
    beyond what a primitive names); those live in the entity stores.
    """

    def list_runs(self) -> List[Run]: ...

    def get_run(self, run_id: str) -> Optional[Run]: ...

    def put_run(self, run: Run) -> None: ...

    def remove_run(self, run_id: str) -> bool: ...

    def list_annotations(
        self,
        *,
        run_id: Optional[str] = None,
        prompt_number: Optional[int] = None,
        planned_fix_id: Optional[str] = None,
    ) -> List[Annotation]: ...

    def get_annotation(self, annotation_id: str) -> Optional[Annotation]: ...

    def put_annotation(self, annotation: Annotation) -> None: ...

    def remove_annotation(self, annotation_id: str) -> bool: ...

    def remove_annotations(self, *, run_id: str, prompt_number: Optional[int] = None) -> int: ...

    def clear_planned_fix(self, fix_id: str) -> int: ...

    def list_planned_fixes(self) -> List[PlannedFix]: ...

    def get_planned_fix(self, fix_id: str) -> Optional[PlannedFix]: ...

    def put_planned_fix(self, fix: PlannedFix) -> None: ...

    def remove_planned_fix(self, fix_id: str) -> bool: ...


@runtime_checkable
class StoragePort(Protocol):
    """Backend chosen once at startup: relational database or local JSON files."""

    @property
    def backend_name(self) -> str: ...

    @property
    def is_relational(self) -> bool: ...

    def unit_of_work(
        self, deadline: Optional[CommitDeadline] = None
    ) -> ContextManager[StorageSession]:
        """
        Commit when the block exits cleanly, roll back when it raises.

        With a deadline, `deadline.begin_commit()` runs after the block and
        before anything is made durable; if it raises, nothing is written.
        """
        ...

    def close(self) -> None: ...
