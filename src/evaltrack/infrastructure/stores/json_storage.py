"""
Local JSON-file StoragePort adapter.

Three documents under the data directory:

- runs.json             {"runs": [...]}
- annotations.json      {"annotations": [...]}
- planned-fixes.json    {"plannedFixes": [...]}

A missing file reads as an empty collection. A unit of work loads what it
touches, and commit rewrites only the collections it changed: every changed
document is staged to a temp file first, then each is swapped in with
os.replace. A process-wide lock serializes units of work.

The three replaces are not one atomic step. A failure between them can leave
a run whose annotations are already gone, never annotations without a run.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from evaltrack.application.ports.storage_port import CommitDeadline
from evaltrack.domain.annotation import Annotation
from evaltrack.domain.errors import BackendError, ValidationError
from evaltrack.domain.planned_fix import PlannedFix
from evaltrack.domain.run import Run

_COLLECTIONS: Dict[str, tuple] = {
    "runs": ("runs.json", "runs"),
    "annotations": ("annotations.json", "annotations"),
    "fixes": ("planned-fixes.json", "plannedFixes"),
}
_PUBLISH_ORDER = ("annotations", "runs", "fixes")


class JsonFileStorage:
    backend_name = "json"
    is_relational = False

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)
        self._lock = threading.Lock()

    def path_for(self, collection: str) -> Path:
        filename, _ = _COLLECTIONS[collection]
        return self.data_dir / filename

    @contextmanager
    def unit_of_work(self, deadline: Optional[CommitDeadline] = None) -> Iterator["_JsonSession"]:
        with self._lock:
            session = _JsonSession(self)
            yield session
            session.commit(deadline)

    def close(self) -> None:
        return None

    # -- file io -------------------------------------------------------------

    def read_collection(self, collection: str) -> List[Dict[str, Any]]:
        path = self.path_for(collection)
        _, key = _COLLECTIONS[collection]
        if not path.exists():
            return []
        try:
            payload = json.loads(path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            raise BackendError(f"{path.name} is not valid JSON: {exc}") from exc
        except OSError as exc:
            raise BackendError(f"failed to read {path.name}: {exc}") from exc
        if not isinstance(payload, dict):
            raise BackendError(f"{path.name} must contain a JSON object")
        items = payload.get(key) or []
        if not isinstance(items, list):
            raise BackendError(f"{path.name}: '{key}' must be a list")
        return items

    def stage_collection(self, collection: str, items: List[Dict[str, Any]]) -> Path:
        """Serialize a collection into a temp file next to its document."""
        path = self.path_for(collection)
        _, key = _COLLECTIONS[collection]
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump({key: items}, fh, ensure_ascii=False, indent=2)
            except BaseException:
                os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise BackendError(f"failed to write {path.name}: {exc}") from exc
        return Path(tmp_name)

    def publish(self, collection: str, staged: Path) -> None:
        path = self.path_for(collection)
        try:
            os.replace(staged, path)
        except OSError as exc:
            raise BackendError(f"failed to write {path.name}: {exc}") from exc

    @staticmethod
    def discard(staged: Path) -> None:
        if staged.exists():
            staged.unlink()


class _JsonSession:
    def __init__(self, storage: JsonFileStorage):
        self._storage = storage
        self._runs: Optional[Dict[str, Run]] = None
        self._annotations: Optional[Dict[str, Annotation]] = None
        self._fixes: Optional[Dict[str, PlannedFix]] = None
        self._dirty: set = set()

    def _load(self, collection: str, parse) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for raw in self._storage.read_collection(collection):
            try:
                item = parse(raw)
            except ValidationError as exc:
                path = self._storage.path_for(collection)
                raise BackendError(f"{path.name} holds an invalid record: {exc}") from exc
            out[item.id] = item
        return out

    @property
    def runs(self) -> Dict[str, Run]:
        if self._runs is None:
            self._runs = self._load("runs", Run.from_dict)
        return self._runs

    @property
    def annotations(self) -> Dict[str, Annotation]:
        if self._annotations is None:
            self._annotations = self._load("annotations", Annotation.from_dict)
        return self._annotations

    @property
    def fixes(self) -> Dict[str, PlannedFix]:
        if self._fixes is None:
            self._fixes = self._load("fixes", PlannedFix.from_dict)
        return self._fixes

    def _serialized(self, collection: str) -> List[Dict[str, Any]]:
        if collection == "runs":
            return [r.to_dict(include_derived=False) for r in self.runs.values()]
        if collection == "annotations":
            return [a.to_dict() for a in self.annotations.values()]
        return [f.to_dict() for f in self.fixes.values()]

    def commit(self, deadline: Optional[CommitDeadline] = None) -> None:
        # Annotations go first so a failed later replace never orphans them.
        staged: List[tuple] = []
        try:
            for collection in (c for c in _PUBLISH_ORDER if c in self._dirty):
                tmp = self._storage.stage_collection(collection, self._serialized(collection))
                staged.append((collection, tmp))
            if deadline is not None:
                deadline.begin_commit()
            for collection, tmp in staged:
                self._storage.publish(collection, tmp)
        finally:
            for _, tmp in staged:
                self._storage.discard(tmp)
        self._dirty.clear()

    # -- runs -------------------------------------------------------------

    def list_runs(self) -> List[Run]:
        return list(self.runs.values())

    def get_run(self, run_id: str) -> Optional[Run]:
        return self.runs.get(run_id)

    def put_run(self, run: Run) -> None:
        self.runs[run.id] = run
        self._dirty.add("runs")

    def remove_run(self, run_id: str) -> bool:
        if self.runs.pop(run_id, None) is None:
            return False
        self._dirty.add("runs")
        return True

    # -- annotations ------------------------------------------------------

    def list_annotations(
        self,
        *,
        run_id: Optional[str] = None,
        prompt_number: Optional[int] = None,
        planned_fix_id: Optional[str] = None,
    ) -> List[Annotation]:
        items = list(self.annotations.values())
        if run_id is not None:
            items = [a for a in items if a.run_id == run_id]
        if prompt_number is not None:
            items = [a for a in items if a.prompt_number == int(prompt_number)]
        if planned_fix_id is not None:
            items = [a for a in items if a.planned_fix_id == planned_fix_id]
        return items

    def get_annotation(self, annotation_id: str) -> Optional[Annotation]:
        return self.annotations.get(annotation_id)

    def put_annotation(self, annotation: Annotation) -> None:
        self.annotations[annotation.id] = annotation
        self._dirty.add("annotations")

    def remove_annotation(self, annotation_id: str) -> bool:
        if self.annotations.pop(annotation_id, None) is None:
            return False
        self._dirty.add("annotations")
        return True

    def remove_annotations(self, *, run_id: str, prompt_number: Optional[int] = None) -> int:
        doomed = [a.id for a in self.list_annotations(run_id=run_id, prompt_number=prompt_number)]
        for annotation_id in doomed:
            del self.annotations[annotation_id]
        if doomed:
            self._dirty.add("annotations")
        return len(doomed)

    def clear_planned_fix(self, fix_id: str) -> int:
        linked = self.list_annotations(planned_fix_id=fix_id)
        for annotation in linked:
            annotation.planned_fix_id = None
        if linked:
            self._dirty.add("annotations")
        return len(linked)

    # -- planned fixes ----------------------------------------------------

    def list_planned_fixes(self) -> List[PlannedFix]:
        return list(self.fixes.values())

    def get_planned_fix(self, fix_id: str) -> Optional[PlannedFix]:
        return self.fixes.get(fix_id)

    def put_planned_fix(self, fix: PlannedFix) -> None:
        self.fixes[fix.id] = fix
        self._dirty.add("fixes")

    def remove_planned_fix(self, fix_id: str) -> bool:
        if self.fixes.pop(fix_id, None) is None:
            return False
        self._dirty.add("fixes")
        return True
