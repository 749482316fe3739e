from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from evaltrack.application.ports.storage_port import StorageSession
from evaltrack.domain.run import Run, TransitionResult
from evaltrack.infrastructure.stores.base import StoreBase
from evaltrack.utils.logging_config import LogFiles, Logger
from evaltrack.utils.time_utils import parse_instant


def newest_first(runs: Iterable[Run]) -> List[Run]:
    """timestamp desc, id asc on ties."""
    by_id = sorted(runs, key=lambda r: r.id)
    return sorted(by_id, key=lambda r: parse_instant(r.timestamp), reverse=True)


@dataclass
class FormatSummary:
    runs: List[Run]
    latest: Run

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runs": [r.to_dict() for r in self.runs],
            "latest": self.latest.to_dict(),
        }


@dataclass
class ImportReport:
    imported: int = 0
    skipped: int = 0
    prompts: int = 0
    skipped_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "prompts": self.prompts,
            "skippedIds": list(self.skipped_ids),
        }


class RunStore(StoreBase):
    """Runs and their nested prompts. Deleting a run also deletes its annotations."""

    async def list_runs(self) -> List[Run]:
        runs = await self._run(lambda s: s.list_runs(), op="list_runs")
        return newest_first(runs)

    async def get_run(self, run_id: str) -> Optional[Run]:
        if not run_id:
            return None
        return await self._run(lambda s: s.get_run(run_id), op="get_run")

    async def list_by_format(self, fmt: str) -> List[Run]:
        runs = await self.list_runs()
        return [r for r in runs if r.format == fmt]

    async def list_by_test_type(self, test_type: str, *, fmt: Optional[str] = None) -> List[Run]:
        runs = await self.list_runs()
        return [
            r for r in runs if r.test_type == test_type and (fmt is None or r.format == fmt)
        ]

    async def formats_summary(self, *, test_type: Optional[str] = None) -> Dict[str, FormatSummary]:
        runs = await self.list_runs()
        out: Dict[str, FormatSummary] = {}
        for run in runs:
            if test_type is not None and run.test_type != test_type:
                continue
            entry = out.get(run.format)
            if entry is None:
                # newest_first order makes the first run seen the latest one
                out[run.format] = FormatSummary(runs=[run], latest=run)
            else:
                entry.runs.append(run)
        return out

    async def save_run(self, run: Run) -> Run:
        """Insert or fully replace a run, prompts included."""
        run.prompts.sort(key=lambda p: p.number)

        def work(session: StorageSession) -> Run:
            session.put_run(run)
            return run

        saved = await self._run(work, op="save_run")
        Logger.info(
            f"run saved id={run.id} format={run.format} prompts={len(run.prompts)}",
            file=LogFiles.STORE,
        )
        return saved

    async def create_run(self, run: Run) -> Run:
        """Insert a new run; when its id is taken, append -2, -3, ... until it is free."""
        base_id = run.id

        def work(session: StorageSession) -> Run:
            candidate = base_id
            suffix = 2
            while session.get_run(candidate) is not None:
                candidate = f"{base_id}-{suffix}"
                suffix += 1
            run.id = candidate
            session.put_run(run)
            return run

        created = await self._run(work, op="create_run")
        Logger.info(f"run created id={created.id} state={created.state.value}", file=LogFiles.STORE)
        return created

    async def update_run(
        self, run_id: str, mutate: Callable[[Run], TransitionResult]
    ) -> TransitionResult:
        """
        Read-modify-write inside one unit of work. `mutate` validates and edits
        the run in place; the run is persisted only when the result is ok.
        """

        def work(session: StorageSession) -> TransitionResult:
            run = session.get_run(run_id)
            if run is None:
                return TransitionResult.not_found()
            result = mutate(run)
            if result.ok:
                result.run.prompts.sort(key=lambda p: p.number)
                session.put_run(result.run)
            return result

        return await self._run(work, op="update_run")

    async def delete_run(self, run_id: str) -> bool:
        def work(session: StorageSession) -> bool:
            if session.get_run(run_id) is None:
                return False
            session.remove_annotations(run_id=run_id)
            return session.remove_run(run_id)

        deleted = await self._run(work, op="delete_run")
        if deleted:
            Logger.info(f"run deleted id={run_id}", file=LogFiles.STORE)
        return deleted

    async def import_runs(self, runs: Iterable[Run]) -> ImportReport:
        """Insert runs whose ids are not yet stored; all-or-nothing."""
        incoming = list(runs)

        def work(session: StorageSession) -> ImportReport:
            report = ImportReport()
            seen = set()
            for run in incoming:
                if run.id in seen or session.get_run(run.id) is not None:
                    report.skipped += 1
                    report.skipped_ids.append(run.id)
                    continue
                seen.add(run.id)
                run.prompts.sort(key=lambda p: p.number)
                session.put_run(run)
                report.imported += 1
                report.prompts += len(run.prompts)
            return report

        report = await self._run(work, op="import_runs")
        Logger.info(
            f"runs imported={report.imported} skipped={report.skipped} prompts={report.prompts}",
            file=LogFiles.STORE,
        )
        return report
