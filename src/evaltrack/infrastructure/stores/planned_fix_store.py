from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from evaltrack.application.ports.storage_port import StorageSession
from evaltrack.domain.planned_fix import PlannedFix, PlannedFixInput
from evaltrack.infrastructure.stores.base import StoreBase
from evaltrack.infrastructure.stores.run_store import ImportReport
from evaltrack.utils.logging_config import LogFiles, Logger
from evaltrack.utils.time_utils import utcnow_iso


def _new_fix_id() -> str:
    return f"fix-{uuid.uuid4().hex[:12]}"


def by_name(fixes: Iterable[PlannedFix]) -> List[PlannedFix]:
    return sorted(fixes, key=lambda f: (f.name, f.id))


@dataclass
class PlannedFixWithCount:
    fix: PlannedFix
    issue_count: int

    def to_dict(self) -> Dict[str, Any]:
        data = self.fix.to_dict()
        data["issueCount"] = self.issue_count
        return data


class PlannedFixStore(StoreBase):
    async def list_fixes(self) -> List[PlannedFix]:
        fixes = await self._run(lambda s: s.list_planned_fixes(), op="list_fixes")
        return by_name(fixes)

    async def get_fix(self, fix_id: str) -> Optional[PlannedFix]:
        if not fix_id:
            return None
        return await self._run(lambda s: s.get_planned_fix(fix_id), op="get_fix")

    async def list_with_counts(self) -> List[PlannedFixWithCount]:
        def work(session: StorageSession) -> List[PlannedFixWithCount]:
            counts = Counter(
                a.planned_fix_id for a in session.list_annotations() if a.planned_fix_id
            )
            return [
                PlannedFixWithCount(fix=f, issue_count=counts.get(f.id, 0))
                for f in by_name(session.list_planned_fixes())
            ]

        return await self._run(work, op="list_with_counts")

    async def save_fix(self, draft: PlannedFixInput) -> PlannedFix:
        """Upsert by id; an unknown or missing id inserts under a fresh id."""

        def work(session: StorageSession) -> PlannedFix:
            now = utcnow_iso()
            existing = session.get_planned_fix(draft.id) if draft.id else None
            fix = PlannedFix(
                id=existing.id if existing else _new_fix_id(),
                name=draft.name,
                jira_ticket=draft.jira_ticket,
                owner=draft.owner,
                resolved=bool(draft.resolved),
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            session.put_planned_fix(fix)
            return fix

        saved = await self._run(work, op="save_fix")
        Logger.info(f"planned fix saved id={saved.id} name={saved.name!r}", file=LogFiles.STORE)
        return saved

    async def delete_fix(self, fix_id: str) -> bool:
        """Unlink every annotation pointing at the fix, then remove it. Annotations survive."""

        def work(session: StorageSession) -> bool:
            if session.get_planned_fix(fix_id) is None:
                return False
            session.clear_planned_fix(fix_id)
            return session.remove_planned_fix(fix_id)

        deleted = await self._run(work, op="delete_fix")
        if deleted:
            Logger.info(f"planned fix deleted id={fix_id}", file=LogFiles.STORE)
        return deleted

    async def import_fixes(self, fixes: Iterable[PlannedFix]) -> ImportReport:
        incoming = list(fixes)

        def work(session: StorageSession) -> ImportReport:
            report = ImportReport()
            for fix in incoming:
                if session.get_planned_fix(fix.id) is not None:
                    report.skipped += 1
                    report.skipped_ids.append(fix.id)
                    continue
                if not fix.created_at:
                    fix.created_at = utcnow_iso()
                if not fix.updated_at:
                    fix.updated_at = fix.created_at
                session.put_planned_fix(fix)
                report.imported += 1
            return report

        report = await self._run(work, op="import_fixes")
        Logger.info(
            f"planned fixes imported={report.imported} skipped={report.skipped}",
            file=LogFiles.STORE,
        )
        return report
