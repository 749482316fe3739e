from __future__ import annotations

import uuid
from typing import Iterable, List, Optional

from evaltrack.application.ports.storage_port import StorageSession
from evaltrack.domain.annotation import Annotation, AnnotationInput
from evaltrack.domain.errors import ValidationError
from evaltrack.infrastructure.stores.base import StoreBase
from evaltrack.infrastructure.stores.run_store import ImportReport
from evaltrack.utils.logging_config import LogFiles, Logger
from evaltrack.utils.time_utils import parse_instant, utcnow_iso


def _new_annotation_id() -> str:
    return f"ann-{uuid.uuid4().hex}"


def oldest_first(annotations: Iterable[Annotation]) -> List[Annotation]:
    by_id = sorted(annotations, key=lambda a: a.id)
    return sorted(by_id, key=lambda a: parse_instant(a.created_at))


class AnnotationStore(StoreBase):
    async def list_annotations(
        self,
        *,
        run_id: Optional[str] = None,
        prompt_number: Optional[int] = None,
        planned_fix_id: Optional[str] = None,
    ) -> List[Annotation]:
        items = await self._run(
            lambda s: s.list_annotations(
                run_id=run_id, prompt_number=prompt_number, planned_fix_id=planned_fix_id
            ),
            op="list_annotations",
        )
        return oldest_first(items)

    async def get_annotation(self, annotation_id: str) -> Optional[Annotation]:
        if not annotation_id:
            return None
        return await self._run(lambda s: s.get_annotation(annotation_id), op="get_annotation")

    async def save_annotation(self, draft: AnnotationInput) -> Optional[Annotation]:
        """
        Upsert. A known id updates that annotation in place (created_at kept,
        every optional field overwritten); anything else inserts under a fresh id.

        Returns None when the run does not exist. Raises ValidationError for an
        unknown planned fix or a prompt number past the run's last prompt.
        """

        def work(session: StorageSession) -> Optional[Annotation]:
            run = session.get_run(draft.run_id)
            if run is None:
                return None
            numbers = run.prompt_numbers()
            if numbers and draft.prompt_number > max(numbers):
                raise ValidationError(
                    f"promptNumber {draft.prompt_number} is out of range for run {run.id}"
                )
            if draft.planned_fix_id and session.get_planned_fix(draft.planned_fix_id) is None:
                raise ValidationError(f"unknown plannedFixId: {draft.planned_fix_id}")

            now = utcnow_iso()
            existing = session.get_annotation(draft.id) if draft.id else None
            annotation = Annotation(
                id=existing.id if existing else _new_annotation_id(),
                run_id=draft.run_id,
                prompt_number=draft.prompt_number,
                issue_type=draft.issue_type,
                severity=draft.severity,
                note=draft.note,
                author=draft.author,
                planned_fix_id=draft.planned_fix_id,
                owner=draft.owner,
                target=draft.target,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            session.put_annotation(annotation)
            return annotation

        saved = await self._run(work, op="save_annotation")
        if saved is not None:
            Logger.info(
                f"annotation saved id={saved.id} run={saved.run_id} v{saved.prompt_number} "
                f"{saved.issue_type.value}/{saved.severity.value}",
                file=LogFiles.STORE,
            )
        return saved

    async def delete_annotation(self, annotation_id: str) -> bool:
        return await self._run(lambda s: s.remove_annotation(annotation_id), op="delete_annotation")

    async def delete_for_prompt(self, run_id: str, prompt_number: int) -> int:
        removed = await self._run(
            lambda s: s.remove_annotations(run_id=run_id, prompt_number=prompt_number),
            op="delete_for_prompt",
        )
        if removed:
            Logger.info(
                f"annotations deleted run={run_id} v{prompt_number} count={removed}",
                file=LogFiles.STORE,
            )
        return removed

    async def import_annotations(self, annotations: Iterable[Annotation]) -> ImportReport:
        """Insert annotations that are new and whose run exists; all-or-nothing."""
        incoming = list(annotations)

        def work(session: StorageSession) -> ImportReport:
            report = ImportReport()
            known_fixes = {f.id for f in session.list_planned_fixes()}
            for annotation in incoming:
                if (
                    session.get_annotation(annotation.id) is not None
                    or session.get_run(annotation.run_id) is None
                ):
                    report.skipped += 1
                    report.skipped_ids.append(annotation.id)
                    continue
                if annotation.planned_fix_id and annotation.planned_fix_id not in known_fixes:
                    annotation.planned_fix_id = None
                if not annotation.created_at:
                    annotation.created_at = utcnow_iso()
                if not annotation.updated_at:
                    annotation.updated_at = annotation.created_at
                session.put_annotation(annotation)
                report.imported += 1
            return report

        report = await self._run(work, op="import_annotations")
        Logger.info(
            f"annotations imported={report.imported} skipped={report.skipped}",
            file=LogFiles.STORE,
        )
        return report
