"""Relational StoragePort adapter (SQLAlchemy)."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from evaltrack.application.ports.storage_port import CommitDeadline
from evaltrack.domain.annotation import (
    Annotation,
    parse_author,
    parse_issue_type,
    parse_severity,
    parse_target,
)
from evaltrack.domain.errors import BackendError
from evaltrack.domain.planned_fix import PlannedFix
from evaltrack.domain.run import (
    IterationAnalysis,
    Prompt,
    Run,
    RunState,
    Scores,
    parse_prompt_status,
    parse_rating,
)
from evaltrack.infrastructure.stores.models import (
    AnnotationModel,
    Base,
    PlannedFixModel,
    PromptModel,
    RunModel,
    _dump,
)
from evaltrack.infrastructure.stores.sqlalchemy_db import SessionProvider


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqlAlchemyStorage:
    """StoragePort backed by a relational database; one ORM session per unit of work."""

    backend_name = "sql"
    is_relational = True

    def __init__(
        self,
        db_url: str,
        *,
        auto_create_schema: bool = True,
        connect_timeout: Optional[float] = None,
    ):
        self.db_url = db_url
        self._provider = SessionProvider(db_url, connect_timeout=connect_timeout)
        if auto_create_schema:
            Base.metadata.create_all(self._provider.engine)

    @contextmanager
    def unit_of_work(self, deadline: Optional[CommitDeadline] = None) -> Iterator["_SqlSession"]:
        with self._provider.session() as session:
            try:
                yield _SqlSession(session)
                if deadline is not None:
                    session.flush()
                    deadline.begin_commit()
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise BackendError(f"database operation failed: {exc}") from exc
            except Exception:
                session.rollback()
                raise

    def close(self) -> None:
        try:
            self._provider.dispose()
        except Exception as exc:
            logger.warning(f"Failed to dispose database engine: {exc}")


class _SqlSession:
    def __init__(self, session: Session):
        self._session = session

    # -- runs -------------------------------------------------------------

    def list_runs(self) -> List[Run]:
        rows = (
            self._session.execute(select(RunModel).options(selectinload(RunModel.prompts)))
            .scalars()
            .all()
        )
        return [_run_from_row(row) for row in rows]

    def get_run(self, run_id: str) -> Optional[Run]:
        row = self._get_run_row(run_id)
        return _run_from_row(row) if row else None

    def put_run(self, run: Run) -> None:
        now = _utcnow()
        row = self._get_run_row(run.id)
        if row is None:
            row = RunModel(id=run.id, created_at=now)
            self._session.add(row)
        _apply_run(row, run)
        row.updated_at = now

        # Merge prompts by number so the (run_id, number) constraint never sees
        # a transient duplicate.
        existing = {p.number: p for p in row.prompts}
        wanted = {p.number for p in run.prompts}
        for number, prompt_row in existing.items():
            if number not in wanted:
                row.prompts.remove(prompt_row)
        for prompt in run.prompts:
            prompt_row = existing.get(prompt.number)
            if prompt_row is None:
                prompt_row = PromptModel(number=prompt.number)
                row.prompts.append(prompt_row)
            _apply_prompt(prompt_row, prompt)
        self._session.flush()

    def remove_run(self, run_id: str) -> bool:
        if self._get_run_row(run_id) is None:
            return False
        self._session.execute(delete(PromptModel).where(PromptModel.run_id == run_id))
        self._session.execute(delete(RunModel).where(RunModel.id == run_id))
        self._session.expunge_all()
        return True

    def _get_run_row(self, run_id: str) -> Optional[RunModel]:
        return self._session.execute(
            select(RunModel).where(RunModel.id == run_id).options(selectinload(RunModel.prompts))
        ).scalar_one_or_none()

    # -- annotations ------------------------------------------------------

    def list_annotations(
        self,
        *,
        run_id: Optional[str] = None,
        prompt_number: Optional[int] = None,
        planned_fix_id: Optional[str] = None,
    ) -> List[Annotation]:
        stmt = select(AnnotationModel)
        if run_id is not None:
            stmt = stmt.where(AnnotationModel.run_id == run_id)
        if prompt_number is not None:
            stmt = stmt.where(AnnotationModel.prompt_number == int(prompt_number))
        if planned_fix_id is not None:
            stmt = stmt.where(AnnotationModel.planned_fix_id == planned_fix_id)
        rows = self._session.execute(stmt).scalars().all()
        return [_annotation_from_row(row) for row in rows]

    def get_annotation(self, annotation_id: str) -> Optional[Annotation]:
        row = self._session.get(AnnotationModel, annotation_id)
        return _annotation_from_row(row) if row else None

    def put_annotation(self, annotation: Annotation) -> None:
        row = self._session.get(AnnotationModel, annotation.id)
        if row is None:
            row = AnnotationModel(id=annotation.id)
            self._session.add(row)
        row.run_id = annotation.run_id
        row.prompt_number = annotation.prompt_number
        row.author = annotation.author.value
        row.issue_type = annotation.issue_type.value
        row.severity = annotation.severity.value
        row.note = annotation.note
        row.planned_fix_id = annotation.planned_fix_id
        row.owner = annotation.owner
        row.target_json = _dump(annotation.target.to_dict()) if annotation.target else None
        row.created_at = annotation.created_at
        row.updated_at = annotation.updated_at
        self._session.flush()

    def remove_annotation(self, annotation_id: str) -> bool:
        result = self._session.execute(
            delete(AnnotationModel).where(AnnotationModel.id == annotation_id)
        )
        return bool(result.rowcount)

    def remove_annotations(self, *, run_id: str, prompt_number: Optional[int] = None) -> int:
        stmt = delete(AnnotationModel).where(AnnotationModel.run_id == run_id)
        if prompt_number is not None:
            stmt = stmt.where(AnnotationModel.prompt_number == int(prompt_number))
        result = self._session.execute(stmt)
        return int(result.rowcount or 0)

    def clear_planned_fix(self, fix_id: str) -> int:
        result = self._session.execute(
            update(AnnotationModel)
            .where(AnnotationModel.planned_fix_id == fix_id)
            .values(planned_fix_id=None)
        )
        return int(result.rowcount or 0)

    # -- planned fixes ----------------------------------------------------

    def list_planned_fixes(self) -> List[PlannedFix]:
        rows = self._session.execute(select(PlannedFixModel)).scalars().all()
        return [_fix_from_row(row) for row in rows]

    def get_planned_fix(self, fix_id: str) -> Optional[PlannedFix]:
        row = self._session.get(PlannedFixModel, fix_id)
        return _fix_from_row(row) if row else None

    def put_planned_fix(self, fix: PlannedFix) -> None:
        row = self._session.get(PlannedFixModel, fix.id)
        if row is None:
            row = PlannedFixModel(id=fix.id)
            self._session.add(row)
        row.name = fix.name
        row.jira_ticket = fix.jira_ticket
        row.owner = fix.owner
        row.resolved = bool(fix.resolved)
        row.created_at = fix.created_at
        row.updated_at = fix.updated_at
        self._session.flush()

    def remove_planned_fix(self, fix_id: str) -> bool:
        result = self._session.execute(delete(PlannedFixModel).where(PlannedFixModel.id == fix_id))
        return bool(result.rowcount)


def _apply_run(row: RunModel, run: Run) -> None:
    row.test_type = run.test_type
    row.format = run.format
    row.timestamp = run.timestamp
    row.state = None if run.state is RunState.LEGACY else run.state.value
    row.rating = run.rating.value if run.rating else None
    row.scores_json = _dump(run.scores.to_dict()) if run.scores else None
    row.good_json = _dump(list(run.good)) or "[]"
    row.bad_json = _dump(list(run.bad)) or "[]"
    row.summary = run.summary
    row.issues_json = _dump(run.issues)
    row.iteration_analysis_json = (
        _dump(run.iteration_analysis.to_dict()) if run.iteration_analysis else None
    )


def _apply_prompt(row: PromptModel, prompt: Prompt) -> None:
    row.title = prompt.title
    row.text = prompt.text
    row.artifact = prompt.artifact
    row.observation = prompt.observation
    row.captured_at = prompt.captured_at
    row.status = prompt.status.value if prompt.status else None
    row.note = prompt.note
    row.evaluation_json = _dump(prompt.evaluation)


def _run_from_row(row: RunModel) -> Run:
    scores = row.get_scores()
    return Run(
        id=row.id,
        format=row.format,
        timestamp=row.timestamp,
        test_type=row.test_type,
        state=RunState.parse(row.state),
        rating=parse_rating(row.rating),
        scores=Scores.from_dict(scores) if scores is not None else None,
        good=row.get_good(),
        bad=row.get_bad(),
        summary=row.summary,
        issues=row.get_issues(),
        iteration_analysis=IterationAnalysis.from_dict(row.get_iteration_analysis()),
        prompts=[_prompt_from_row(p) for p in sorted(row.prompts, key=lambda p: p.number)],
    )


def _prompt_from_row(row: PromptModel) -> Prompt:
    return Prompt(
        number=row.number,
        title=row.title,
        text=row.text,
        artifact=row.artifact,
        observation=row.observation,
        captured_at=row.captured_at,
        status=parse_prompt_status(row.status),
        note=row.note,
        evaluation=row.get_evaluation(),
    )


def _annotation_from_row(row: AnnotationModel) -> Annotation:
    return Annotation(
        id=row.id,
        run_id=row.run_id,
        prompt_number=row.prompt_number,
        author=parse_author(row.author),
        issue_type=parse_issue_type(row.issue_type),
        severity=parse_severity(row.severity),
        note=row.note or "",
        planned_fix_id=row.planned_fix_id,
        owner=row.owner,
        target=parse_target(row.get_target()),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _fix_from_row(row: PlannedFixModel) -> PlannedFix:
    return PlannedFix(
        id=row.id,
        name=row.name,
        jira_ticket=row.jira_ticket,
        owner=row.owner,
        resolved=bool(row.resolved),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
