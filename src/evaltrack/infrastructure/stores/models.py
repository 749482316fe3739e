from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def _dump(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _load(raw: Optional[str]) -> Any:
    if raw is None or raw == "":
        return None
    return json.loads(raw)


class RunModel(Base):
    __tablename__ = "eval_runs"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    test_type: Mapped[str] = mapped_column(
        String(64), default="ai-generated-iteration", index=True
    )
    format: Mapped[str] = mapped_column(String(64), index=True)
    # Kept as the client's ISO-8601 text so a fetch returns exactly what was saved.
    timestamp: Mapped[str] = mapped_column(String(64), index=True)
    # NULL means a legacy record written before the lifecycle existed.
    state: Mapped[Optional[str]] = mapped_column(String(16), nullable=True, index=True)
    rating: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    scores_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    good_json: Mapped[str] = mapped_column(Text, default="[]")
    bad_json: Mapped[str] = mapped_column(Text, default="[]")
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    issues_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    iteration_analysis_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    prompts = relationship(
        "PromptModel",
        back_populates="run",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PromptModel.number",
    )

    def get_good(self) -> List[str]:
        return list(_load(self.good_json) or [])

    def get_bad(self) -> List[str]:
        return list(_load(self.bad_json) or [])

    def get_scores(self) -> Optional[Dict[str, Any]]:
        return _load(self.scores_json)

    def get_issues(self) -> Optional[List[Dict[str, str]]]:
        return _load(self.issues_json)

    def get_iteration_analysis(self) -> Optional[Dict[str, Any]]:
        return _load(self.iteration_analysis_json)


class PromptModel(Base):
    __tablename__ = "eval_prompts"
    __table_args__ = (UniqueConstraint("run_id", "number", name="uq_eval_prompts_run_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("eval_runs.id", ondelete="CASCADE"), index=True
    )
    number: Mapped[int] = mapped_column(Integer)
    title: Mapped[str] = mapped_column(Text, default="")
    text: Mapped[str] = mapped_column(Text, default="")
    artifact: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # capture phase
    observation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    captured_at: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # scored phase
    status: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)  # pass/warning/fail
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    evaluation_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    run = relationship("RunModel", back_populates="prompts")

    def get_evaluation(self) -> Optional[Dict[str, Any]]:
        return _load(self.evaluation_json)


class PlannedFixModel(Base):
    __tablename__ = "eval_planned_fixes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), index=True)
    jira_ticket: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    owner: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[str] = mapped_column(String(64))
    updated_at: Mapped[str] = mapped_column(String(64))


class AnnotationModel(Base):
    __tablename__ = "eval_annotations"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    run_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("eval_runs.id", ondelete="CASCADE"), index=True
    )
    prompt_number: Mapped[int] = mapped_column(Integer, index=True)
    author: Mapped[str] = mapped_column(String(16), default="human")
    issue_type: Mapped[str] = mapped_column(String(32), index=True)
    severity: Mapped[str] = mapped_column(String(16), index=True)
    note: Mapped[str] = mapped_column(Text, default="")
    planned_fix_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("eval_planned_fixes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    owner: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    target_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(String(64), index=True)
    updated_at: Mapped[str] = mapped_column(String(64))

    def get_target(self) -> Optional[Dict[str, Any]]:
        return _load(self.target_json)
