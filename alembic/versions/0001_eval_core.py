"""eval core tables

Revision ID: 0001_eval_core
Revises:
Create Date: 2026-10-19

Creates runs, prompts, planned fixes and annotations.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import context, op


revision = "0001_eval_core"
down_revision = None
branch_labels = None
depends_on = None


def _is_offline() -> bool:
    try:
        return bool(context.is_offline_mode())
    except Exception:
        return False


def _insp():
    return sa.inspect(op.get_bind())


def _has_table(name: str) -> bool:
    return _insp().has_table(name)


def _get_indexes(table: str) -> set[str]:
    return {str(i.get("name") or "") for i in _insp().get_indexes(table)}


def _create_index(name: str, table: str, cols: list[str]) -> None:
    if not _is_offline() and name in _get_indexes(table):
        return
    op.create_index(name, table, cols)


def upgrade() -> None:
    if _is_offline() or not _has_table("eval_runs"):
        op.create_table(
            "eval_runs",
            sa.Column("id", sa.String(length=128), primary_key=True),
            sa.Column(
                "test_type",
                sa.String(length=64),
                server_default="ai-generated-iteration",
                nullable=False,
            ),
            sa.Column("format", sa.String(length=64), nullable=False),
            sa.Column("timestamp", sa.String(length=64), nullable=False),
            sa.Column("state", sa.String(length=16), nullable=True),
            sa.Column("rating", sa.String(length=16), nullable=True),
            sa.Column("scores_json", sa.Text(), nullable=True),
            sa.Column("good_json", sa.Text(), server_default="[]", nullable=False),
            sa.Column("bad_json", sa.Text(), server_default="[]", nullable=False),
            sa.Column("summary", sa.Text(), nullable=True),
            sa.Column("issues_json", sa.Text(), nullable=True),
            sa.Column("iteration_analysis_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )

    _create_index("ix_eval_runs_test_type", "eval_runs", ["test_type"])
    _create_index("ix_eval_runs_format", "eval_runs", ["format"])
    _create_index("ix_eval_runs_timestamp", "eval_runs", ["timestamp"])
    _create_index("ix_eval_runs_state", "eval_runs", ["state"])

    if _is_offline() or not _has_table("eval_prompts"):
        op.create_table(
            "eval_prompts",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column(
                "run_id",
                sa.String(length=128),
                sa.ForeignKey("eval_runs.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("number", sa.Integer(), nullable=False),
            sa.Column("title", sa.Text(), server_default="", nullable=False),
            sa.Column("text", sa.Text(), server_default="", nullable=False),
            sa.Column("artifact", sa.Text(), nullable=True),
            sa.Column("observation", sa.Text(), nullable=True),
            sa.Column("captured_at", sa.String(length=64), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=True),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("evaluation_json", sa.Text(), nullable=True),
            sa.UniqueConstraint("run_id", "number", name="uq_eval_prompts_run_number"),
        )

    _create_index("ix_eval_prompts_run_id", "eval_prompts", ["run_id"])

    if _is_offline() or not _has_table("eval_planned_fixes"):
        op.create_table(
            "eval_planned_fixes",
            sa.Column("id", sa.String(length=64), primary_key=True),
            sa.Column("name", sa.String(length=256), nullable=False),
            sa.Column("jira_ticket", sa.String(length=64), nullable=True),
            sa.Column("owner", sa.String(length=128), nullable=True),
            sa.Column("resolved", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("created_at", sa.String(length=64), nullable=False),
            sa.Column("updated_at", sa.String(length=64), nullable=False),
        )

    _create_index("ix_eval_planned_fixes_name", "eval_planned_fixes", ["name"])

    if _is_offline() or not _has_table("eval_annotations"):
        op.create_table(
            "eval_annotations",
            sa.Column("id", sa.String(length=128), primary_key=True),
            sa.Column(
                "run_id",
                sa.String(length=128),
                sa.ForeignKey("eval_runs.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("prompt_number", sa.Integer(), nullable=False),
            sa.Column("author", sa.String(length=16), server_default="human", nullable=False),
            sa.Column("issue_type", sa.String(length=32), nullable=False),
            sa.Column("severity", sa.String(length=16), nullable=False),
            sa.Column("note", sa.Text(), server_default="", nullable=False),
            sa.Column(
                "planned_fix_id",
                sa.String(length=64),
                sa.ForeignKey("eval_planned_fixes.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("owner", sa.String(length=128), nullable=True),
            sa.Column("target_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.String(length=64), nullable=False),
            sa.Column("updated_at", sa.String(length=64), nullable=False),
        )

    _create_index("ix_eval_annotations_run_id", "eval_annotations", ["run_id"])
    _create_index("ix_eval_annotations_prompt_number", "eval_annotations", ["prompt_number"])
    _create_index("ix_eval_annotations_issue_type", "eval_annotations", ["issue_type"])
    _create_index("ix_eval_annotations_severity", "eval_annotations", ["severity"])
    _create_index("ix_eval_annotations_planned_fix_id", "eval_annotations", ["planned_fix_id"])
    _create_index("ix_eval_annotations_created_at", "eval_annotations", ["created_at"])


def downgrade() -> None:
    op.drop_table("eval_annotations")
    op.drop_table("eval_planned_fixes")
    op.drop_table("eval_prompts")
    op.drop_table("eval_runs")
