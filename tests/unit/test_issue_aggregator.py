from __future__ import annotations

from typing import Optional

import pytest

from evaltrack.application.services.issue_aggregator import (
    THEME_RULES,
    artifact_url,
    enrich,
    themes,
)
from evaltrack.domain.annotation import Annotation, IssueType, Severity
from evaltrack.domain.planned_fix import PlannedFix, PlannedFixInput
from evaltrack.domain.run import Run


def _run(run_id: str, fmt: str = "table", *, test_type: str = "ai-generated-iteration", **extra) -> Run:
    data = {
        "id": run_id,
        "format": fmt,
        "testType": test_type,
        "timestamp": "2025-01-01T00:00:00Z",
        "prompts": [
            {"number": 1, "title": "V1", "text": "", "artifact": "artifacts/%s/v1.png" % run_id},
            {"number": 2, "title": "V2", "text": ""},
        ],
    }
    data.update(extra)
    return Run.from_dict(data)


def _ann(
    ann_id: str,
    run_id: str,
    *,
    severity: Severity = Severity.MEDIUM,
    issue_type: IssueType = IssueType.OTHER,
    note: str = "",
    n: int = 1,
    created_at: str = "2025-01-01T00:00:00.000Z",
    fix_id: Optional[str] = None,
) -> Annotation:
    return Annotation(
        id=ann_id,
        run_id=run_id,
        prompt_number=n,
        issue_type=issue_type,
        severity=severity,
        note=note,
        created_at=created_at,
        updated_at=created_at,
        planned_fix_id=fix_id,
    )


class TestArtifactUrl:
    def test_relative_gets_leading_slash(self):
        assert artifact_url("artifacts/r/v1.png") == "/artifacts/r/v1.png"

    def test_absolute_passes_through(self):
        assert artifact_url("https://cdn.example.com/a.png") == "https://cdn.example.com/a.png"
        assert artifact_url("/already/rooted.png") == "/already/rooted.png"

    def test_empty(self):
        assert artifact_url(None) == ""


class TestEnrich:
    def test_order_severity_then_newest_then_id(self):
        runs = [_run("r1")]
        annotations = [
            _ann("b", "r1", severity=Severity.LOW, created_at="2025-01-03T00:00:00.000Z"),
            _ann("c", "r1", severity=Severity.HIGH, created_at="2025-01-01T00:00:00.000Z"),
            _ann("a", "r1", severity=Severity.HIGH, created_at="2025-01-02T00:00:00.000Z"),
            _ann("d", "r1", severity=Severity.HIGH, created_at="2025-01-02T00:00:00.000Z"),
            _ann("e", "r1", severity=Severity.GOOD, created_at="2025-01-05T00:00:00.000Z"),
        ]

        ordered = [i.id for i in enrich(annotations, runs)]

        assert ordered == ["a", "d", "c", "b", "e"]

    def test_context_fields(self):
        runs = [_run("r1", "doc", test_type="existing-content-iteration")]
        fixes = [PlannedFix(id="fix-1", name="Keep context", created_at="", updated_at="")]

        own, fallback = sorted(
            enrich([_ann("x", "r1", n=1, fix_id="fix-1"), _ann("y", "r1", n=2)], runs, fixes),
            key=lambda i: i.id,
        )

        assert own.artifact_path == "/artifacts/r1/v1.png"
        assert fallback.artifact_path == "/artifacts/r1/v2.png"
        assert own.link == "/existing-content-iteration/doc/r1#v1"
        assert own.test_category == "brownfield"
        assert own.planned_fix_name == "Keep context"
        assert fallback.planned_fix_name is None
        assert own.to_dict()["format"] == "doc"

    def test_annotations_for_missing_runs_dropped(self):
        assert enrich([_ann("x", "gone")], [_run("r1")]) == []


class TestThemes:
    def test_context_theme_dedupes_per_run_and_takes_worst_severity(self):
        runs = [_run("r1", "table"), _run("r2", "doc")]
        annotations = [
            _ann("a1", "r1", issue_type=IssueType.CONTEXT_LOST, severity=Severity.LOW, n=1),
            _ann("a2", "r1", issue_type=IssueType.DATA_DELETED, severity=Severity.MEDIUM, n=2),
            _ann("a3", "r2", issue_type=IssueType.CONTEXT_LOST, severity=Severity.HIGH),
        ]

        (theme,) = themes(annotations, runs)

        assert theme.id == "no-iteration-context"
        assert theme.severity is Severity.HIGH
        assert theme.count == 2
        assert sorted(theme.affected_formats) == ["doc", "table"]
        assert theme.annotation_ids == ["a1", "a2", "a3"]

    def test_praise_is_ignored_and_empty_themes_omitted(self):
        runs = [_run("r1")]
        annotations = [_ann("g", "r1", severity=Severity.GOOD, issue_type=IssueType.STYLE_DRIFT)]

        assert themes(annotations, runs) == []

    def test_keyword_match_and_manifestations(self):
        runs = [_run("r1")]
        annotations = [_ann("a", "r1", note="The style changed between V1 and V2")]

        (theme,) = themes(annotations, runs)

        assert theme.id == "style-not-preserved"
        assert "Manifests as:" in theme.to_dict()["description"]
        assert "Style changed unexpectedly between versions" in theme.full_description()

    def test_unmatched_annotation_falls_back_to_issue_type(self):
        runs = [_run("r1")]

        (theme,) = themes([_ann("a", "r1", issue_type=IssueType.OTHER, note="meh")], runs)

        assert theme.id == "issue-type:other"
        assert theme.title == "Other"

    def test_scored_run_bad_notes_feed_matching_rules(self):
        scored = _run(
            "r1",
            state="scored",
            scores={"overall": 3, "promptAdherence": 3, "iterationQuality": 3},
            bad=["Existing rows were deleted in V2"],
        )
        capturing = _run("r2", state="capturing", bad=["everything was deleted"])

        (theme,) = themes([], [scored, capturing])

        assert theme.id == "no-iteration-context"
        assert theme.severity is Severity.HIGH
        assert [o.run_id for o in theme.occurrences] == ["r1"]

    def test_order_and_stability(self):
        runs = [_run("r1"), _run("r2")]
        annotations = [
            _ann("s1", "r1", issue_type=IssueType.STYLE_DRIFT),
            _ann("s2", "r2", issue_type=IssueType.STYLE_DRIFT),
            _ann("t1", "r1", issue_type=IssueType.TEXT_BROKEN),
            _ann("c1", "r1", issue_type=IssueType.CONTEXT_LOST, severity=Severity.HIGH),
        ]

        first = [t.to_dict() for t in themes(annotations, runs)]
        second = [t.to_dict() for t in themes(list(reversed(annotations)), runs)]

        assert [t["id"] for t in first] == ["no-iteration-context", "style-not-preserved", "text-integrity"]
        assert first == second

    def test_rule_table_ids_unique(self):
        ids = [r.id for r in THEME_RULES]
        assert len(ids) == len(set(ids))


@pytest.mark.asyncio
async def test_aggregator_reports(services):
    await services.runs.save_run(_run("r1"))
    fix = await services.fixes.save_fix(PlannedFixInput(name="Keep style"))
    await services.annotations.import_annotations(
        [
            _ann("a1", "r1", issue_type=IssueType.STYLE_DRIFT, severity=Severity.HIGH, fix_id=fix.id),
            _ann("a2", "r1", issue_type=IssueType.OTHER, severity=Severity.LOW),
        ]
    )

    report = await services.aggregator.issues_report()
    assert report["totalRuns"] == 1
    assert [i["id"] for i in report["issues"]] == ["a1", "a2"]
    assert report["issues"][0]["plannedFixName"] == "Keep style"

    theme_ids = [t["id"] for t in (await services.aggregator.themes_report())["themes"]]
    assert theme_ids == ["style-not-preserved", "issue-type:other"]

    detail = await services.aggregator.fix_detail(fix.id)
    assert detail.to_dict()["total"] == 1
    assert detail.severity_counts()["high"] == 1
    assert await services.aggregator.fix_detail("fix-missing") is None
