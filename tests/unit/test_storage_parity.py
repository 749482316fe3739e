"""
Behaviour every StoragePort backend must share, exercised through the stores.
"""

from __future__ import annotations

import pytest

from evaltrack.domain.annotation import Annotation, AnnotationInput, IssueType, Severity
from evaltrack.domain.planned_fix import PlannedFixInput
from evaltrack.domain.run import Prompt, Run, RunState


def _scored_run(run_id: str = "table-1", *, timestamp: str = "2025-01-01T09:00:00.000Z") -> Run:
    return Run.from_dict(
        {
            "id": run_id,
            "format": "table",
            "timestamp": timestamp,
            "state": "scored",
            "rating": "good",
            "scores": {"overall": 6, "promptAdherence": 6, "iterationQuality": 6},
            "good": ["clean layout"],
            "bad": ["lost header row"],
            "summary": "mostly fine",
            "iterationAnalysis": {"v1ToV2": "ok", "v2ToV3": "regressed", "regressions": ["header"]},
            "prompts": [
                {"number": 1, "title": "V1", "text": "make a table", "status": "pass", "note": "fine"},
                {"number": 2, "title": "V2", "text": "add a column", "status": "fail", "note": "broke"},
            ],
        }
    )


def _note(run_id: str, n: int, **extra) -> AnnotationInput:
    data = {"runId": run_id, "promptNumber": n, "issueType": "style-drift", "severity": "medium"}
    data.update(extra)
    return AnnotationInput.from_dict(data)


@pytest.mark.asyncio
async def test_run_round_trip(services):
    run = _scored_run()
    await services.runs.save_run(run)

    fetched = await services.runs.get_run("table-1")

    assert fetched.to_dict() == run.to_dict()
    assert fetched.iteration_analysis.regressions == ["header"]
    assert fetched.prompt(2).note == "broke"


@pytest.mark.asyncio
async def test_legacy_run_keeps_missing_state(services):
    legacy = Run.from_dict({"id": "old", "format": "doc", "timestamp": "2024-06-01T00:00:00Z"})
    await services.runs.save_run(legacy)

    fetched = await services.runs.get_run("old")

    assert fetched.state is RunState.LEGACY
    assert fetched.to_dict()["state"] == "scored"


@pytest.mark.asyncio
async def test_save_run_replaces_prompts(services):
    run = _scored_run()
    await services.runs.save_run(run)

    run.prompts = [
        Prompt(number=3, title="V3", text="third"),
        Prompt(number=1, title="V1 edited", text="make a table"),
    ]
    await services.runs.save_run(run)
    fetched = await services.runs.get_run("table-1")

    assert fetched.prompt_numbers() == [1, 3]
    assert fetched.prompt(1).title == "V1 edited"


@pytest.mark.asyncio
async def test_list_runs_newest_first_with_id_tiebreak(services):
    await services.runs.save_run(_scored_run("b", timestamp="2025-01-02T00:00:00Z"))
    await services.runs.save_run(_scored_run("a", timestamp="2025-01-02T00:00:00Z"))
    await services.runs.save_run(_scored_run("c", timestamp="2025-01-03T00:00:00Z"))

    runs = await services.runs.list_runs()

    assert [r.id for r in runs] == ["c", "a", "b"]


@pytest.mark.asyncio
async def test_create_run_suffixes_taken_ids(services):
    first = await services.runs.create_run(_scored_run("table-x"))
    second = await services.runs.create_run(_scored_run("table-x"))
    third = await services.runs.create_run(_scored_run("table-x"))

    assert (first.id, second.id, third.id) == ("table-x", "table-x-2", "table-x-3")


@pytest.mark.asyncio
async def test_delete_run_cascades_to_annotations(services):
    await services.runs.save_run(_scored_run("keep"))
    await services.runs.save_run(_scored_run("drop"))
    kept = await services.annotations.save_annotation(_note("keep", 1))
    await services.annotations.save_annotation(_note("drop", 1))
    await services.annotations.save_annotation(_note("drop", 2))

    assert await services.runs.delete_run("drop") is True
    assert await services.runs.delete_run("drop") is False

    assert await services.runs.get_run("drop") is None
    remaining = await services.annotations.list_annotations()
    assert [a.id for a in remaining] == [kept.id]


@pytest.mark.asyncio
async def test_delete_fix_unlinks_annotations(services):
    await services.runs.save_run(_scored_run())
    fix = await services.fixes.save_fix(PlannedFixInput(name="Pass context"))
    linked = await services.annotations.save_annotation(_note("table-1", 1, plannedFixId=fix.id))

    assert await services.fixes.delete_fix(fix.id) is True

    survivor = await services.annotations.get_annotation(linked.id)
    assert survivor is not None
    assert survivor.planned_fix_id is None
    assert await services.fixes.get_fix(fix.id) is None


@pytest.mark.asyncio
async def test_annotation_filters(services):
    await services.runs.save_run(_scored_run("r1"))
    await services.runs.save_run(_scored_run("r2"))
    fix = await services.fixes.save_fix(PlannedFixInput(name="Fix"))
    await services.annotations.save_annotation(_note("r1", 1))
    await services.annotations.save_annotation(_note("r1", 2, plannedFixId=fix.id))
    await services.annotations.save_annotation(_note("r2", 1))

    assert len(await services.annotations.list_annotations(run_id="r1")) == 2
    assert len(await services.annotations.list_annotations(run_id="r1", prompt_number=2)) == 1
    assert len(await services.annotations.list_annotations(planned_fix_id=fix.id)) == 1
    assert len(await services.annotations.list_annotations()) == 3


@pytest.mark.asyncio
async def test_import_runs_skips_existing_and_duplicates(services):
    await services.runs.save_run(_scored_run("existing"))

    report = await services.runs.import_runs(
        [_scored_run("existing"), _scored_run("new"), _scored_run("new")]
    )

    assert report.imported == 1
    assert report.skipped == 2
    assert report.prompts == 2
    assert report.skipped_ids == ["existing", "new"]
    assert {r.id for r in await services.runs.list_runs()} == {"existing", "new"}


@pytest.mark.asyncio
async def test_import_annotations_requires_run_and_clears_unknown_fix(services):
    await services.runs.save_run(_scored_run("r1"))
    incoming = [
        Annotation(
            id="ann-1",
            run_id="r1",
            prompt_number=1,
            issue_type=IssueType.CONTEXT_LOST,
            severity=Severity.HIGH,
            note="lost",
            created_at="2025-01-01T10:00:00.000Z",
            updated_at="",
            planned_fix_id="fix-gone",
        ),
        Annotation(
            id="ann-2",
            run_id="missing-run",
            prompt_number=1,
            issue_type=IssueType.OTHER,
            severity=Severity.LOW,
            note="",
            created_at="",
            updated_at="",
        ),
    ]

    report = await services.annotations.import_annotations(incoming)
    stored = await services.annotations.get_annotation("ann-1")

    assert (report.imported, report.skipped) == (1, 1)
    assert stored.planned_fix_id is None
    assert stored.updated_at == "2025-01-01T10:00:00.000Z"
