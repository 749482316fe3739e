from __future__ import annotations

import pytest

from evaltrack.domain.annotation import AnnotationInput, Author, ImagePointTarget, Severity
from evaltrack.domain.errors import ValidationError
from evaltrack.domain.planned_fix import PlannedFixInput
from evaltrack.domain.run import Run


def _run(run_id: str = "r1", prompts: int = 3) -> Run:
    return Run.from_dict(
        {
            "id": run_id,
            "format": "table",
            "timestamp": "2025-01-01T00:00:00Z",
            "state": "scored",
            "prompts": [{"number": n, "title": f"V{n}", "text": ""} for n in range(1, prompts + 1)],
        }
    )


def _draft(**overrides) -> AnnotationInput:
    data = {
        "runId": "r1",
        "promptNumber": 1,
        "issueType": "context-lost",
        "severity": "high",
        "note": "forgot the table",
    }
    data.update(overrides)
    return AnnotationInput.from_dict(data)


@pytest.mark.asyncio
async def test_save_assigns_id_and_timestamps(services):
    await services.runs.save_run(_run())

    saved = await services.annotations.save_annotation(_draft())

    assert saved.id.startswith("ann-")
    assert saved.created_at
    assert saved.created_at == saved.updated_at
    assert saved.author is Author.HUMAN


@pytest.mark.asyncio
async def test_save_for_missing_run_returns_none(services):
    assert await services.annotations.save_annotation(_draft(runId="ghost")) is None


@pytest.mark.asyncio
async def test_update_keeps_created_at_and_nulls_absent_fields(services):
    await services.runs.save_run(_run())
    fix = await services.fixes.save_fix(PlannedFixInput(name="Fix"))
    first = await services.annotations.save_annotation(
        _draft(owner="sam", plannedFixId=fix.id, target={"type": "image", "x": 10, "y": 20})
    )

    second = await services.annotations.save_annotation(
        _draft(id=first.id, severity="low", note="minor")
    )

    assert second.id == first.id
    assert second.created_at == first.created_at
    assert second.severity is Severity.LOW
    assert second.owner is None
    assert second.planned_fix_id is None
    assert second.target is None
    assert len(await services.annotations.list_annotations()) == 1


@pytest.mark.asyncio
async def test_unknown_id_inserts_fresh(services):
    await services.runs.save_run(_run())

    saved = await services.annotations.save_annotation(_draft(id="ann-client-made"))

    assert saved.id != "ann-client-made"


@pytest.mark.asyncio
async def test_target_round_trips(services):
    await services.runs.save_run(_run())

    saved = await services.annotations.save_annotation(
        _draft(target={"type": "image", "x": 33.5, "y": 70, "label": "legend"})
    )
    fetched = await services.annotations.get_annotation(saved.id)

    assert fetched.target == ImagePointTarget(x=33.5, y=70.0, label="legend")


@pytest.mark.asyncio
async def test_prompt_number_bound_by_run(services):
    await services.runs.save_run(_run(prompts=2))
    await services.runs.save_run(_run("empty", prompts=0))

    with pytest.raises(ValidationError):
        await services.annotations.save_annotation(_draft(promptNumber=3))
    assert await services.annotations.save_annotation(_draft(promptNumber=0)) is not None
    assert await services.annotations.save_annotation(_draft(runId="empty", promptNumber=7)) is not None


@pytest.mark.asyncio
async def test_unknown_planned_fix_rejected(services):
    await services.runs.save_run(_run())

    with pytest.raises(ValidationError):
        await services.annotations.save_annotation(_draft(plannedFixId="fix-missing"))
    assert await services.annotations.list_annotations() == []


@pytest.mark.asyncio
async def test_list_is_oldest_first(services):
    await services.runs.save_run(_run())
    first = await services.annotations.save_annotation(_draft(note="one"))
    second = await services.annotations.save_annotation(_draft(note="two"))

    listed = await services.annotations.list_annotations(run_id="r1")

    if first.created_at == second.created_at:
        expected = sorted([first.id, second.id])
    else:
        expected = [first.id, second.id]
    assert [a.id for a in listed] == expected


@pytest.mark.asyncio
async def test_delete_single_and_per_prompt(services):
    await services.runs.save_run(_run())
    one = await services.annotations.save_annotation(_draft(promptNumber=1))
    await services.annotations.save_annotation(_draft(promptNumber=2))
    await services.annotations.save_annotation(_draft(promptNumber=2, note="again"))

    assert await services.annotations.delete_annotation(one.id) is True
    assert await services.annotations.delete_annotation(one.id) is False
    assert await services.annotations.delete_for_prompt("r1", 2) == 2
    assert await services.annotations.delete_for_prompt("r1", 2) == 0
    assert await services.annotations.list_annotations() == []
