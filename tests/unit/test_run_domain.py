from __future__ import annotations

import pytest

from evaltrack.domain.errors import ValidationError
from evaltrack.domain.run import (
    Prompt,
    Rating,
    Run,
    RunState,
    Scores,
    TransitionResult,
    derive_rating,
    run_rating,
)


def _run(**overrides) -> Run:
    data = {"id": "table-2025-01-01-0900", "format": "table", "timestamp": "2025-01-01T09:00:00Z"}
    data.update(overrides)
    return Run.from_dict(data)


class TestRunState:
    def test_missing_state_is_legacy_and_effectively_scored(self):
        assert RunState.parse(None) is RunState.LEGACY
        assert RunState.parse("") is RunState.LEGACY
        assert RunState.LEGACY.effective() is RunState.SCORED

    def test_known_states_parse_case_insensitively(self):
        assert RunState.parse("Capturing") is RunState.CAPTURING
        assert RunState.parse("captured") is RunState.CAPTURED

    @pytest.mark.parametrize("raw", ["legacy", "draft"])
    def test_explicit_legacy_or_unknown_state_rejected(self, raw):
        with pytest.raises(ValidationError):
            RunState.parse(raw)


class TestRating:
    @pytest.mark.parametrize(
        "overall,expected",
        [(10, Rating.GREAT), (8, Rating.GREAT), (7.99, Rating.GOOD), (5, Rating.GOOD), (4.9, Rating.BAD), (0, Rating.BAD)],
    )
    def test_derive_rating_thresholds(self, overall, expected):
        assert derive_rating(overall) is expected
        assert derive_rating(overall) is derive_rating(overall)

    def test_run_rating_prefers_explicit_rating(self):
        run = _run(state="scored", rating="bad", scores={"overall": 9, "promptAdherence": 9, "iterationQuality": 9})
        assert run_rating(run) is Rating.BAD

    def test_run_rating_derives_for_legacy_runs(self):
        run = _run(scores={"overall": 6, "promptAdherence": 5, "iterationQuality": 5})
        assert run_rating(run) is Rating.GOOD

    def test_run_rating_is_none_while_capturing(self):
        run = _run(state="capturing", rating="great")
        assert run_rating(run) is None


class TestRunSerialization:
    def test_required_fields(self):
        with pytest.raises(ValidationError, match="id, format, and timestamp are required"):
            Run.from_dict({"id": "x", "format": "table"})

    def test_duplicate_prompt_numbers_rejected(self):
        with pytest.raises(ValidationError):
            _run(prompts=[{"number": 1, "title": "a", "text": "a"}, {"number": 1, "title": "b", "text": "b"}])

    def test_prompts_sorted_by_number(self):
        run = _run(prompts=[{"number": 3, "title": "c", "text": ""}, {"number": 1, "title": "a", "text": ""}])
        assert run.prompt_numbers() == [1, 3]

    def test_legacy_run_reports_scored_on_the_wire_but_stores_without_state(self):
        run = _run(scores={"overall": 8.5, "promptAdherence": 8, "iterationQuality": 9})

        wire = run.to_dict()
        stored = run.to_dict(include_derived=False)

        assert wire["state"] == "scored"
        assert wire["rating"] == "great"
        assert "state" not in stored
        assert stored["rating"] is None

    def test_camel_case_keys_round_trip(self):
        payload = {
            "id": "doc-1",
            "testType": "existing-content-iteration",
            "format": "doc",
            "timestamp": "2025-02-01T10:00:00.000Z",
            "state": "scored",
            "rating": "good",
            "scores": {"overall": 6, "promptAdherence": 7, "iterationQuality": 5},
            "good": ["kept headings"],
            "bad": ["lost table"],
            "summary": "ok",
            "issues": [{"severity": "high", "text": "lost table"}],
            "iterationAnalysis": {"v1ToV2": "fine", "v2ToV3": "worse", "regressions": ["table"]},
            "prompts": [
                {
                    "number": 1,
                    "title": "V1",
                    "text": "draft",
                    "artifact": "artifacts/doc-1/v1.png",
                    "status": "pass",
                    "note": "good",
                    "evaluation": {"score": 7},
                }
            ],
        }
        run = Run.from_dict(payload)
        again = Run.from_dict(run.to_dict(include_derived=False))

        assert again == run
        assert run.test_type == "existing-content-iteration"
        assert run.iteration_analysis.regressions == ["table"]

    def test_scores_must_be_numbers(self):
        with pytest.raises(ValidationError):
            Scores.from_dict({"overall": "9", "promptAdherence": 9, "iterationQuality": 9})
        with pytest.raises(ValidationError):
            Scores.from_dict({"overall": True, "promptAdherence": 9, "iterationQuality": 9})

    def test_upsert_prompt_replaces_and_orders(self):
        run = _run()
        run.upsert_prompt(Prompt(number=2, title="two", text=""))
        run.upsert_prompt(Prompt(number=1, title="one", text=""))
        run.upsert_prompt(Prompt(number=2, title="two again", text=""))

        assert run.prompt_numbers() == [1, 2]
        assert run.prompt(2).title == "two again"


def test_transition_result_helpers():
    run = _run()
    assert TransitionResult.success(run).ok
    assert not TransitionResult.not_found().ok
    invalid = TransitionResult.invalid_state(run)
    assert not invalid.ok
    assert invalid.run is run
