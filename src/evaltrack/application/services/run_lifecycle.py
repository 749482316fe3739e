"""
Run capture/scoring lifecycle.

    capturing --complete_capture--> captured --score--> scored --score--> scored

Records without a state are legacy and behave as scored. Every transition
returns a TransitionResult; only malformed input raises (ValidationError).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from evaltrack.domain.errors import ValidationError
from evaltrack.domain.run import (
    DEFAULT_TEST_TYPE,
    Prompt,
    PromptStatus,
    Rating,
    Run,
    RunState,
    Scores,
    TransitionResult,
    derive_rating,
    parse_prompt_status,
    parse_rating,
    parse_str_list,
)
from evaltrack.infrastructure.stores.run_store import RunStore
from evaltrack.utils.logging_config import LogFiles, Logger
from evaltrack.utils.time_utils import to_iso, utcnow


@dataclass
class PromptEvaluation:
    number: int
    status: Optional[PromptStatus] = None
    note: str = ""
    evaluation: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Any) -> "PromptEvaluation":
        if not isinstance(data, dict):
            raise ValidationError("promptEvaluations entries must be objects")
        number = data.get("number")
        if isinstance(number, bool) or not isinstance(number, int):
            raise ValidationError("promptEvaluations[].number must be an integer")
        evaluation = data.get("evaluation")
        if evaluation is not None and not isinstance(evaluation, dict):
            raise ValidationError("promptEvaluations[].evaluation must be an object")
        return cls(
            number=number,
            status=parse_prompt_status(data.get("status")),
            note=str(data.get("note") or ""),
            evaluation=evaluation,
        )


@dataclass
class ScoreInput:
    run_id: str
    scores: Scores
    good: List[str] = field(default_factory=list)
    bad: List[str] = field(default_factory=list)
    prompt_evaluations: List[PromptEvaluation] = field(default_factory=list)
    rating: Optional[Rating] = None
    summary: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ScoreInput":
        if not isinstance(data, dict):
            raise ValidationError("score payload must be an object")
        run_id = str(data.get("runId") or "").strip()
        if not run_id or data.get("scores") is None or data.get("promptEvaluations") is None:
            raise ValidationError("runId, scores, and promptEvaluations are required")
        evaluations = data.get("promptEvaluations")
        if not isinstance(evaluations, list):
            raise ValidationError("promptEvaluations must be a list")
        return cls(
            run_id=run_id,
            scores=Scores.from_dict(data.get("scores")),
            good=parse_str_list(data.get("good"), "good"),
            bad=parse_str_list(data.get("bad"), "bad"),
            prompt_evaluations=[PromptEvaluation.from_dict(e) for e in evaluations],
            rating=parse_rating(data.get("rating")),
            summary=data.get("summary"),
        )


def capture_run_id(fmt: str, now: datetime) -> str:
    return f"{fmt}-{now.strftime('%Y-%m-%d')}-{now.strftime('%H%M')}"


def _apply_score(run: Run, payload: ScoreInput) -> TransitionResult:
    state = run.effective_state
    if state not in (RunState.CAPTURED, RunState.SCORED):
        return TransitionResult.invalid_state(run)

    by_number = {e.number: e for e in payload.prompt_evaluations}
    from_capture = state is RunState.CAPTURED
    for prompt in run.prompts:
        found = by_number.get(prompt.number)
        if from_capture:
            prompt.status = (found.status if found else None) or PromptStatus.WARNING
            prompt.note = (found.note if found else "") or prompt.observation or ""
            prompt.observation = None
            prompt.captured_at = None
        elif found is not None:
            prompt.status = found.status or prompt.status
            prompt.note = found.note or prompt.note
        if found is not None and found.evaluation is not None:
            prompt.evaluation = found.evaluation

    run.scores = payload.scores
    run.good = list(payload.good)
    run.bad = list(payload.bad)
    run.rating = payload.rating or derive_rating(payload.scores.overall)
    if payload.summary is not None:
        run.summary = payload.summary
    run.state = RunState.SCORED
    return TransitionResult.success(run)


class RunLifecycleManager:
    def __init__(self, runs: RunStore, *, clock: Callable[[], datetime] = utcnow):
        self._runs = runs
        self._clock = clock

    async def start_capture(self, fmt: str, test_type: Optional[str] = None) -> Run:
        fmt = (fmt or "").strip()
        if not fmt:
            raise ValidationError("Format is required")
        now = self._clock()
        run = Run(
            id=capture_run_id(fmt, now),
            format=fmt,
            timestamp=to_iso(now),
            test_type=(test_type or "").strip() or DEFAULT_TEST_TYPE,
            state=RunState.CAPTURING,
        )
        created = await self._runs.create_run(run)
        Logger.info(f"capture started id={created.id}", file=LogFiles.LIFECYCLE)
        return created

    async def save_capture_prompt(
        self,
        run_id: str,
        number: int,
        title: str,
        text: str,
        artifact: Optional[str] = None,
        observation: Optional[str] = None,
    ) -> TransitionResult:
        if isinstance(number, bool) or not isinstance(number, int) or number < 0:
            raise ValidationError("number must be a non-negative integer")
        captured_at = to_iso(self._clock())

        def mutate(run: Run) -> TransitionResult:
            if not run.is_capturing():
                return TransitionResult.invalid_state(run)
            run.upsert_prompt(
                Prompt(
                    number=number,
                    title=title,
                    text=text,
                    artifact=artifact or None,
                    observation=observation or "",
                    captured_at=captured_at,
                )
            )
            return TransitionResult.success(run)

        result = await self._runs.update_run(run_id, mutate)
        self._log("save_capture_prompt", run_id, result, extra=f"v{number}")
        return result

    async def complete_capture(self, run_id: str) -> TransitionResult:
        def mutate(run: Run) -> TransitionResult:
            if run.state is not RunState.CAPTURING:
                return TransitionResult.invalid_state(run)
            run.state = RunState.CAPTURED
            return TransitionResult.success(run)

        result = await self._runs.update_run(run_id, mutate)
        self._log("complete_capture", run_id, result)
        return result

    async def score(self, payload: ScoreInput) -> TransitionResult:
        result = await self._runs.update_run(payload.run_id, lambda run: _apply_score(run, payload))
        rating = result.run.rating.value if result.ok and result.run.rating else "-"
        self._log("score", payload.run_id, result, extra=f"rating={rating}")
        return result

    async def update_prompt_status(
        self, run_id: str, number: int, status: PromptStatus | str
    ) -> TransitionResult:
        parsed = parse_prompt_status(status)
        if parsed is None:
            raise ValidationError("status must be pass, fail, or warning")

        def mutate(run: Run) -> TransitionResult:
            if not run.is_scored():
                return TransitionResult.invalid_state(run)
            prompt = run.prompt(number)
            if prompt is None:
                return TransitionResult.not_found()
            prompt.status = parsed
            return TransitionResult.success(run)

        result = await self._runs.update_run(run_id, mutate)
        self._log("update_prompt_status", run_id, result, extra=f"v{number}={parsed.value}")
        return result

    async def pending(self) -> Dict[str, List[Run]]:
        """Captured runs waiting for a score, plus runs still being captured."""
        runs = await self._runs.list_runs()
        return {
            "pending": [r for r in runs if r.state is RunState.CAPTURED],
            "capturing": [r for r in runs if r.state is RunState.CAPTURING],
        }

    @staticmethod
    def _log(op: str, run_id: str, result: TransitionResult, *, extra: str = "") -> None:
        outcome = "ok" if result.ok else result.error.value
        detail = f" {extra}" if extra else ""
        Logger.info(f"{op} run={run_id}{detail} -> {outcome}", file=LogFiles.LIFECYCLE)
