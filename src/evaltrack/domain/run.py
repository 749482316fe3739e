# src/evaltrack/domain/run.py
"""
Run domain model.

A Run is one evaluation session against one output format. It owns an ordered
list of Prompts numbered from 1 (0 is reserved for pre-existing source content).

- RunState: capture/score lifecycle, with LEGACY for records written before the
  state field existed (always treated as SCORED)
- Rating: 3-tier verdict derived from the overall score
- Run / Prompt: the persisted aggregate
- TransitionResult: sentinel-style outcome returned by lifecycle operations
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from evaltrack.domain.errors import ValidationError

DEFAULT_TEST_TYPE = "ai-generated-iteration"


class RunState(str, Enum):
    CAPTURING = "capturing"
    CAPTURED = "captured"
    SCORED = "scored"
    LEGACY = "legacy"

    def effective(self) -> "RunState":
        return RunState.SCORED if self is RunState.LEGACY else self

    @classmethod
    def parse(cls, raw: Any) -> "RunState":
        if raw is None or str(raw).strip() == "":
            return cls.LEGACY
        text = str(raw).strip().lower()
        if text == cls.LEGACY.value:
            raise ValidationError("state 'legacy' cannot be written explicitly")
        try:
            return cls(text)
        except ValueError as exc:
            raise ValidationError(f"unknown run state: {raw}") from exc


class Rating(str, Enum):
    BAD = "bad"
    GOOD = "good"
    GREAT = "great"


class PromptStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


def derive_rating(overall: float) -> Rating:
    if overall >= 8:
        return Rating.GREAT
    if overall >= 5:
        return Rating.GOOD
    return Rating.BAD


def parse_rating(raw: Any) -> Optional[Rating]:
    if raw is None or raw == "":
        return None
    try:
        return Rating(str(raw).strip().lower())
    except ValueError as exc:
        raise ValidationError(f"unknown rating: {raw}") from exc


def parse_prompt_status(raw: Any) -> Optional[PromptStatus]:
    if raw is None or raw == "":
        return None
    try:
        return PromptStatus(str(raw).strip().lower())
    except ValueError as exc:
        raise ValidationError("status must be pass, fail, or warning") from exc


def _require_number(data: Dict[str, Any], *keys: str) -> float:
    for key in keys:
        if key in data:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"{keys[0]} must be a number")
            return float(value)
    raise ValidationError(f"{keys[0]} is required")


def parse_str_list(values: Any, name: str) -> List[str]:
    if values is None:
        return []
    if not isinstance(values, list):
        raise ValidationError(f"{name} must be a list of strings")
    return [str(v) for v in values]


@dataclass
class Scores:
    overall: float
    prompt_adherence: float
    iteration_quality: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "promptAdherence": self.prompt_adherence,
            "iterationQuality": self.iteration_quality,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Scores":
        if not isinstance(data, dict):
            raise ValidationError(
                "scores must include overall, promptAdherence, and iterationQuality as numbers"
            )
        return cls(
            overall=_require_number(data, "overall"),
            prompt_adherence=_require_number(data, "promptAdherence", "prompt_adherence"),
            iteration_quality=_require_number(data, "iterationQuality", "iteration_quality"),
        )


@dataclass
class IterationAnalysis:
    v1_to_v2: str = ""
    v2_to_v3: str = ""
    regressions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "v1ToV2": self.v1_to_v2,
            "v2ToV3": self.v2_to_v3,
            "regressions": list(self.regressions),
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["IterationAnalysis"]:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ValidationError("iterationAnalysis must be an object")
        return cls(
            v1_to_v2=str(data.get("v1ToV2") or data.get("v1_to_v2") or ""),
            v2_to_v3=str(data.get("v2ToV3") or data.get("v2_to_v3") or ""),
            regressions=parse_str_list(data.get("regressions"), "regressions"),
        )


@dataclass
class Prompt:
    """
    One step within a run.

    During capture only `observation`/`captured_at` are filled; scoring folds the
    observation into `note` and sets `status` (and optionally `evaluation`).
    """

    number: int
    title: str
    text: str
    artifact: Optional[str] = None
    observation: Optional[str] = None
    captured_at: Optional[str] = None
    status: Optional[PromptStatus] = None
    note: Optional[str] = None
    evaluation: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "text": self.text,
            "artifact": self.artifact,
            "observation": self.observation,
            "capturedAt": self.captured_at,
            "status": self.status.value if self.status else None,
            "note": self.note,
            "evaluation": self.evaluation,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Prompt":
        if not isinstance(data, dict):
            raise ValidationError("prompt must be an object")
        number = data.get("number")
        if isinstance(number, bool) or not isinstance(number, int) or number < 0:
            raise ValidationError("prompt number must be a non-negative integer")
        evaluation = data.get("evaluation")
        if evaluation is not None and not isinstance(evaluation, dict):
            raise ValidationError("prompt evaluation must be an object")
        return cls(
            number=number,
            title=str(data.get("title") or ""),
            text=str(data.get("text") or ""),
            artifact=data.get("artifact") or None,
            observation=data.get("observation"),
            captured_at=data.get("capturedAt") or data.get("captured_at"),
            status=parse_prompt_status(data.get("status")),
            note=data.get("note"),
            evaluation=evaluation,
        )


@dataclass
class Run:
    id: str
    format: str
    timestamp: str
    test_type: str = DEFAULT_TEST_TYPE
    state: RunState = RunState.LEGACY
    rating: Optional[Rating] = None
    scores: Optional[Scores] = None
    good: List[str] = field(default_factory=list)
    bad: List[str] = field(default_factory=list)
    summary: Optional[str] = None
    issues: Optional[List[Dict[str, str]]] = None
    iteration_analysis: Optional[IterationAnalysis] = None
    prompts: List[Prompt] = field(default_factory=list)

    @property
    def effective_state(self) -> RunState:
        return self.state.effective()

    def is_scored(self) -> bool:
        return self.effective_state is RunState.SCORED

    def is_capturing(self) -> bool:
        return self.state in (RunState.CAPTURING, RunState.CAPTURED)

    def prompt(self, number: int) -> Optional[Prompt]:
        for prompt in self.prompts:
            if prompt.number == number:
                return prompt
        return None

    def prompt_numbers(self) -> List[int]:
        return [p.number for p in self.prompts]

    def upsert_prompt(self, prompt: Prompt) -> None:
        """Replace the prompt with the same number or append; keeps number order."""
        self.prompts = [p for p in self.prompts if p.number != prompt.number]
        self.prompts.append(prompt)
        self.prompts.sort(key=lambda p: p.number)

    def to_dict(self, *, include_derived: bool = True) -> Dict[str, Any]:
        """
        Serialize to the camelCase document shape.

        With include_derived (API responses) the legacy state is reported as
        "scored" and a missing rating is derived from the scores. Storage uses
        include_derived=False so legacy records keep their original shape.
        """
        data: Dict[str, Any] = {
            "id": self.id,
            "testType": self.test_type,
            "format": self.format,
            "timestamp": self.timestamp,
        }
        if include_derived:
            data["state"] = self.effective_state.value
            rating = run_rating(self)
            data["rating"] = rating.value if rating else None
        else:
            if self.state is not RunState.LEGACY:
                data["state"] = self.state.value
            data["rating"] = self.rating.value if self.rating else None
        data.update(
            {
                "scores": self.scores.to_dict() if self.scores else None,
                "good": list(self.good),
                "bad": list(self.bad),
                "summary": self.summary,
                "issues": [dict(i) for i in self.issues] if self.issues is not None else None,
                "iterationAnalysis": (
                    self.iteration_analysis.to_dict() if self.iteration_analysis else None
                ),
                "prompts": [p.to_dict() for p in self.prompts],
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Run":
        if not isinstance(data, dict):
            raise ValidationError("run must be an object")
        run_id = str(data.get("id") or "").strip()
        fmt = str(data.get("format") or "").strip()
        timestamp = str(data.get("timestamp") or "").strip()
        if not run_id or not fmt or not timestamp:
            raise ValidationError("id, format, and timestamp are required")

        prompts_raw = data.get("prompts") or []
        if not isinstance(prompts_raw, list):
            raise ValidationError("prompts must be a list")
        prompts = [Prompt.from_dict(p) for p in prompts_raw]
        numbers = [p.number for p in prompts]
        if len(numbers) != len(set(numbers)):
            raise ValidationError("prompt numbers must be unique within a run")

        issues_raw = data.get("issues")
        issues: Optional[List[Dict[str, str]]] = None
        if issues_raw is not None:
            if not isinstance(issues_raw, list):
                raise ValidationError("issues must be a list")
            issues = [
                {"severity": str(i.get("severity") or ""), "text": str(i.get("text") or "")}
                for i in issues_raw
                if isinstance(i, dict)
            ]

        scores_raw = data.get("scores")
        return cls(
            id=run_id,
            format=fmt,
            timestamp=timestamp,
            test_type=str(data.get("testType") or data.get("test_type") or DEFAULT_TEST_TYPE),
            state=RunState.parse(data.get("state")),
            rating=parse_rating(data.get("rating")),
            scores=Scores.from_dict(scores_raw) if scores_raw is not None else None,
            good=parse_str_list(data.get("good"), "good"),
            bad=parse_str_list(data.get("bad"), "bad"),
            summary=data.get("summary"),
            issues=issues,
            iteration_analysis=IterationAnalysis.from_dict(
                data.get("iterationAnalysis", data.get("iteration_analysis"))
            ),
            prompts=sorted(prompts, key=lambda p: p.number),
        )


def run_rating(run: Run) -> Optional[Rating]:
    """Rating for dashboards: explicit when present, else derived from scores.overall."""
    if not run.is_scored():
        return None
    if run.rating is not None:
        return run.rating
    if run.scores is not None:
        return derive_rating(run.scores.overall)
    return None


class LifecycleError(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"


@dataclass
class TransitionResult:
    run: Optional[Run] = None
    error: Optional[LifecycleError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.run is not None

    @classmethod
    def success(cls, run: Run) -> "TransitionResult":
        return cls(run=run)

    @classmethod
    def not_found(cls) -> "TransitionResult":
        return cls(error=LifecycleError.NOT_FOUND)

    @classmethod
    def invalid_state(cls, run: Optional[Run] = None) -> "TransitionResult":
        return cls(run=run, error=LifecycleError.INVALID_STATE)
