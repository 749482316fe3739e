"""Annotation domain value objects."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from evaltrack.domain.errors import ValidationError


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    GOOD = "good"  # praise, not a defect

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]

    @property
    def is_praise(self) -> bool:
        return self is Severity.GOOD


SEVERITY_RANK: Dict[Severity, int] = {
    Severity.HIGH: 0,
    Severity.MEDIUM: 1,
    Severity.LOW: 2,
    Severity.GOOD: 3,
}


class IssueType(str, Enum):
    CONTEXT_LOST = "context-lost"
    STYLE_DRIFT = "style-drift"
    TEXT_BROKEN = "text-broken"
    DATA_DELETED = "data-deleted"
    WRONG_OUTPUT = "wrong-output"
    OTHER = "other"


ISSUE_TYPE_LABELS: Dict[IssueType, Dict[str, str]] = {
    IssueType.CONTEXT_LOST: {
        "label": "Context Lost",
        "description": "Lost previous iteration context",
    },
    IssueType.STYLE_DRIFT: {
        "label": "Style Drift",
        "description": "Visual style changed unexpectedly",
    },
    IssueType.TEXT_BROKEN: {
        "label": "Text Broken",
        "description": "Truncated, garbled, or broken text",
    },
    IssueType.DATA_DELETED: {
        "label": "Data Deleted",
        "description": "Content was deleted unexpectedly",
    },
    IssueType.WRONG_OUTPUT: {
        "label": "Wrong Output",
        "description": "Output doesn't match request",
    },
    IssueType.OTHER: {"label": "Other", "description": "Other issue"},
}


class Author(str, Enum):
    FRANK = "frank"  # automated reviewer
    HUMAN = "human"


def _parse_enum(enum_cls, raw: Any, name: str):
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{name} must be one of: {allowed}") from exc


def parse_severity(raw: Any) -> Severity:
    return _parse_enum(Severity, raw, "severity")


def parse_issue_type(raw: Any) -> IssueType:
    return _parse_enum(IssueType, raw, "issueType")


def parse_author(raw: Any) -> Author:
    if raw is None or raw == "":
        return Author.HUMAN
    return _parse_enum(Author, raw, "author")


@dataclass(frozen=True)
class MessageTarget:
    """Annotation about the whole message/prompt."""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "message"}


@dataclass(frozen=True)
class ImagePointTarget:
    """Annotation pinned to a point on the artifact image, in percent of width/height."""

    x: float
    y: float
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "image", "x": self.x, "y": self.y, "label": self.label}


AnnotationTarget = Union[MessageTarget, ImagePointTarget]


def _percent(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"target {name} must be a number")
    if not 0 <= float(value) <= 100:
        raise ValidationError(f"target {name} must be between 0 and 100")
    return float(value)


def parse_target(raw: Any) -> Optional[AnnotationTarget]:
    """
    Accepts `{"type": "message"}`, `{"type": "image", "x", "y", "label"}` and
    the older `{"type": "image", "marker": {...}}` shape.
    """
    if raw is None:
        return None
    if isinstance(raw, (MessageTarget, ImagePointTarget)):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError("target must be an object")
    kind = str(raw.get("type") or "").strip().lower()
    if kind == "message":
        return MessageTarget()
    if kind == "image":
        point = raw.get("marker") if isinstance(raw.get("marker"), dict) else raw
        label = point.get("label")
        label = str(label).strip()[:64] if label else None
        return ImagePointTarget(
            x=_percent(point.get("x"), "x"),
            y=_percent(point.get("y"), "y"),
            label=label or None,
        )
    raise ValidationError("target type must be 'message' or 'image'")


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _prompt_number(data: Dict[str, Any]) -> int:
    raw = data.get("promptNumber", data.get("messageId", data.get("prompt_number")))
    if raw is None:
        raise ValidationError("promptNumber is required")
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        raise ValidationError("promptNumber must be a non-negative integer")
    return raw


@dataclass
class AnnotationInput:
    """
    Upsert payload. Absent optional fields mean null, never "leave unchanged".
    """

    run_id: str
    prompt_number: int
    issue_type: IssueType
    severity: Severity
    note: str = ""
    author: Author = Author.HUMAN
    planned_fix_id: Optional[str] = None
    owner: Optional[str] = None
    target: Optional[AnnotationTarget] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "AnnotationInput":
        if not isinstance(data, dict):
            raise ValidationError("annotation must be an object")
        run_id = str(data.get("runId") or data.get("run_id") or "").strip()
        if not run_id:
            raise ValidationError("runId is required")
        if not data.get("issueType") and not data.get("issue_type"):
            raise ValidationError("issueType is required")
        if not data.get("severity"):
            raise ValidationError("severity is required")
        return cls(
            id=_optional_text(data.get("id")),
            run_id=run_id,
            prompt_number=_prompt_number(data),
            issue_type=parse_issue_type(data.get("issueType") or data.get("issue_type")),
            severity=parse_severity(data.get("severity")),
            note=str(data.get("note") or ""),
            author=parse_author(data.get("author")),
            planned_fix_id=_optional_text(data.get("plannedFixId", data.get("planned_fix_id"))),
            owner=_optional_text(data.get("owner")),
            target=parse_target(data.get("target")),
        )


@dataclass
class Annotation:
    id: str
    run_id: str
    prompt_number: int
    issue_type: IssueType
    severity: Severity
    note: str
    created_at: str
    updated_at: str
    author: Author = Author.HUMAN
    planned_fix_id: Optional[str] = None
    owner: Optional[str] = None
    target: Optional[AnnotationTarget] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "runId": self.run_id,
            "promptNumber": self.prompt_number,
            "author": self.author.value,
            "issueType": self.issue_type.value,
            "severity": self.severity.value,
            "note": self.note,
            "plannedFixId": self.planned_fix_id,
            "owner": self.owner,
            "target": self.target.to_dict() if self.target else None,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Annotation":
        draft = AnnotationInput.from_dict(data)
        if not draft.id:
            raise ValidationError("annotation id is required")
        return cls(
            id=draft.id,
            run_id=draft.run_id,
            prompt_number=draft.prompt_number,
            issue_type=draft.issue_type,
            severity=draft.severity,
            note=draft.note,
            author=draft.author,
            planned_fix_id=draft.planned_fix_id,
            owner=draft.owner,
            target=draft.target,
            created_at=str(data.get("createdAt") or data.get("created_at") or ""),
            updated_at=str(data.get("updatedAt") or data.get("updated_at") or ""),
        )
