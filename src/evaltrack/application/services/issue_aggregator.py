"""
Read-side reporting over annotations, runs and planned fixes.

- enrich(): flat annotation log -> issues with run context, strictly ordered
- themes(): annotations (plus scored runs' "bad" notes) -> deduplicated
  cross-run themes driven by an ordered rule table
- IssueAggregator: store-backed wrappers used by the HTTP layer and the CLI
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from evaltrack.domain.annotation import (
    ISSUE_TYPE_LABELS,
    Annotation,
    IssueType,
    Severity,
)
from evaltrack.domain.catalog import category_for_test_type
from evaltrack.domain.planned_fix import PlannedFix
from evaltrack.domain.run import Run
from evaltrack.infrastructure.stores.annotation_store import AnnotationStore, oldest_first
from evaltrack.infrastructure.stores.planned_fix_store import PlannedFixStore
from evaltrack.infrastructure.stores.run_store import RunStore, newest_first
from evaltrack.utils.time_utils import parse_instant


def artifact_url(artifact: Optional[str]) -> str:
    """Absolute URLs pass through; relative paths get a leading slash."""
    if not artifact:
        return ""
    if artifact.startswith("http://") or artifact.startswith("https://"):
        return artifact
    return artifact if artifact.startswith("/") else f"/{artifact}"


@dataclass
class EnrichedIssue:
    annotation: Annotation
    format: str
    test_type: str
    test_category: str
    artifact_path: str
    link: str
    planned_fix_name: Optional[str] = None

    @property
    def id(self) -> str:
        return self.annotation.id

    @property
    def severity(self) -> Severity:
        return self.annotation.severity

    def sort_key(self) -> Tuple[int, float, str]:
        created = parse_instant(self.annotation.created_at).timestamp()
        return (self.severity.rank, -created, self.id)

    def to_dict(self) -> Dict[str, Any]:
        a = self.annotation
        return {
            "id": a.id,
            "runId": a.run_id,
            "promptNumber": a.prompt_number,
            "note": a.note,
            "severity": a.severity.value,
            "issueType": a.issue_type.value,
            "author": a.author.value,
            "owner": a.owner,
            "plannedFixId": a.planned_fix_id,
            "plannedFixName": self.planned_fix_name,
            "testType": self.test_type,
            "testCategory": self.test_category,
            "format": self.format,
            "artifactPath": self.artifact_path,
            "link": self.link,
            "createdAt": a.created_at,
        }


def enrich(
    annotations: Iterable[Annotation],
    runs: Iterable[Run],
    fixes: Optional[Iterable[PlannedFix]] = None,
) -> List[EnrichedIssue]:
    runs_by_id = {r.id: r for r in runs}
    fix_names = {f.id: f.name for f in (fixes or [])}

    out: List[EnrichedIssue] = []
    for annotation in annotations:
        run = runs_by_id.get(annotation.run_id)
        if run is None:
            continue
        n = annotation.prompt_number
        prompt = run.prompt(n)
        own_artifact = artifact_url(prompt.artifact) if prompt else ""
        out.append(
            EnrichedIssue(
                annotation=annotation,
                format=run.format,
                test_type=run.test_type,
                test_category=category_for_test_type(run.test_type),
                artifact_path=own_artifact or f"/artifacts/{run.id}/v{n}.png",
                link=f"/{run.test_type}/{run.format}/{run.id}#v{n}",
                planned_fix_name=fix_names.get(annotation.planned_fix_id)
                if annotation.planned_fix_id
                else None,
            )
        )
    out.sort(key=lambda issue: issue.sort_key())
    return out


# -- themes ------------------------------------------------------------------


@dataclass(frozen=True)
class Manifestation:
    """Matches lower-cased text containing every `all_of` word and at least one `any_of` word."""

    label: str
    any_of: Tuple[str, ...]
    all_of: Tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        if not all(word in text for word in self.all_of):
            return False
        return any(word in text for word in self.any_of)


@dataclass(frozen=True)
class ThemeRule:
    id: str
    severity: Severity
    title: str
    description: str
    issue_types: frozenset
    manifestations: Tuple[Manifestation, ...]

    def matched_labels(self, text: str) -> List[str]:
        lower = (text or "").lower()
        return [m.label for m in self.manifestations if m.matches(lower)]


_NO_CONTEXT_DESCRIPTION = (
    "The product does not receive or retain context from previous prompts in the same "
    "session. Each prompt is treated as independent, causing cascading failures in "
    "multi-step workflows."
)

THEME_RULES: Sequence[ThemeRule] = (
    ThemeRule(
        id="no-iteration-context",
        severity=Severity.HIGH,
        title="No Context Passed Between Iterations",
        description=_NO_CONTEXT_DESCRIPTION,
        issue_types=frozenset({IssueType.CONTEXT_LOST, IssueType.DATA_DELETED}),
        manifestations=(
            Manifestation(
                "Treats each prompt as starting fresh",
                ("iteration", "continuity", "fresh", "each prompt", "state"),
            ),
            Manifestation(
                "Deletes existing content when editing (doesn't see what's there)",
                ("deleted", "lost", "removed", "destructive"),
            ),
            Manifestation(
                "Creates template/instructions instead of editing actual content",
                ("template", "placeholder", "instruction", "generic"),
            ),
            Manifestation(
                "Regenerates content with different values instead of preserving",
                ("regenerated", "different values", "different content"),
            ),
            Manifestation(
                "Creates new artifact instead of modifying existing one",
                ("new artifact", "standalone", "separate", "instead of integrating"),
            ),
        ),
    ),
    ThemeRule(
        id="style-not-preserved",
        severity=Severity.MEDIUM,
        title="Visual Style Not Preserved Across Iterations",
        description=(
            "When iterating on visual artifacts, the original style/theme is not maintained. "
            "Colors, design language, and visual consistency drift between versions."
        ),
        issue_types=frozenset({IssueType.STYLE_DRIFT}),
        manifestations=(
            Manifestation(
                "Style changed unexpectedly between versions",
                ("changed", "different"),
                all_of=("style",),
            ),
            Manifestation(
                "Color coding/theming lost during iteration",
                ("lost", "uniform", "same", "changed"),
                all_of=("color",),
            ),
            Manifestation("Visual organization/groupings lost", ("lost",), all_of=("visual",)),
        ),
    ),
    ThemeRule(
        id="text-integrity",
        severity=Severity.MEDIUM,
        title="Text Rendered Incorrectly",
        description="Generated text is cut off, garbled, or unreadable in the artifact.",
        issue_types=frozenset({IssueType.TEXT_BROKEN}),
        manifestations=(
            Manifestation("Text truncated or cut off", ("truncat", "cut off", "clipped")),
            Manifestation("Garbled or broken characters", ("garbled", "broken text", "encoding")),
            Manifestation("Overlapping or unreadable text", ("overlap", "unreadable", "illegible")),
        ),
    ),
    ThemeRule(
        id="wrong-output",
        severity=Severity.MEDIUM,
        title="Output Does Not Match the Request",
        description="The artifact produced is not what the prompt asked for.",
        issue_types=frozenset({IssueType.WRONG_OUTPUT}),
        manifestations=(
            Manifestation(
                "Ignores the requested change",
                ("ignored", "didn't", "did not", "not what"),
            ),
            Manifestation(
                "Produces the wrong kind of artifact",
                ("wrong format", "wrong type", "instead of a"),
            ),
        ),
    ),
)


@dataclass
class ThemeOccurrence:
    run_id: str
    format: str
    prompt_number: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"runId": self.run_id, "format": self.format, "promptNumber": self.prompt_number}


@dataclass
class IssueTheme:
    id: str
    severity: Severity
    title: str
    description: str
    affected_formats: List[str] = field(default_factory=list)
    occurrences: List[ThemeOccurrence] = field(default_factory=list)
    annotation_ids: List[str] = field(default_factory=list)
    manifestations: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.occurrences)

    def add(
        self,
        run: Run,
        severity: Severity,
        *,
        prompt_number: Optional[int] = None,
        labels: Iterable[str] = (),
        annotation_id: Optional[str] = None,
    ) -> None:
        if severity.rank < self.severity.rank:
            self.severity = severity
        if not any(o.run_id == run.id and o.format == run.format for o in self.occurrences):
            self.occurrences.append(ThemeOccurrence(run.id, run.format, prompt_number))
        if run.format not in self.affected_formats:
            self.affected_formats.append(run.format)
        for label in labels:
            if label not in self.manifestations:
                self.manifestations.append(label)
        if annotation_id and annotation_id not in self.annotation_ids:
            self.annotation_ids.append(annotation_id)

    def full_description(self) -> str:
        if not self.manifestations:
            return self.description
        return self.description + "\n\nManifests as:\n• " + "\n• ".join(self.manifestations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.full_description(),
            "affectedFormats": list(self.affected_formats),
            "occurrences": [o.to_dict() for o in self.occurrences],
            "count": self.count,
            "annotationIds": list(self.annotation_ids),
        }


def _classify(
    annotation: Annotation, rules: Sequence[ThemeRule]
) -> Tuple[Optional[ThemeRule], List[str]]:
    for rule in rules:
        labels = rule.matched_labels(annotation.note)
        if annotation.issue_type in rule.issue_types or labels:
            return rule, labels
    return None, []


def themes(
    annotations: Iterable[Annotation],
    runs: Iterable[Run],
    rules: Sequence[ThemeRule] = THEME_RULES,
) -> List[IssueTheme]:
    """
    Cluster findings into report themes.

    Each non-praise annotation lands in the first rule matching its issue type or
    note keywords, otherwise in an `issue-type:{type}` fallback theme. Free-text
    `bad` items of scored runs feed every rule whose keywords they hit. A theme
    counts each (run, format) once.
    """
    runs_list = list(runs)
    runs_by_id = {r.id: r for r in runs_list}
    found: Dict[str, IssueTheme] = {}

    def theme_for(rule: ThemeRule) -> IssueTheme:
        if rule.id not in found:
            # start at the mildest defect rank so add() can only raise it
            found[rule.id] = IssueTheme(
                id=rule.id, severity=Severity.LOW, title=rule.title, description=rule.description
            )
        return found[rule.id]

    for annotation in oldest_first(annotations):
        if annotation.severity.is_praise:
            continue
        run = runs_by_id.get(annotation.run_id)
        if run is None:
            continue
        rule, labels = _classify(annotation, rules)
        if rule is None:
            issue_type = annotation.issue_type
            key = f"issue-type:{issue_type.value}"
            if key not in found:
                info = ISSUE_TYPE_LABELS[issue_type]
                found[key] = IssueTheme(
                    id=key, severity=Severity.LOW, title=info["label"], description=info["description"]
                )
            target = found[key]
        else:
            target = theme_for(rule)
        target.add(
            run,
            annotation.severity,
            prompt_number=annotation.prompt_number,
            labels=labels,
            annotation_id=annotation.id,
        )

    for run in newest_first(runs_list):
        if not run.is_scored():
            continue
        for item in run.bad:
            for rule in rules:
                labels = rule.matched_labels(item)
                if labels:
                    theme_for(rule).add(run, rule.severity, labels=labels)

    result = [t for t in found.values() if t.count > 0]
    result.sort(key=lambda t: (t.severity.rank, -t.count, t.id))
    return result


# -- store-backed facade ------------------------------------------------------


@dataclass
class FixDetail:
    fix: PlannedFix
    issues: List[EnrichedIssue]

    def severity_counts(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for issue in self.issues:
            counts[issue.severity.value] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fix": self.fix.to_dict(),
            "issues": [i.to_dict() for i in self.issues],
            "counts": self.severity_counts(),
            "total": len(self.issues),
        }


class IssueAggregator:
    def __init__(
        self,
        runs: RunStore,
        annotations: AnnotationStore,
        fixes: PlannedFixStore,
    ):
        self._runs = runs
        self._annotations = annotations
        self._fixes = fixes

    async def issues(self) -> List[EnrichedIssue]:
        runs = await self._runs.list_runs()
        annotations = await self._annotations.list_annotations()
        fixes = await self._fixes.list_fixes()
        return enrich(annotations, runs, fixes)

    async def issues_report(self) -> Dict[str, Any]:
        runs = await self._runs.list_runs()
        annotations = await self._annotations.list_annotations()
        fixes = await self._fixes.list_fixes()
        return {
            "issues": [i.to_dict() for i in enrich(annotations, runs, fixes)],
            "totalRuns": len(runs),
        }

    async def themes(self) -> List[IssueTheme]:
        runs = await self._runs.list_runs()
        annotations = await self._annotations.list_annotations()
        return themes(annotations, runs)

    async def themes_report(self) -> Dict[str, Any]:
        return {"themes": [t.to_dict() for t in await self.themes()]}

    async def fix_detail(self, fix_id: str) -> Optional[FixDetail]:
        fix = await self._fixes.get_fix(fix_id)
        if fix is None:
            return None
        runs = await self._runs.list_runs()
        linked = await self._annotations.list_annotations(planned_fix_id=fix_id)
        return FixDetail(fix=fix, issues=enrich(linked, runs, [fix]))
