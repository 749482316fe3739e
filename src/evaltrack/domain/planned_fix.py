"""Planned fix: a named remediation effort grouping annotations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from evaltrack.domain.errors import ValidationError


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class PlannedFixInput:
    name: str
    jira_ticket: Optional[str] = None
    owner: Optional[str] = None
    resolved: bool = False
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "PlannedFixInput":
        if not isinstance(data, dict):
            raise ValidationError("planned fix must be an object")
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("Missing required field: name")
        return cls(
            id=_optional_text(data.get("id")),
            name=name,
            jira_ticket=_optional_text(data.get("jiraTicket", data.get("jira_ticket"))),
            owner=_optional_text(data.get("owner")),
            resolved=bool(data.get("resolved", False)),
        )


@dataclass
class PlannedFix:
    id: str
    name: str
    created_at: str
    updated_at: str
    jira_ticket: Optional[str] = None
    owner: Optional[str] = None
    resolved: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "jiraTicket": self.jira_ticket,
            "owner": self.owner,
            "resolved": self.resolved,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PlannedFix":
        draft = PlannedFixInput.from_dict(data)
        if not draft.id:
            raise ValidationError("planned fix id is required")
        return cls(
            id=draft.id,
            name=draft.name,
            jira_ticket=draft.jira_ticket,
            owner=draft.owner,
            resolved=draft.resolved,
            created_at=str(data.get("createdAt") or data.get("created_at") or ""),
            updated_at=str(data.get("updatedAt") or data.get("updated_at") or ""),
        )
