"""API Routes"""

from . import (
    runs,
    capture,
    annotations,
    planned_fixes,
    issues,
    artifacts,
)

__all__ = [
    "runs",
    "capture",
    "annotations",
    "planned_fixes",
    "issues",
    "artifacts",
]
