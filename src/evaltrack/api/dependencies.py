from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from evaltrack.application.ports.storage_port import StoragePort
from evaltrack.application.services.issue_aggregator import IssueAggregator
from evaltrack.application.services.run_lifecycle import RunLifecycleManager
from evaltrack.infrastructure.stores.annotation_store import AnnotationStore
from evaltrack.infrastructure.stores.factory import build_storage
from evaltrack.infrastructure.stores.planned_fix_store import PlannedFixStore
from evaltrack.infrastructure.stores.run_store import RunStore
from evaltrack.settings import Settings


@dataclass
class Services:
    """Everything a request handler needs, wired once per process."""

    settings: Settings
    storage: StoragePort
    runs: RunStore
    annotations: AnnotationStore
    fixes: PlannedFixStore
    lifecycle: RunLifecycleManager
    aggregator: IssueAggregator

    def close(self) -> None:
        self.storage.close()


def build_services(settings: Settings, storage: StoragePort | None = None) -> Services:
    storage = storage or build_storage(settings)
    timeout = settings.store_timeout_seconds
    runs = RunStore(storage, timeout_seconds=timeout)
    annotations = AnnotationStore(storage, timeout_seconds=timeout)
    fixes = PlannedFixStore(storage, timeout_seconds=timeout)
    return Services(
        settings=settings,
        storage=storage,
        runs=runs,
        annotations=annotations,
        fixes=fixes,
        lifecycle=RunLifecycleManager(runs),
        aggregator=IssueAggregator(runs, annotations, fixes),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
