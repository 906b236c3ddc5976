"""
Release Domain Entities
========================

Pure Python domain entities for release tracking.

These entities carry the invariants of the board and are free of
transport or framework concerns. Wire payloads are parsed into them by the
application DTOs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from release_board.config import DeploymentEnvironment, WorkItemType
from release_board.releases.domain.value_objects import MetricsEngine


@dataclass
class ReleaseEpic:
    """
    Epic-type work item that anchors one release.

    `progress` is derived from the item counts and cannot be set directly.
    """

    id: int
    version: str
    status: str
    completed_items: int = 0
    total_items: int = 0
    start_date: Optional[str] = None
    target_date: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        if self.total_items < 0 or self.completed_items < 0:
            raise ValueError("item counts cannot be negative")
        if self.completed_items > self.total_items:
            raise ValueError("completed_items cannot exceed total_items")

    @property
    def progress(self) -> int:
        return MetricsEngine.progress_percent(self.completed_items, self.total_items)


@dataclass(frozen=True)
class WorkItemNode:
    """A work item as shown on the board. Identity is `id`."""

    id: int
    title: str
    work_item_type: str
    state: str
    assigned_to: Optional[str] = None
    target_date: Optional[str] = None
    parent_id: Optional[int] = None

    @property
    def can_have_children(self) -> bool:
        return self.work_item_type in (WorkItemType.EPIC.value, WorkItemType.FEATURE.value)


def unique_by_id(items: List[WorkItemNode]) -> List[WorkItemNode]:
    """Keep the first occurrence of each id, preserving order."""
    seen = set()
    result = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        result.append(item)
    return result


@dataclass
class ReleaseMetrics:
    """Feature counts for a release, as computed by the work item service."""

    total_features: int = 0
    completed_features: int = 0
    in_progress_features: int = 0
    blocked_features: int = 0
    ready_for_release_features: int = 0

    @property
    def completion_percent(self) -> int:
        return MetricsEngine.progress_percent(self.completed_features, self.total_features)


@dataclass(frozen=True)
class Deployment:
    """Append-only record of a release being deployed to an environment."""

    environment: DeploymentEnvironment
    deployed_by: str
    deployed_at: datetime
    work_item_ids: List[int] = field(default_factory=list)
    notes: Optional[str] = None
    id: Optional[str] = None
    release_version: Optional[str] = None


@dataclass
class LatestDeployments:
    """Most recent deployment per environment; slots are absent when never deployed."""

    dev: Optional[Deployment] = None
    staging: Optional[Deployment] = None
    production: Optional[Deployment] = None

    def for_environment(self, environment: DeploymentEnvironment) -> Optional[Deployment]:
        return getattr(self, DeploymentEnvironment(environment).value)

    def as_dict(self) -> Dict[str, Optional[Deployment]]:
        return {env.value: self.for_environment(env) for env in DeploymentEnvironment}


@dataclass
class ReleaseDetails:
    """
    Detail state of one release.

    Each field is fetched on its own; `errors` maps a field name
    ("work_items", "metrics", "latest_deployments") to the failure message
    when that field could not be loaded.
    """

    version: str
    work_items: List[WorkItemNode] = field(default_factory=list)
    metrics: Optional[ReleaseMetrics] = None
    latest_deployments: LatestDeployments = field(default_factory=LatestDeployments)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def work_item_ids(self) -> List[int]:
        return [item.id for item in self.work_items]
