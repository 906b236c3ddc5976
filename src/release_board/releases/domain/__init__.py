"""
Release Domain Layer
====================

Contains:
- Entities: ReleaseEpic, WorkItemNode, ReleaseMetrics, Deployment,
  LatestDeployments, ReleaseDetails
- Value Objects: BoardConfig, BoardScope
- Domain Services: MetricsEngine

This layer has no dependencies on infrastructure.
"""

from release_board.releases.domain.value_objects import (
    MetricsEngine,
    BoardConfig,
    BoardScope,
)
from release_board.releases.domain.entities import (
    ReleaseEpic,
    WorkItemNode,
    ReleaseMetrics,
    Deployment,
    LatestDeployments,
    ReleaseDetails,
    unique_by_id,
)

__all__ = [
    # Entities
    "ReleaseEpic",
    "WorkItemNode",
    "ReleaseMetrics",
    "Deployment",
    "LatestDeployments",
    "ReleaseDetails",
    "unique_by_id",
    # Value Objects & Services
    "MetricsEngine",
    "BoardConfig",
    "BoardScope",
]
