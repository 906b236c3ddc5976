"""
Release Value Objects
======================

Immutable value objects and stateless calculations for the release domain.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator

from release_board.config import (
    HealthStatus, StateBucket,
    COMPLETED_STATES, IN_PROGRESS_STATES, BLOCKED_STATES,
    DEFAULT_UAT_READY_ALIASES, PROPAGATION_TYPES,
)

if TYPE_CHECKING:
    from release_board.releases.domain.entities import ReleaseMetrics


class MetricsEngine:
    """
    Pure functions for release metrics.

    All progress, state-bucket and health derivations live here so the
    board never computes them in two places.
    """

    @staticmethod
    def progress_percent(completed: int, total: int) -> int:
        """
        Percentage of completed items, rounded half up.

        Returns 0 when there is nothing to complete.
        """
        if total == 0:
            return 0
        return int(math.floor(completed / total * 100 + 0.5))

    @staticmethod
    def classify_state(state: Optional[str]) -> StateBucket:
        """
        Map a free-text work item state to its display bucket.

        Unknown states land in NOT_STARTED; they never count as progress.
        """
        if state in COMPLETED_STATES:
            return StateBucket.COMPLETED
        if state in IN_PROGRESS_STATES:
            return StateBucket.IN_PROGRESS
        if state in BLOCKED_STATES:
            return StateBucket.BLOCKED
        return StateBucket.NOT_STARTED

    @staticmethod
    def health_status(metrics: Optional["ReleaseMetrics"]) -> HealthStatus:
        """
        Release health, evaluated in fixed priority order:

        1. any blocked feature -> BLOCKED
        2. completion below 50% and fewer than half the features in
           progress -> AT_RISK
        3. otherwise ON_TRACK
        """
        if metrics is None:
            return HealthStatus.ON_TRACK
        if metrics.blocked_features > 0:
            return HealthStatus.BLOCKED

        total = metrics.total_features
        completion = (metrics.completed_features / total) * 100 if total > 0 else 0
        if completion < 50 and metrics.in_progress_features < total * 0.5:
            return HealthStatus.AT_RISK
        return HealthStatus.ON_TRACK


class BoardConfig(BaseModel):
    """
    Board configuration loaded from YAML.

    `uat_ready_aliases` is matched exactly against child states; it lists
    the spellings the upstream tracker is known to use.
    """
    uat_ready_aliases: List[str] = Field(
        default_factory=lambda: list(DEFAULT_UAT_READY_ALIASES),
        description="Child states that flag their parent as UAT-ready"
    )
    propagation_types: List[str] = Field(
        default_factory=lambda: list(PROPAGATION_TYPES),
        description="Work item types whose children are scanned"
    )

    @field_validator("uat_ready_aliases")
    @classmethod
    def validate_aliases(cls, v: List[str]) -> List[str]:
        cleaned = [alias for alias in v if alias and alias.strip()]
        if not cleaned:
            raise ValueError("uat_ready_aliases must contain at least one state")
        return cleaned

    def is_uat_ready(self, state: Optional[str]) -> bool:
        return state in self.uat_ready_aliases

    def propagates(self, work_item_type: str) -> bool:
        return work_item_type in self.propagation_types


@dataclass(frozen=True)
class BoardScope:
    """Project and area path that every board query is filtered by."""
    project: str
    area_path: str

    def as_params(self) -> dict:
        return {"project": self.project, "areaPath": self.area_path}
