"""
Release Application DTOs
=========================

Two groups of Pydantic models:

- Wire DTOs parse work item service payloads (camelCase JSON) at the
  boundary and convert them into domain entities. Unexpected shapes are
  rejected here instead of leaking loosely typed dicts into the engine.
- API DTOs define the request and response bodies of the board API.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from release_board.config import DeploymentEnvironment
from release_board.releases.domain import (
    ReleaseEpic, WorkItemNode, ReleaseMetrics, Deployment, LatestDeployments,
)


# ========== Type Aliases for Literals ==========
EnvironmentStr = Literal["dev", "staging", "production"]
StateBucketStr = Literal["completed", "inProgress", "blocked", "notStarted"]
HealthStr = Literal["on-track", "at-risk", "blocked"]
NotesFormatStr = Literal["json", "markdown"]


class WireModel(BaseModel):
    """Base for payloads exchanged with the work item service."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ========== Wire DTOs (work item service) ==========

class WorkItemDTO(WireModel):
    id: int
    title: str
    work_item_type: str
    state: str
    assigned_to: Optional[str] = None
    target_date: Optional[str] = None
    parent_id: Optional[int] = None

    def to_entity(self) -> WorkItemNode:
        return WorkItemNode(
            id=self.id,
            title=self.title,
            work_item_type=self.work_item_type,
            state=self.state,
            assigned_to=self.assigned_to,
            target_date=self.target_date,
            parent_id=self.parent_id,
        )


class ReleaseEpicDTO(WireModel):
    id: int
    version: str
    status: str = ""
    start_date: Optional[str] = None
    target_date: Optional[str] = None
    description: Optional[str] = None
    # Sent by the service but re-derived from the counts
    progress: Optional[int] = Field(None, ge=0, le=100)
    completed_items: int = Field(0, ge=0)
    total_items: int = Field(0, ge=0)

    @model_validator(mode="after")
    def validate_counts(self) -> "ReleaseEpicDTO":
        if self.completed_items > self.total_items:
            raise ValueError("completedItems cannot exceed totalItems")
        return self

    def to_entity(self) -> ReleaseEpic:
        return ReleaseEpic(
            id=self.id,
            version=self.version,
            status=self.status,
            completed_items=self.completed_items,
            total_items=self.total_items,
            start_date=self.start_date,
            target_date=self.target_date,
            description=self.description,
        )


class ReleaseMetricsDTO(WireModel):
    total_features: int = Field(..., ge=0)
    completed_features: int = Field(0, ge=0)
    in_progress_features: int = Field(0, ge=0)
    blocked_features: int = Field(0, ge=0)
    ready_for_release_features: int = Field(0, ge=0)

    def to_entity(self) -> ReleaseMetrics:
        return ReleaseMetrics(
            total_features=self.total_features,
            completed_features=self.completed_features,
            in_progress_features=self.in_progress_features,
            blocked_features=self.blocked_features,
            ready_for_release_features=self.ready_for_release_features,
        )


class DeploymentDTO(WireModel):
    id: Optional[str] = None
    release_version: Optional[str] = None
    environment: EnvironmentStr
    work_item_ids: List[int] = Field(default_factory=list)
    deployed_by: str
    deployed_at: datetime
    notes: Optional[str] = None

    def to_entity(self) -> Deployment:
        return Deployment(
            environment=DeploymentEnvironment(self.environment),
            deployed_by=self.deployed_by,
            deployed_at=self.deployed_at,
            work_item_ids=list(self.work_item_ids),
            notes=self.notes,
            id=self.id,
            release_version=self.release_version,
        )


class LatestDeploymentsDTO(WireModel):
    dev: Optional[DeploymentDTO] = None
    staging: Optional[DeploymentDTO] = None
    production: Optional[DeploymentDTO] = None

    def to_entity(self) -> LatestDeployments:
        return LatestDeployments(
            dev=self.dev.to_entity() if self.dev else None,
            staging=self.staging.to_entity() if self.staging else None,
            production=self.production.to_entity() if self.production else None,
        )


class TagReleaseResultDTO(WireModel):
    epic_id: int


class UnlinkResultDTO(WireModel):
    success: bool = True
    unlinked_count: int = 0


# ========== API Request DTOs ==========

class ScopeRequest(BaseModel):
    """Change the project / area path the board is filtered by."""
    project: str = Field(..., min_length=1)
    area_path: str = Field(..., min_length=1)


class SelectionRequest(BaseModel):
    version: str = Field(..., min_length=1, description="Release version to select")


class LinkItemsRequest(BaseModel):
    work_item_ids: List[int] = Field(..., min_length=1)


class TagReleaseRequest(BaseModel):
    version: str = Field(..., min_length=1)
    start_date: Optional[str] = None
    target_date: Optional[str] = None
    description: Optional[str] = None


class EditReleaseRequest(BaseModel):
    title: str = Field(..., min_length=1, description="Release version / display name")
    status: str = Field(default="New")
    start_date: Optional[str] = None
    target_date: Optional[str] = None
    description: Optional[str] = None


class DeploymentCreateRequest(BaseModel):
    release_version: str = Field(..., min_length=1)
    environment: EnvironmentStr = "dev"
    work_item_ids: Optional[List[int]] = Field(
        None,
        description="Defaults to the work items of the selected release"
    )
    notes: Optional[str] = None


# ========== API Response DTOs ==========

class ScopeResponse(BaseModel):
    project: str
    area_path: str
    selected_release: Optional[str] = None


class ReleaseEpicResponse(BaseModel):
    id: int
    version: str
    status: str
    start_date: Optional[str] = None
    target_date: Optional[str] = None
    description: Optional[str] = None
    progress: int
    completed_items: int
    total_items: int

    @classmethod
    def from_entity(cls, epic: ReleaseEpic) -> "ReleaseEpicResponse":
        return cls(
            id=epic.id,
            version=epic.version,
            status=epic.status,
            start_date=epic.start_date,
            target_date=epic.target_date,
            description=epic.description,
            progress=epic.progress,
            completed_items=epic.completed_items,
            total_items=epic.total_items,
        )


class WorkItemResponse(BaseModel):
    id: int
    title: str
    work_item_type: str
    state: str
    state_bucket: StateBucketStr
    assigned_to: Optional[str] = None
    target_date: Optional[str] = None
    parent_id: Optional[int] = None
    has_uat_ready_children: bool = False


class MetricsResponse(BaseModel):
    total_features: int
    completed_features: int
    in_progress_features: int
    blocked_features: int
    ready_for_release_features: int


class DeploymentResponse(BaseModel):
    id: Optional[str] = None
    release_version: Optional[str] = None
    environment: EnvironmentStr
    deployed_by: str
    deployed_at: datetime
    work_item_ids: List[int] = Field(default_factory=list)
    notes: Optional[str] = None

    @classmethod
    def from_entity(cls, deployment: Deployment) -> "DeploymentResponse":
        return cls(
            id=deployment.id,
            release_version=deployment.release_version,
            environment=deployment.environment.value,
            deployed_by=deployment.deployed_by,
            deployed_at=deployment.deployed_at,
            work_item_ids=list(deployment.work_item_ids),
            notes=deployment.notes,
        )


class LatestDeploymentsResponse(BaseModel):
    dev: Optional[DeploymentResponse] = None
    staging: Optional[DeploymentResponse] = None
    production: Optional[DeploymentResponse] = None

    @classmethod
    def from_entity(cls, latest: LatestDeployments) -> "LatestDeploymentsResponse":
        return cls(**{
            env: DeploymentResponse.from_entity(dep) if dep else None
            for env, dep in latest.as_dict().items()
        })


class ReleaseDetailsResponse(BaseModel):
    version: str
    work_items: List[WorkItemResponse]
    metrics: Optional[MetricsResponse] = None
    health: HealthStr
    completion_percent: int
    latest_deployments: LatestDeploymentsResponse
    errors: Dict[str, str] = Field(default_factory=dict)


class BranchResponse(BaseModel):
    """Children of one expanded node."""
    node_id: int
    expanded: bool
    loading: bool
    loaded: bool
    children: List[WorkItemResponse] = Field(default_factory=list)


class MutationResponse(BaseModel):
    success: bool
    message: Optional[str] = None


class TagReleaseResponse(BaseModel):
    epic_id: int


class NotificationsResponse(BaseModel):
    messages: List[str] = Field(default_factory=list)
