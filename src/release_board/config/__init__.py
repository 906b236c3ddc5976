"""
Configuration Module
====================

Application settings and board constants.

Settings are loaded from environment variables (and an optional `.env`)
with Pydantic for validation and type safety.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="release-board", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Work Item Service ==========
    work_items_api_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the work item service (serves /api/...)"
    )
    work_items_api_token: Optional[str] = Field(
        default=None,
        description="Optional bearer token sent to the work item service"
    )
    work_items_timeout_seconds: float = Field(
        default=15.0,
        description="Timeout for work item service calls",
        ge=0.1,
        le=120
    )

    # ========== Board Scope ==========
    default_project: str = Field(default="", description="Project used until a scope is chosen")
    default_area_path: str = Field(default="", description="Area path used until a scope is chosen")

    # ========== Board Configuration ==========
    board_config_path: Path = Field(
        default=Path("board_config.yaml"),
        description="Path to the board configuration YAML file"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("work_items_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class WorkItemType(str, Enum):
    """Work item types the board distinguishes."""
    EPIC = "Epic"
    FEATURE = "Feature"
    PRODUCT_BACKLOG_ITEM = "Product Backlog Item"
    TECHNICAL_BACKLOG_ITEM = "Technical Backlog Item"
    BUG = "Bug"
    TASK = "Task"


class StateBucket(str, Enum):
    """Display buckets for free-text work item states."""
    COMPLETED = "completed"
    IN_PROGRESS = "inProgress"
    BLOCKED = "blocked"
    NOT_STARTED = "notStarted"


class HealthStatus(str, Enum):
    """Derived release health."""
    ON_TRACK = "on-track"
    AT_RISK = "at-risk"
    BLOCKED = "blocked"


class DeploymentEnvironment(str, Enum):
    """Deployment targets, one latest-deployment slot each."""
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class NotesFormat(str, Enum):
    """Release notes export formats."""
    JSON = "json"
    MARKDOWN = "markdown"


# ========== State sets for classification ==========

COMPLETED_STATES = frozenset({
    "Ready For Release", "UAT - Test Done", "Done", "Closed",
})
IN_PROGRESS_STATES = frozenset({
    "Committed", "In Progress", "Ready For Test", "In Test", "UAT - Ready For Test",
})
BLOCKED_STATES = frozenset({"Blocked"})

DEFAULT_UAT_READY_ALIASES = [
    "UAT - Ready For Test",
    "UAT Ready For Test",
    "UAT-Ready For Test",
]
# Items whose children are scanned for the UAT-ready highlight
PROPAGATION_TYPES = [WorkItemType.EPIC.value, WorkItemType.FEATURE.value]

VALID_ENVIRONMENTS = [e.value for e in DeploymentEnvironment]
