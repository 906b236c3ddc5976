"""
Release Application Layer
=========================

Contains:
- Services: catalog, linkage, editing and deployment workflows
- Hierarchy: lazy tree caches and the UAT-ready scan
- Board: composition of the components for one session
- DTOs: wire parsing and API serialization

This layer depends on the domain layer and on gateway interfaces, not on
concrete infrastructure.
"""

from release_board.releases.application.services import (
    IWorkItemGateway,
    INotifier,
    IConfirmation,
    IBoardConfigProvider,
    MutationResult,
    ReleaseNotesExport,
    ReleaseCatalog,
    LinkageManager,
    ReleaseEditor,
    DeploymentTracker,
    UNLINK_PROMPT,
    DELETE_PROMPT,
)
from release_board.releases.application.hierarchy import (
    HierarchyCache,
    HierarchyLevel,
    UatPropagationChecker,
)
from release_board.releases.application.board import ReleaseBoard, BoardSnapshot

__all__ = [
    # Interfaces
    "IWorkItemGateway",
    "INotifier",
    "IConfirmation",
    "IBoardConfigProvider",
    # Services
    "MutationResult",
    "ReleaseNotesExport",
    "ReleaseCatalog",
    "LinkageManager",
    "ReleaseEditor",
    "DeploymentTracker",
    "HierarchyCache",
    "HierarchyLevel",
    "UatPropagationChecker",
    "ReleaseBoard",
    "BoardSnapshot",
    # Prompts
    "UNLINK_PROMPT",
    "DELETE_PROMPT",
]
