"""
Release Infrastructure Layer
============================

Concrete implementations of the application interfaces:
- WorkItemServiceClient: httpx gateway to the work item service
- BoardConfigManager: YAML board configuration with hot reload
- QueuedNotifier / StaticConfirmation: user interaction adapters
"""

from release_board.releases.infrastructure.external import (
    WorkItemServiceClient,
    BoardConfigManager,
)
from release_board.releases.infrastructure.notifications import (
    QueuedNotifier,
    StaticConfirmation,
)

__all__ = [
    "WorkItemServiceClient",
    "BoardConfigManager",
    "QueuedNotifier",
    "StaticConfirmation",
]
