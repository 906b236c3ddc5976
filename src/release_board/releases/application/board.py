"""
Release Board
=============

Wires the release components together for one board session.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from release_board.releases.application.hierarchy import (
    HierarchyCache, HierarchyLevel, UatPropagationChecker,
)
from release_board.releases.application.services import (
    DeploymentTracker, IBoardConfigProvider, IConfirmation, INotifier,
    IWorkItemGateway, LinkageManager, ReleaseCatalog, ReleaseEditor,
)
from release_board.releases.domain import BoardScope, ReleaseDetails, ReleaseEpic
from release_board.shared.infrastructure.logging import get_logger
from release_board.shared.infrastructure.query_cache import QueryCache

logger = get_logger(__name__)


@dataclass
class BoardSnapshot:
    """What the board shows after opening: versions, epic rows, details."""
    versions: List[str] = field(default_factory=list)
    epics: List[ReleaseEpic] = field(default_factory=list)
    selected_release: Optional[str] = None
    details: Optional[ReleaseDetails] = None


class ReleaseBoard:
    """
    Composition root of the release engine.

    - linked items loaded for a release epic trigger the UAT-ready scan,
      which runs in the background; `settle()` waits for it
    - changing scope or release selection resets both hierarchy caches and
      the scan state
    """

    def __init__(
        self,
        gateway: IWorkItemGateway,
        config_provider: IBoardConfigProvider,
        notifier: INotifier,
        scope: BoardScope,
        confirmation: Optional[IConfirmation] = None,
        cache: Optional[QueryCache] = None,
    ):
        self.cache = cache or QueryCache()
        self.catalog = ReleaseCatalog(gateway, self.cache, scope)
        self.linked_items = HierarchyCache(gateway, HierarchyLevel.RELEASE)
        self.nested_items = HierarchyCache(gateway, HierarchyLevel.NESTED)
        self.uat_checker = UatPropagationChecker(self.nested_items, config_provider)
        self.linkage = LinkageManager(
            gateway, self.catalog, self.linked_items, notifier, confirmation
        )
        self.editor = ReleaseEditor(gateway, self.catalog, notifier)
        self.deployments = DeploymentTracker(gateway, self.catalog, notifier)
        self.notifier = notifier

        self.linked_items.add_branch_listener(self.uat_checker.on_branch_loaded)
        self.catalog.add_selection_listener(self._reset_hierarchy)

    @property
    def scope(self) -> BoardScope:
        return self.catalog.scope

    def _reset_hierarchy(self) -> None:
        self.linked_items.reset()
        self.nested_items.reset()
        self.uat_checker.reset()
        logger.debug("Hierarchy caches reset")

    async def open(self) -> BoardSnapshot:
        """Load versions and epic rows, then the details of the selected release."""
        versions = await self.catalog.list_release_versions()
        epics = await self.catalog.list_release_epics()
        details = await self.catalog.load_selected_details()
        return BoardSnapshot(
            versions=versions,
            epics=epics,
            selected_release=self.catalog.selected_release,
            details=details,
        )

    async def toggle_epic(self, epic_id: int) -> bool:
        return await self.linked_items.toggle_expand(
            epic_id, self.scope.project, self.scope.area_path
        )

    async def toggle_item(self, item_id: int, kind: str) -> bool:
        return await self.nested_items.toggle_expand(
            item_id, self.scope.project, self.scope.area_path, kind
        )

    async def settle(self) -> None:
        """Wait for UAT-ready scans started by earlier expansions."""
        await self.linked_items.wait_for_listeners()
