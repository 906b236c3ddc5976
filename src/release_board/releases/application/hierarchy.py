"""
Hierarchy Caching
=================

Lazy, per-node caches for the release tree and the UAT-ready scan that
runs on top of them.

Trees are stored as id-keyed dictionaries (node id -> children), never as
parent/child object references, so invalidating a node is a key removal.
"""

import asyncio
import inspect
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set, Union

from release_board.config import WorkItemType
from release_board.core import ApplicationException, ValidationException
from release_board.releases.application.services import (
    IBoardConfigProvider, IWorkItemGateway,
)
from release_board.releases.domain import BoardScope, WorkItemNode, unique_by_id
from release_board.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

CHILD_KINDS = (WorkItemType.EPIC.value, WorkItemType.FEATURE.value)

BranchListener = Callable[
    [int, List[WorkItemNode], BoardScope],
    Union[None, Awaitable[None]],
]


class HierarchyLevel(str, Enum):
    """Which relation a cache follows."""
    RELEASE = "release"   # release epic -> directly linked items
    NESTED = "nested"     # linked Epic/Feature -> its own children


class HierarchyCache:
    """
    Expand/collapse state and child cache for one hierarchy level.

    - a node is fetched on its first expansion and reused afterwards
    - collapsing keeps the cached children
    - at most one fetch per node id is in flight; later requests join it
    - failed fetches are not cached, so the next expansion retries
    - branch listeners run in the background after a fetch is stored
    - `reset()` drops everything; fetches started earlier never write into
      the reset cache
    """

    def __init__(self, gateway: IWorkItemGateway, level: HierarchyLevel):
        self._gateway = gateway
        self._level = level
        self._children: Dict[int, List[WorkItemNode]] = {}
        self._expanded: Set[int] = set()
        self._in_flight: Dict[int, asyncio.Task] = {}
        self._generation = 0
        self._listeners: List[BranchListener] = []
        self._listener_tasks: Set[asyncio.Task] = set()

    @property
    def level(self) -> HierarchyLevel:
        return self._level

    def add_branch_listener(self, listener: BranchListener) -> None:
        """
        Called with (node_id, children, scope) after each successful fetch.

        Coroutine listeners run as background tasks; callers of the fetch do
        not wait for them. Listener errors are logged, never raised.
        """
        self._listeners.append(listener)

    # ---------- Read-only views ----------

    def is_expanded(self, node_id: int) -> bool:
        return node_id in self._expanded

    def is_loading(self, node_id: int) -> bool:
        return node_id in self._in_flight

    def is_loaded(self, node_id: int) -> bool:
        return node_id in self._children

    def peek(self, node_id: int) -> Optional[List[WorkItemNode]]:
        return self._children.get(node_id)

    def children(self, node_id: int) -> List[WorkItemNode]:
        """Cached children, empty when the node has not been loaded."""
        return list(self._children.get(node_id, []))

    # ---------- Operations ----------

    async def toggle_expand(
        self,
        node_id: int,
        project: str,
        area_path: str,
        kind: Optional[str] = None,
    ) -> bool:
        """
        Expand a collapsed node or collapse an expanded one.

        Returns:
            True if the node is expanded afterwards
        """
        self._check_kind(kind)
        if node_id in self._expanded:
            self._expanded.discard(node_id)
            return False

        self._expanded.add(node_id)
        if node_id not in self._children:
            await self._load(node_id, BoardScope(project, area_path), kind)
        return node_id in self._expanded

    async def prefetch(
        self,
        node_id: int,
        project: str,
        area_path: str,
        kind: Optional[str] = None,
    ) -> Optional[List[WorkItemNode]]:
        """
        Load a node's children without changing its expansion state.

        Returns:
            Children, or None when they could not be loaded
        """
        self._check_kind(kind)
        if node_id in self._children:
            return self._children[node_id]
        return await self._load(node_id, BoardScope(project, area_path), kind)

    def remove_child(self, parent_id: int, child_id: int) -> bool:
        """Drop one child from a cached branch. Returns True if it was present."""
        current = self._children.get(parent_id)
        if current is None:
            return False
        remaining = [child for child in current if child.id != child_id]
        self._children[parent_id] = remaining
        return len(remaining) != len(current)

    def reset(self) -> None:
        self._generation += 1
        self._children.clear()
        self._expanded.clear()
        self._in_flight.clear()
        for task in self._listener_tasks:
            task.cancel()
        self._listener_tasks.clear()

    async def wait_for_listeners(self) -> None:
        """Wait until every branch listener started so far has finished."""
        while self._listener_tasks:
            await asyncio.gather(*list(self._listener_tasks), return_exceptions=True)

    # ---------- Internals ----------

    def _check_kind(self, kind: Optional[str]) -> None:
        if self._level == HierarchyLevel.NESTED and kind not in CHILD_KINDS:
            raise ValidationException(
                f"kind must be one of {list(CHILD_KINDS)}",
                {"kind": kind}
            )

    async def _load(
        self, node_id: int, scope: BoardScope, kind: Optional[str]
    ) -> Optional[List[WorkItemNode]]:
        task = self._in_flight.get(node_id)
        if task is None:
            task = asyncio.ensure_future(
                self._fetch(node_id, scope, kind, self._generation)
            )
            self._in_flight[node_id] = task
        return await asyncio.shield(task)

    async def _fetch(
        self, node_id: int, scope: BoardScope, kind: Optional[str], generation: int
    ) -> Optional[List[WorkItemNode]]:
        try:
            if self._level == HierarchyLevel.RELEASE:
                children = await self._gateway.list_related_items(node_id, scope)
            else:
                children = await self._gateway.get_children(node_id, kind, scope)
        except ApplicationException as e:
            logger.warning(
                "Failed to load children",
                extra={"node_id": node_id, "level": self._level.value, "error": str(e)}
            )
            return None
        finally:
            if self._in_flight.get(node_id) is asyncio.current_task():
                del self._in_flight[node_id]

        if generation != self._generation:
            logger.info(
                "Discarding children fetched before cache reset",
                extra={"node_id": node_id, "level": self._level.value}
            )
            return None

        children = unique_by_id(children)
        self._children[node_id] = children
        self._notify(node_id, children, scope)
        return children

    def _notify(self, node_id: int, children: List[WorkItemNode], scope: BoardScope) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(node_id, children, scope)
            except Exception as e:
                logger.error(
                    "Branch listener failed",
                    extra={"node_id": node_id, "level": self._level.value, "error": str(e)}
                )
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._listener_tasks.add(task)
                task.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._listener_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Branch listener failed",
                extra={"level": self._level.value, "error": str(error)}
            )


class UatPropagationChecker:
    """
    Flags Epic/Feature items that have at least one child in a UAT-ready
    state.

    Scans exactly one level below each item. Keeps its own checking,
    visited and flagged sets, so an item can be flagged without ever being
    expanded on the board.
    """

    def __init__(self, nested_items: HierarchyCache, config_provider: IBoardConfigProvider):
        self._nested_items = nested_items
        self._config_provider = config_provider
        self._checking: Set[int] = set()
        self._visited: Set[int] = set()
        self._flagged: Set[int] = set()
        self._generation = 0

    @property
    def flagged(self) -> Set[int]:
        return set(self._flagged)

    def is_flagged(self, item_id: int) -> bool:
        return item_id in self._flagged

    async def on_branch_loaded(
        self, node_id: int, children: List[WorkItemNode], scope: BoardScope
    ) -> None:
        await self.check_items(children, scope)

    async def check_items(self, items: List[WorkItemNode], scope: BoardScope) -> None:
        config = self._config_provider.get_config()
        candidates = [
            item for item in items
            if item.can_have_children and config.propagates(item.work_item_type)
        ]
        if candidates:
            await asyncio.gather(*(self.check_item(item, scope) for item in candidates))

    async def check_item(self, item: WorkItemNode, scope: BoardScope) -> bool:
        """Scan one item's children; returns True when the item is flagged."""
        if item.id in self._visited or item.id in self._checking:
            return item.id in self._flagged

        generation = self._generation
        self._checking.add(item.id)
        try:
            children = await self._nested_items.prefetch(
                item.id, scope.project, scope.area_path, item.work_item_type
            )
        finally:
            if generation == self._generation:
                self._checking.discard(item.id)

        if generation != self._generation or children is None:
            return False

        self._visited.add(item.id)
        config = self._config_provider.get_config()
        if any(config.is_uat_ready(child.state) for child in children):
            self._flagged.add(item.id)
            logger.info(
                "Item has UAT-ready children",
                extra={"item_id": item.id, "work_item_type": item.work_item_type}
            )
        return item.id in self._flagged

    def reset(self) -> None:
        self._generation += 1
        self._checking.clear()
        self._visited.clear()
        self._flagged.clear()
