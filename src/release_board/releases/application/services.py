"""
Release Application Services
=============================

Application services orchestrate reads and mutations against the work item
service and keep the board caches consistent.

Reads degrade to empty results so the board stays renderable. Mutations
never swallow failure: they alert the user with the server's error text,
leave local state untouched and return a failed MutationResult.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, TYPE_CHECKING

from release_board.config import DeploymentEnvironment, NotesFormat, VALID_ENVIRONMENTS
from release_board.core import ApplicationException, ValidationException
from release_board.releases.domain import (
    BoardConfig, BoardScope, Deployment, LatestDeployments, ReleaseDetails,
    ReleaseEpic, ReleaseMetrics, WorkItemNode,
)
from release_board.shared.infrastructure.logging import get_logger, log_latency
from release_board.shared.infrastructure.query_cache import QueryCache

if TYPE_CHECKING:
    from release_board.releases.application.hierarchy import HierarchyCache

logger = get_logger(__name__)

UNLINK_PROMPT = "Are you sure you want to unlink this item from the release?"
DELETE_PROMPT = (
    "Are you sure you want to delete this release epic? "
    "Linked work items are not deleted."
)


# ========== Gateway and Port Interfaces ==========

class IWorkItemGateway(ABC):
    """
    Interface for the external work item service.

    Implementations raise WorkItemServiceException for transport errors and
    non-success responses, and ValidationException for malformed payloads.
    """

    @abstractmethod
    async def list_release_versions(self, scope: BoardScope) -> List[str]:
        """List release version names."""

    @abstractmethod
    async def list_release_epics(self, scope: BoardScope) -> List[ReleaseEpic]:
        """List release epics with item counts."""

    @abstractmethod
    async def get_release_work_items(self, version: str, scope: BoardScope) -> List[WorkItemNode]:
        """Work items tagged with a release."""

    @abstractmethod
    async def get_release_metrics(self, version: str, scope: BoardScope) -> ReleaseMetrics:
        """Feature counts of a release."""

    @abstractmethod
    async def get_latest_deployments(self, version: str) -> LatestDeployments:
        """Latest deployment per environment for a release."""

    @abstractmethod
    async def create_deployment(
        self,
        version: str,
        environment: DeploymentEnvironment,
        work_item_ids: List[int],
        notes: Optional[str],
    ) -> Optional[Deployment]:
        """Record a deployment."""

    @abstractmethod
    async def tag_release(
        self,
        version: str,
        scope: BoardScope,
        start_date: Optional[str] = None,
        target_date: Optional[str] = None,
        description: Optional[str] = None,
    ) -> int:
        """Create a release epic; returns its id."""

    @abstractmethod
    async def edit_release(
        self,
        epic_id: int,
        title: str,
        status: str,
        scope: BoardScope,
        start_date: Optional[str] = None,
        target_date: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        """Update a release epic."""

    @abstractmethod
    async def delete_release_epic(self, epic_id: int, scope: BoardScope) -> None:
        """Delete a release epic (linked items are kept)."""

    @abstractmethod
    async def list_related_items(self, epic_id: int, scope: BoardScope) -> List[WorkItemNode]:
        """Items linked to a release epic."""

    @abstractmethod
    async def link_items(self, epic_id: int, work_item_ids: List[int], scope: BoardScope) -> None:
        """Link work items to a release epic."""

    @abstractmethod
    async def unlink_items(self, epic_id: int, work_item_ids: List[int], scope: BoardScope) -> int:
        """Unlink work items from a release epic; returns the unlinked count."""

    @abstractmethod
    async def get_children(self, item_id: int, kind: str, scope: BoardScope) -> List[WorkItemNode]:
        """Immediate children of an Epic or Feature."""

    @abstractmethod
    async def export_release_notes(
        self, version: str, scope: BoardScope, fmt: str
    ) -> Tuple[bytes, str]:
        """Release notes file; returns (content, media type)."""


class INotifier(ABC):
    """Blocking user notification (the UI shows it until acknowledged)."""

    @abstractmethod
    def alert(self, message: str) -> None:
        """Show a message to the user."""


class IConfirmation(ABC):
    """Explicit confirmation step for destructive actions."""

    @abstractmethod
    async def confirm(self, prompt: str) -> bool:
        """Return True when the user confirmed the action."""


class IBoardConfigProvider(ABC):
    """Interface for board configuration access."""

    @abstractmethod
    def get_config(self) -> BoardConfig:
        """Get current board configuration."""


@dataclass
class MutationResult:
    """Outcome of a mutation. `error` is the message shown to the user."""

    success: bool
    error: Optional[str] = None
    cancelled: bool = False
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None) -> "MutationResult":
        return cls(success=True, value=value)

    @classmethod
    def rejected(cls, error: str) -> "MutationResult":
        return cls(success=False, error=error)

    @classmethod
    def not_confirmed(cls) -> "MutationResult":
        return cls(success=False, cancelled=True)


def _error_text(exc: ApplicationException) -> str:
    # WorkItemServiceException carries the server text verbatim
    return getattr(exc, "error", None) or exc.message


class _MutationService:
    """Shared failure handling for services that mutate releases."""

    def __init__(self, notifier: INotifier):
        self._notifier = notifier

    def _fail(self, action: str, exc: ApplicationException, **context: Any) -> MutationResult:
        message = f"{action}: {_error_text(exc)}"
        logger.error(message, extra={"error": _error_text(exc), **context})
        self._notifier.alert(message)
        return MutationResult.rejected(message)


# ========== Release Catalog ==========

@dataclass
class ReleaseNotesExport:
    filename: str
    content: bytes
    media_type: str


SelectionListener = Callable[[], None]


class ReleaseCatalog:
    """
    Release versions, release epics and the detail state of the selected
    release for one board scope.

    Every change of scope or selected release bumps `generation`; detail
    results are committed only if the generation they were requested under
    is still current. Invalidating release details in the cache bumps a
    separate details version, so a load that was outstanding during a
    refresh is not committed over the refreshed result.
    """

    def __init__(self, gateway: IWorkItemGateway, cache: QueryCache, scope: BoardScope):
        self._gateway = gateway
        self._cache = cache
        self._scope = scope
        self._selected_release: Optional[str] = None
        self._generation = 0
        self._details: Optional[ReleaseDetails] = None
        self._details_version = 0
        self._selection_listeners: List[SelectionListener] = []
        cache.subscribe(("releaseDetails",), self._details_invalidated)

    @property
    def scope(self) -> BoardScope:
        return self._scope

    @property
    def selected_release(self) -> Optional[str]:
        return self._selected_release

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def details(self) -> Optional[ReleaseDetails]:
        return self._details

    def resolve_scope(self, project: Optional[str] = None, area_path: Optional[str] = None) -> BoardScope:
        return BoardScope(
            project=self._scope.project if project is None else project,
            area_path=self._scope.area_path if area_path is None else area_path,
        )

    def add_selection_listener(self, listener: SelectionListener) -> None:
        self._selection_listeners.append(listener)

    # ---------- Selection ----------

    def set_scope(self, project: str, area_path: str) -> bool:
        """Switch project / area path. Clears the selection when it changes."""
        scope = BoardScope(project=project, area_path=area_path)
        if scope == self._scope:
            return False
        logger.info("Board scope changed", extra={"project": project, "area_path": area_path})
        self._scope = scope
        self._selected_release = None
        self._selection_changed()
        return True

    def select_release(self, version: Optional[str]) -> bool:
        if version == self._selected_release:
            return False
        logger.info("Release selected", extra={"version": version})
        self._selected_release = version
        self._selection_changed()
        return True

    def _selection_changed(self) -> None:
        self._generation += 1
        self._details = None
        for listener in list(self._selection_listeners):
            listener()

    def _details_invalidated(self, prefix) -> None:
        self._details_version += 1

    # ---------- Lists ----------

    async def list_release_versions(
        self, project: Optional[str] = None, area_path: Optional[str] = None
    ) -> List[str]:
        """
        Release versions for a scope, empty when the service is unavailable.

        Selects the first version when the current scope has no selection.
        """
        scope = self.resolve_scope(project, area_path)
        key = ("releases", scope.project, scope.area_path)
        try:
            versions = await self._cache.get(
                key, lambda: self._gateway.list_release_versions(scope)
            )
        except ApplicationException as e:
            logger.warning("Failed to list release versions", extra={"error": str(e)})
            return []

        if versions and self._selected_release is None and scope == self._scope:
            self.select_release(versions[0])
        return list(versions)

    async def list_release_epics(
        self, project: Optional[str] = None, area_path: Optional[str] = None
    ) -> List[ReleaseEpic]:
        """Release epics with counts, empty when the service is unavailable."""
        scope = self.resolve_scope(project, area_path)
        key = ("releaseEpics", scope.project, scope.area_path)
        try:
            epics = await self._cache.get(
                key, lambda: self._gateway.list_release_epics(scope)
            )
        except ApplicationException as e:
            logger.warning("Failed to list release epics", extra={"error": str(e)})
            return []
        return list(epics)

    # ---------- Details ----------

    async def get_release_details(
        self,
        version: str,
        project: Optional[str] = None,
        area_path: Optional[str] = None,
    ) -> ReleaseDetails:
        """
        Fetch work items, metrics and latest deployments of a release.

        The three requests run concurrently and fail independently: a failed
        field is left empty and its message is recorded in `errors`.
        """
        scope = self.resolve_scope(project, area_path)
        with log_latency(logger, "release_details", version=version):
            (work_items, e1), (metrics, e2), (latest, e3) = await asyncio.gather(
                self._read_field(self._gateway.get_release_work_items(version, scope)),
                self._read_field(self._gateway.get_release_metrics(version, scope)),
                self._read_field(self._gateway.get_latest_deployments(version)),
            )

        errors = {
            name: message
            for name, message in (("work_items", e1), ("metrics", e2), ("latest_deployments", e3))
            if message is not None
        }
        if errors:
            logger.warning(
                "Release details partially unavailable",
                extra={"version": version, "failed_fields": sorted(errors)}
            )

        return ReleaseDetails(
            version=version,
            work_items=work_items or [],
            metrics=metrics,
            latest_deployments=latest or LatestDeployments(),
            errors=errors,
        )

    @staticmethod
    async def _read_field(awaitable) -> Tuple[Any, Optional[str]]:
        try:
            return await awaitable, None
        except ApplicationException as e:
            return None, _error_text(e)

    async def load_selected_details(self) -> Optional[ReleaseDetails]:
        """
        Load details for the selected release and make them current.

        Returns None when nothing is selected or when the selection changed
        while the requests were outstanding (the late result is dropped).
        A result overtaken by a details refresh is not committed either; the
        current details are returned instead when there are any.
        """
        version = self._selected_release
        if version is None:
            return None

        generation = self._generation
        details_version = self._details_version
        scope = self._scope
        key = ("releaseDetails", version, scope.project, scope.area_path)

        cached = self._cache.peek(key)
        if cached is not None:
            self._details = cached
            return cached

        details = await self.get_release_details(version, scope.project, scope.area_path)

        if generation != self._generation:
            logger.info(
                "Discarding release details for previous selection",
                extra={"version": version, "current": self._selected_release}
            )
            return None

        if details_version != self._details_version:
            logger.info("Discarding release details superseded by a refresh", extra={"version": version})
            return self._details if self._details is not None else details

        self._details = details
        if not details.errors:
            self._cache.set(key, details)
        return details

    # ---------- Invalidation ----------

    async def refresh_releases(
        self, project: Optional[str] = None, area_path: Optional[str] = None
    ) -> List[str]:
        scope = self.resolve_scope(project, area_path)
        self._cache.invalidate(("releases", scope.project, scope.area_path))
        return await self.list_release_versions(scope.project, scope.area_path)

    async def refresh_release_epics(
        self, project: Optional[str] = None, area_path: Optional[str] = None
    ) -> List[ReleaseEpic]:
        scope = self.resolve_scope(project, area_path)
        self._cache.invalidate(("releaseEpics", scope.project, scope.area_path))
        return await self.list_release_epics(scope.project, scope.area_path)

    async def refresh_release_details(self) -> Optional[ReleaseDetails]:
        if self._selected_release is None:
            return None
        self._cache.invalidate(
            ("releaseDetails", self._selected_release, self._scope.project, self._scope.area_path)
        )
        return await self.load_selected_details()

    # ---------- Export ----------

    async def export_release_notes(
        self,
        version: str,
        fmt: str = "markdown",
        project: Optional[str] = None,
        area_path: Optional[str] = None,
    ) -> ReleaseNotesExport:
        """Download release notes. Failures propagate to the caller."""
        try:
            notes_format = NotesFormat(fmt)
        except ValueError:
            raise ValidationException(f"Unsupported release notes format: {fmt}")
        scope = self.resolve_scope(project, area_path)
        content, media_type = await self._gateway.export_release_notes(
            version, scope, notes_format.value
        )
        extension = "md" if notes_format == NotesFormat.MARKDOWN else "json"
        return ReleaseNotesExport(
            filename=f"release-{version}-notes.{extension}",
            content=content,
            media_type=media_type,
        )


# ========== Linkage ==========

class LinkageManager(_MutationService):
    """
    Link/unlink work items to a release epic and delete release epics.

    Successful mutations re-fetch the epic list instead of adjusting counts
    locally, so progress is only ever computed from server data.
    """

    def __init__(
        self,
        gateway: IWorkItemGateway,
        catalog: ReleaseCatalog,
        linked_items: "HierarchyCache",
        notifier: INotifier,
        confirmation: Optional[IConfirmation] = None,
    ):
        super().__init__(notifier)
        self._gateway = gateway
        self._catalog = catalog
        self._linked_items = linked_items
        self._confirmation = confirmation
        self._deleting = False

    @property
    def deleting(self) -> bool:
        return self._deleting

    async def _confirmed(self, prompt: str, confirmation: Optional[IConfirmation]) -> bool:
        gate = confirmation or self._confirmation
        if gate is None:
            return False
        return await gate.confirm(prompt)

    async def link_items(
        self,
        epic_id: int,
        work_item_ids: List[int],
        project: Optional[str] = None,
        area_path: Optional[str] = None,
    ) -> MutationResult:
        ids = list(dict.fromkeys(work_item_ids))
        if not ids:
            raise ValidationException("At least one work item id is required")
        scope = self._catalog.resolve_scope(project, area_path)

        try:
            await self._gateway.link_items(epic_id, ids, scope)
        except ApplicationException as e:
            return self._fail("Failed to link items", e, epic_id=epic_id)

        logger.info("Work items linked", extra={"epic_id": epic_id, "count": len(ids)})
        await self._catalog.refresh_release_epics(scope.project, scope.area_path)
        return MutationResult.ok(ids)

    async def unlink_item(
        self,
        epic_id: int,
        work_item_id: int,
        project: Optional[str] = None,
        area_path: Optional[str] = None,
        confirmation: Optional[IConfirmation] = None,
    ) -> MutationResult:
        """
        Unlink one item after confirmation.

        On success the item is removed from the cached branch of the epic and
        the epic list is re-fetched. On failure the cache is left as it was.
        """
        if not await self._confirmed(UNLINK_PROMPT, confirmation):
            return MutationResult.not_confirmed()
        scope = self._catalog.resolve_scope(project, area_path)

        try:
            unlinked = await self._gateway.unlink_items(epic_id, [work_item_id], scope)
        except ApplicationException as e:
            return self._fail(
                "Failed to unlink item", e, epic_id=epic_id, work_item_id=work_item_id
            )

        self._linked_items.remove_child(epic_id, work_item_id)
        logger.info(
            "Work item unlinked",
            extra={"epic_id": epic_id, "work_item_id": work_item_id, "unlinked": unlinked}
        )
        await self._catalog.refresh_release_epics(scope.project, scope.area_path)
        return MutationResult.ok(unlinked)

    async def delete_release_epic(
        self,
        epic_id: int,
        project: Optional[str] = None,
        area_path: Optional[str] = None,
        confirmation: Optional[IConfirmation] = None,
    ) -> MutationResult:
        """Delete a release epic; the linked work items themselves are kept."""
        if not await self._confirmed(DELETE_PROMPT, confirmation):
            return MutationResult.not_confirmed()
        if self._deleting:
            return MutationResult.rejected("A delete request is already in progress")
        scope = self._catalog.resolve_scope(project, area_path)

        self._deleting = True
        try:
            await self._gateway.delete_release_epic(epic_id, scope)
        except ApplicationException as e:
            return self._fail("Failed to delete epic", e, epic_id=epic_id)
        finally:
            self._deleting = False

        logger.info("Release epic deleted", extra={"epic_id": epic_id})
        await self._catalog.refresh_release_epics(scope.project, scope.area_path)
        return MutationResult.ok(epic_id)


# ========== Release Editing ==========

class ReleaseEditor(_MutationService):
    """Tag new releases and edit existing release epics."""

    def __init__(self, gateway: IWorkItemGateway, catalog: ReleaseCatalog, notifier: INotifier):
        super().__init__(notifier)
        self._gateway = gateway
        self._catalog = catalog

    async def tag_release(
        self,
        version: str,
        project: Optional[str] = None,
        area_path: Optional[str] = None,
        start_date: Optional[str] = None,
        target_date: Optional[str] = None,
        description: Optional[str] = None,
    ) -> MutationResult:
        if not version or not version.strip():
            raise ValidationException("A release version is required")
        scope = self._catalog.resolve_scope(project, area_path)

        try:
            epic_id = await self._gateway.tag_release(
                version, scope,
                start_date=start_date or None,
                target_date=target_date or None,
                description=description or None,
            )
        except ApplicationException as e:
            return self._fail("Failed to create release", e, version=version)

        logger.info("Release tagged", extra={"version": version, "epic_id": epic_id})
        await self._catalog.refresh_releases(scope.project, scope.area_path)
        await self._catalog.refresh_release_epics(scope.project, scope.area_path)
        return MutationResult.ok(epic_id)

    async def edit_release(
        self,
        epic_id: int,
        title: str,
        status: str,
        project: Optional[str] = None,
        area_path: Optional[str] = None,
        start_date: Optional[str] = None,
        target_date: Optional[str] = None,
        description: Optional[str] = None,
    ) -> MutationResult:
        scope = self._catalog.resolve_scope(project, area_path)

        try:
            await self._gateway.edit_release(
                epic_id, title, status, scope,
                start_date=start_date or None,
                target_date=target_date or None,
                description=description or None,
            )
        except ApplicationException as e:
            return self._fail("Failed to update release", e, epic_id=epic_id)

        logger.info("Release updated", extra={"epic_id": epic_id})
        await self._catalog.refresh_release_epics(scope.project, scope.area_path)
        return MutationResult.ok(epic_id)


# ========== Deployments ==========

class DeploymentTracker(_MutationService):
    """
    Deployment records per release and environment.

    The latest deployment per environment is computed by the work item
    service; this tracker never orders deployments itself.
    """

    def __init__(self, gateway: IWorkItemGateway, catalog: ReleaseCatalog, notifier: INotifier):
        super().__init__(notifier)
        self._gateway = gateway
        self._catalog = catalog
        self._creating = False

    @property
    def creating(self) -> bool:
        return self._creating

    async def record_deployment(
        self,
        release_version: str,
        environment: str,
        work_item_ids: Optional[List[int]] = None,
        notes: Optional[str] = None,
    ) -> MutationResult:
        """
        Append a deployment record.

        `work_item_ids` defaults to the work items of the selected release.
        The detail view of the selected release is refreshed on success.
        """
        if not release_version:
            raise ValidationException("A release version is required")
        try:
            env = DeploymentEnvironment(environment)
        except ValueError:
            raise ValidationException(f"environment must be one of {VALID_ENVIRONMENTS}")

        if work_item_ids is None:
            details = self._catalog.details
            if details is not None and details.version == release_version:
                work_item_ids = details.work_item_ids
            else:
                work_item_ids = []

        if self._creating:
            return MutationResult.rejected("A deployment is already being recorded")

        self._creating = True
        try:
            deployment = await self._gateway.create_deployment(
                release_version, env, list(work_item_ids), notes
            )
        except ApplicationException as e:
            return self._fail(
                "Failed to record deployment", e,
                version=release_version, environment=env.value
            )
        finally:
            self._creating = False

        logger.info(
            "Deployment recorded",
            extra={"version": release_version, "environment": env.value}
        )
        if release_version == self._catalog.selected_release:
            await self._catalog.refresh_release_details()
        return MutationResult.ok(deployment)

    async def get_latest_deployments(self, release_version: str) -> LatestDeployments:
        try:
            return await self._gateway.get_latest_deployments(release_version)
        except ApplicationException as e:
            logger.warning(
                "Failed to load latest deployments",
                extra={"version": release_version, "error": str(e)}
            )
            return LatestDeployments()

