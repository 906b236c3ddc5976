"""
Release External Service Integrations
======================================

- Work item service HTTP client (httpx)
- Board configuration YAML loader with watchdog hot-reload
"""

import threading
from pathlib import Path
from typing import Any, List, Optional, Tuple
from urllib.parse import quote

import httpx
import yaml
from pydantic import TypeAdapter, ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from release_board.config import DeploymentEnvironment, WorkItemType, settings
from release_board.core import (
    ConfigurationException, ValidationException, WorkItemServiceException,
)
from release_board.releases.application.dto import (
    DeploymentDTO, LatestDeploymentsDTO, ReleaseEpicDTO, ReleaseMetricsDTO,
    TagReleaseResultDTO, UnlinkResultDTO, WorkItemDTO,
)
from release_board.releases.application.services import (
    IBoardConfigProvider, IWorkItemGateway,
)
from release_board.releases.domain import (
    BoardConfig, BoardScope, Deployment, LatestDeployments, ReleaseEpic,
    ReleaseMetrics, WorkItemNode,
)
from release_board.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_VERSIONS = TypeAdapter(List[str])
_WORK_ITEMS = TypeAdapter(List[WorkItemDTO])

NOTES_MEDIA_TYPES = {
    "json": "application/json",
    "markdown": "text/markdown",
}


def _segment(value: Any) -> str:
    """Encode a value for use as one URL path segment."""
    return quote(str(value), safe="")


class WorkItemServiceClient(IWorkItemGateway):
    """
    HTTP client for the work item service.

    Raises WorkItemServiceException for transport errors and non-success
    responses (with the server's `error` text when it sends one) and
    ValidationException when a payload does not have the expected shape.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = (base_url or settings.work_items_api_url).rstrip("/")
        self._token = token if token is not None else settings.work_items_api_token
        self._timeout = timeout or settings.work_items_timeout_seconds
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            headers = {"Accept": "application/json"}
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # ---------- Transport helpers ----------

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            logger.error(
                "Work item service unreachable",
                extra={"method": method, "path": path, "error": str(e)}
            )
            raise WorkItemServiceException(f"Request failed: {e}") from e

        if response.is_success:
            return response

        payload = self._safe_json(response)
        error = None
        if isinstance(payload, dict) and payload.get("error"):
            error = str(payload["error"])
        logger.warning(
            "Work item service returned an error",
            extra={"method": method, "path": path, "status_code": response.status_code}
        )
        raise WorkItemServiceException(
            error or f"Request failed: {response.status_code}",
            status_code=response.status_code,
            payload=payload,
        )

    @staticmethod
    def _safe_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ValidationException(
                "Work item service returned a non-JSON body",
                {"path": response.request.url.path}
            ) from e

    @staticmethod
    def _validate(adapter_or_model: Any, data: Any, what: str) -> Any:
        try:
            if isinstance(adapter_or_model, TypeAdapter):
                return adapter_or_model.validate_python(data)
            return adapter_or_model.model_validate(data)
        except ValidationError as e:
            raise ValidationException(
                f"Unexpected {what} payload",
                {"errors": e.errors(include_url=False, include_context=False)}
            ) from e

    def _check_outcome(self, data: Any, action: str) -> None:
        # Some endpoints answer 200 with {"success": false, "error": "..."}
        if isinstance(data, dict) and data.get("success") is False:
            raise WorkItemServiceException(str(data.get("error") or f"{action} failed"))

    # ---------- Releases ----------

    async def list_release_versions(self, scope: BoardScope) -> List[str]:
        response = await self._request("GET", "/api/releases", params=scope.as_params())
        return self._validate(_VERSIONS, self._json(response), "release versions")

    async def list_release_epics(self, scope: BoardScope) -> List[ReleaseEpic]:
        """
        Release epics of a scope.

        Rows that fail validation (e.g. more completed than total items) are
        logged and skipped; the remaining rows are returned.
        """
        response = await self._request("GET", "/api/releases/epics", params=scope.as_params())
        rows = self._json(response)
        if not isinstance(rows, list):
            raise ValidationException("Unexpected release epics payload", {"type": type(rows).__name__})

        epics = []
        for row in rows:
            try:
                epics.append(ReleaseEpicDTO.model_validate(row).to_entity())
            except ValidationError as e:
                logger.warning(
                    "Skipping invalid release epic",
                    extra={
                        "epic_id": row.get("id") if isinstance(row, dict) else None,
                        "errors": e.errors(include_url=False, include_context=False),
                    }
                )
        return epics

    async def get_release_work_items(self, version: str, scope: BoardScope) -> List[WorkItemNode]:
        response = await self._request(
            "GET", f"/api/releases/{_segment(version)}/workitems", params=scope.as_params()
        )
        items = self._validate(_WORK_ITEMS, self._json(response), "release work items")
        return [item.to_entity() for item in items]

    async def get_release_metrics(self, version: str, scope: BoardScope) -> ReleaseMetrics:
        response = await self._request(
            "GET", f"/api/releases/{_segment(version)}/metrics", params=scope.as_params()
        )
        return self._validate(ReleaseMetricsDTO, self._json(response), "release metrics").to_entity()

    async def tag_release(
        self,
        version: str,
        scope: BoardScope,
        start_date: Optional[str] = None,
        target_date: Optional[str] = None,
        description: Optional[str] = None,
    ) -> int:
        body = {
            "project": scope.project,
            "areaPath": scope.area_path,
            "startDate": start_date,
            "targetDate": target_date,
            "description": description,
        }
        response = await self._request(
            "POST",
            f"/api/releases/{_segment(version)}/tag",
            json={k: v for k, v in body.items() if v is not None},
        )
        return self._validate(TagReleaseResultDTO, self._json(response), "tag release").epic_id

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
        body = {
            "title": title,
            "startDate": start_date,
            "targetDate": target_date,
            "description": description,
            "status": status,
            "project": scope.project,
            "areaPath": scope.area_path,
        }
        await self._request(
            "PATCH",
            f"/api/releases/{_segment(epic_id)}",
            json={k: v for k, v in body.items() if v is not None},
        )

    async def delete_release_epic(self, epic_id: int, scope: BoardScope) -> None:
        response = await self._request(
            "DELETE", f"/api/releases/{_segment(epic_id)}", params=scope.as_params()
        )
        self._check_outcome(self._safe_json(response), "Delete")

    async def export_release_notes(
        self, version: str, scope: BoardScope, fmt: str
    ) -> Tuple[bytes, str]:
        response = await self._request(
            "GET",
            f"/api/releases/{_segment(version)}/notes",
            params={**scope.as_params(), "format": fmt},
        )
        media_type = response.headers.get("content-type") or NOTES_MEDIA_TYPES.get(fmt, "application/octet-stream")
        return response.content, media_type

    # ---------- Linked items ----------

    async def list_related_items(self, epic_id: int, scope: BoardScope) -> List[WorkItemNode]:
        response = await self._request(
            "GET", f"/api/releases/{_segment(epic_id)}/related-items", params=scope.as_params()
        )
        items = self._validate(_WORK_ITEMS, self._json(response), "related items")
        return [item.to_entity() for item in items]

    async def link_items(self, epic_id: int, work_item_ids: List[int], scope: BoardScope) -> None:
        response = await self._request(
            "POST",
            f"/api/releases/{_segment(epic_id)}/link-related",
            json={"workItemIds": list(work_item_ids), **scope.as_params()},
        )
        self._check_outcome(self._safe_json(response), "Link")

    async def unlink_items(self, epic_id: int, work_item_ids: List[int], scope: BoardScope) -> int:
        response = await self._request(
            "POST",
            f"/api/releases/{_segment(epic_id)}/unlink-related",
            json={"workItemIds": list(work_item_ids), **scope.as_params()},
        )
        data = self._safe_json(response)
        self._check_outcome(data, "Unlink")
        if not isinstance(data, dict):
            return len(work_item_ids)
        return self._validate(UnlinkResultDTO, data, "unlink").unlinked_count

    async def get_children(self, item_id: int, kind: str, scope: BoardScope) -> List[WorkItemNode]:
        if kind == WorkItemType.EPIC.value:
            path = f"/api/epics/{_segment(item_id)}/children"
        elif kind == WorkItemType.FEATURE.value:
            path = f"/api/features/{_segment(item_id)}/children"
        else:
            raise ValidationException(f"No children endpoint for work item type '{kind}'")
        response = await self._request("GET", path, params=scope.as_params())
        items = self._validate(_WORK_ITEMS, self._json(response), "children")
        return [item.to_entity() for item in items]

    # ---------- Deployments ----------

    async def get_latest_deployments(self, version: str) -> LatestDeployments:
        response = await self._request("GET", f"/api/deployments/{_segment(version)}/latest")
        data = self._json(response)
        return self._validate(LatestDeploymentsDTO, data or {}, "latest deployments").to_entity()

    async def create_deployment(
        self,
        version: str,
        environment: DeploymentEnvironment,
        work_item_ids: List[int],
        notes: Optional[str],
    ) -> Optional[Deployment]:
        response = await self._request(
            "POST",
            "/api/deployments",
            json={
                "releaseVersion": version,
                "environment": DeploymentEnvironment(environment).value,
                "workItemIds": list(work_item_ids),
                "notes": notes or "",
            },
        )
        data = self._safe_json(response)
        try:
            return DeploymentDTO.model_validate(data).to_entity()
        except ValidationError:
            # The record exists server-side even if the echo is incomplete
            logger.debug("Deployment response did not include the record")
            return None


# ========== Board configuration ==========

class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for board config file changes."""

    def __init__(self, config_manager: "BoardConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"Board config file changed: {event.src_path}")
            self.config_manager.reload()


class BoardConfigManager(IBoardConfigProvider):
    """
    Thread-safe board configuration with hot reload.

    A missing file means the defaults apply; an invalid file at startup is
    a configuration error, an invalid file on reload keeps the last good
    configuration.
    """

    def __init__(self):
        self._config: Optional[BoardConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> BoardConfig:
        """Initial configuration load."""
        self._path = Path(path)
        try:
            config = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(f"Invalid board config {self._path}: {e}") from e
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> BoardConfig:
        if not path.exists():
            logger.warning(f"Board config file not found: {path}, using defaults")
            return BoardConfig()

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return BoardConfig(**data)

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError, TypeError, OSError) as e:
            logger.error(f"Failed to reload board config: {e}")
            return False

        with self._lock:
            self._config = new_config
        logger.info("Board configuration reloaded")
        return True

    def start_watching(self) -> None:
        """Watch the config file for changes; skipped when the file does not exist."""
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(f"Board config file doesn't exist, skipping file watch: {self._path}")
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info(f"Started watching board config file: {self._path}")
        except OSError as e:
            logger.warning(f"File watching not available, using static config: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_config(self) -> BoardConfig:
        with self._lock:
            if self._config is None:
                raise RuntimeError("Board configuration not loaded")
            return self._config
