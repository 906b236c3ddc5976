"""Shared fixtures: a fake work item service behind httpx.MockTransport."""

import inspect
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from release_board.releases.application import IBoardConfigProvider, ReleaseBoard
from release_board.releases.domain import BoardConfig, BoardScope
from release_board.releases.infrastructure import (
    QueuedNotifier, StaticConfirmation, WorkItemServiceClient,
)

PROJECT = "Contoso"
AREA_PATH = "Contoso\\Web"
BASE_URL = "http://work-items.test"


def work_item(
    item_id: int,
    work_item_type: str = "Product Backlog Item",
    state: str = "New",
    title: Optional[str] = None,
    **extra: Any,
) -> dict:
    """Work item payload as the service sends it."""
    return {
        "id": item_id,
        "title": title or f"Item {item_id}",
        "workItemType": work_item_type,
        "state": state,
        **extra,
    }


def release_epic(epic_id: int, version: str, completed: int = 0, total: int = 0, **extra: Any) -> dict:
    return {
        "id": epic_id,
        "version": version,
        "status": "Active",
        "completedItems": completed,
        "totalItems": total,
        **extra,
    }


def deployment(environment: str, deployed_at: str = "2024-05-02T10:00:00Z", **extra: Any) -> dict:
    return {
        "id": f"dep-{environment}",
        "releaseVersion": "v1.0",
        "environment": environment,
        "workItemIds": [1, 2],
        "deployedBy": "release-bot",
        "deployedAt": deployed_at,
        **extra,
    }


Route = Any


class FakeWorkItemService:
    """
    Minimal stand-in for the work item service.

    A route is either (status, json_body) or a callable taking the request
    and returning an httpx.Response (sync or async).
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, body: Any = None, status: int = 200) -> None:
        self.routes[(method, path)] = (status, body)

    def add_handler(self, method: str, path: str, handler: Callable) -> None:
        self.routes[(method, path)] = handler

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": f"No route for {request.method} {request.url.path}"})
        if callable(route):
            result = route(request)
            if inspect.isawaitable(result):
                result = await result
            return result
        status, body = route
        return httpx.Response(status, json=body)


class StaticConfigProvider(IBoardConfigProvider):
    def __init__(self, config: Optional[BoardConfig] = None):
        self.config = config or BoardConfig()

    def get_config(self) -> BoardConfig:
        return self.config


@pytest.fixture
def service() -> FakeWorkItemService:
    return FakeWorkItemService()


@pytest.fixture
def client(service) -> WorkItemServiceClient:
    return WorkItemServiceClient(
        base_url=BASE_URL,
        token="",
        timeout=5,
        transport=httpx.MockTransport(service),
    )


@pytest.fixture
def config_provider() -> StaticConfigProvider:
    return StaticConfigProvider()


@pytest.fixture
def notifier() -> QueuedNotifier:
    return QueuedNotifier()


@pytest.fixture
def scope() -> BoardScope:
    return BoardScope(PROJECT, AREA_PATH)


@pytest.fixture
def board(client, config_provider, notifier, scope) -> ReleaseBoard:
    return ReleaseBoard(
        gateway=client,
        config_provider=config_provider,
        notifier=notifier,
        scope=scope,
        confirmation=StaticConfirmation(True),
    )
