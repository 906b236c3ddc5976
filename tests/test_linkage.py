"""Tests for linking, unlinking and deleting release epics."""

import asyncio
import json

import httpx
import pytest

from release_board.core import ValidationException
from release_board.releases.infrastructure import StaticConfirmation
from tests.conftest import AREA_PATH, PROJECT, release_epic, work_item

RELATED = "/api/releases/100/related-items"
UNLINK = "/api/releases/100/unlink-related"
LINK = "/api/releases/100/link-related"
EPICS = "/api/releases/epics"


@pytest.fixture
def expanded_epic(board, service):
    service.add("GET", RELATED, [work_item(456), work_item(789)])
    service.add("GET", EPICS, [release_epic(100, "v1.0", 0, 2)])

    async def expand():
        await board.toggle_epic(100)
        await board.settle()
        return board

    return expand


@pytest.mark.asyncio
async def test_unlink_removes_item_and_refreshes_epics(expanded_epic, service):
    board = await expanded_epic()
    service.add("POST", UNLINK, {"success": True, "unlinkedCount": 1})

    result = await board.linkage.unlink_item(100, 456)

    assert result.success
    assert [child.id for child in board.linked_items.children(100)] == [789]
    assert len(service.calls("GET", EPICS)) == 1


@pytest.mark.asyncio
async def test_unlink_failure_leaves_cache_and_alerts(expanded_epic, service, notifier):
    board = await expanded_epic()
    service.add("POST", UNLINK, {"error": "Failed to unlink work item"}, status=500)

    result = await board.linkage.unlink_item(100, 456)

    assert not result.success
    assert "Failed to unlink work item" in result.error
    assert [child.id for child in board.linked_items.children(100)] == [456, 789]
    assert notifier.pending() == [result.error]
    assert service.calls("GET", EPICS) == []


@pytest.mark.asyncio
async def test_unlink_without_confirmation_sends_nothing(expanded_epic, service):
    board = await expanded_epic()

    result = await board.linkage.unlink_item(100, 456, confirmation=StaticConfirmation(False))

    assert result.cancelled
    assert service.calls("POST", UNLINK) == []
    assert [child.id for child in board.linked_items.children(100)] == [456, 789]


@pytest.mark.asyncio
async def test_link_deduplicates_and_refreshes_epics(board, service):
    service.add("POST", LINK, {"success": True})
    service.add("GET", EPICS, [release_epic(100, "v1.0", 0, 3)])

    result = await board.linkage.link_items(100, [5, 6, 5])

    assert result.success
    assert result.value == [5, 6]
    body = json.loads(service.calls("POST", LINK)[0].content)
    assert body["workItemIds"] == [5, 6]
    assert len(service.calls("GET", EPICS)) == 1


@pytest.mark.asyncio
async def test_link_requires_ids(board):
    with pytest.raises(ValidationException):
        await board.linkage.link_items(100, [])


@pytest.mark.asyncio
async def test_link_failure_alerts_with_server_text(board, service, notifier):
    service.add("POST", LINK, {"error": "Item 5 does not exist"}, status=400)

    result = await board.linkage.link_items(100, [5])

    assert result.error == "Failed to link items: Item 5 does not exist"
    assert notifier.drain() == ["Failed to link items: Item 5 does not exist"]


@pytest.mark.asyncio
async def test_delete_blocks_duplicate_submission(board, service):
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_delete(request):
        started.set()
        await release.wait()
        return httpx.Response(200, json={"success": True})

    service.add_handler("DELETE", "/api/releases/100", slow_delete)
    service.add("GET", EPICS, [])

    first = asyncio.create_task(board.linkage.delete_release_epic(100))
    await started.wait()
    assert board.linkage.deleting

    second = await board.linkage.delete_release_epic(100)
    release.set()
    result = await first

    assert not second.success
    assert result.success
    assert not board.linkage.deleting
    assert len(service.calls("DELETE", "/api/releases/100")) == 1
    assert len(service.calls("GET", EPICS)) == 1


@pytest.mark.asyncio
async def test_delete_failure_keeps_epic_list(board, service, notifier):
    service.add("GET", EPICS, [release_epic(100, "v1.0", 0, 2)])
    await board.catalog.list_release_epics()
    service.add("DELETE", "/api/releases/100", {"error": "Epic is locked"}, status=409)

    result = await board.linkage.delete_release_epic(100)

    assert result.error == "Failed to delete epic: Epic is locked"
    assert len(service.calls("GET", EPICS)) == 1
    assert [epic.id for epic in await board.catalog.list_release_epics()] == [100]
    assert not board.linkage.deleting


def _gated_epics(service, totals):
    """Serve the epic list once per entry in `totals`, each call held until its gate opens."""
    arrived = [asyncio.Event() for _ in totals]
    gates = [asyncio.Event() for _ in totals]
    served = []

    async def epics(request):
        index = len(served)
        served.append(request)
        arrived[index].set()
        await gates[index].wait()
        return httpx.Response(200, json=[release_epic(100, "v1.0", 0, totals[index])])

    service.add_handler("GET", EPICS, epics)
    return arrived, gates, served


@pytest.mark.asyncio
async def test_epic_read_outlasting_link_refresh_is_not_cached(board, service):
    arrived, gates, served = _gated_epics(service, [2, 3])
    service.add("POST", LINK, {"success": True})

    stale_read = asyncio.create_task(board.catalog.list_release_epics())
    await arrived[0].wait()
    gates[1].set()
    result = await board.linkage.link_items(100, [5])
    gates[0].set()
    await stale_read

    epics = await board.catalog.list_release_epics()

    assert result.success
    assert epics[0].total_items == 3
    assert len(served) == 2


@pytest.mark.asyncio
async def test_epic_read_finishing_during_link_refresh_is_not_cached(board, service):
    arrived, gates, served = _gated_epics(service, [2, 3])
    service.add("POST", LINK, {"success": True})

    stale_read = asyncio.create_task(board.catalog.list_release_epics())
    await arrived[0].wait()
    link = asyncio.create_task(board.linkage.link_items(100, [5]))
    await arrived[1].wait()
    gates[0].set()
    stale = await stale_read

    assert stale[0].total_items == 2
    assert board.cache.peek(("releaseEpics", PROJECT, AREA_PATH)) is None

    gates[1].set()
    result = await link
    epics = await board.catalog.list_release_epics()

    assert result.success
    assert epics[0].total_items == 3
    assert len(served) == 2
