"""Tests for the lazy hierarchy caches."""

import asyncio

import httpx
import pytest

from release_board.core import ValidationException
from release_board.releases.application import HierarchyCache, HierarchyLevel
from tests.conftest import AREA_PATH, PROJECT, work_item

RELATED = "/api/releases/100/related-items"


@pytest.fixture
def linked(client):
    return HierarchyCache(client, HierarchyLevel.RELEASE)


@pytest.fixture
def nested(client):
    return HierarchyCache(client, HierarchyLevel.NESTED)


def _slow_route(service, path, body):
    started = asyncio.Event()
    release = asyncio.Event()

    async def handler(request):
        started.set()
        await release.wait()
        return httpx.Response(200, json=body)

    service.add_handler("GET", path, handler)
    return started, release


@pytest.mark.asyncio
async def test_rapid_toggles_issue_one_fetch(linked, service):
    started, release = _slow_route(service, RELATED, [work_item(456), work_item(789)])

    first = asyncio.create_task(linked.toggle_expand(100, PROJECT, AREA_PATH))
    await started.wait()
    assert linked.is_loading(100)

    assert await linked.toggle_expand(100, PROJECT, AREA_PATH) is False
    third = asyncio.create_task(linked.toggle_expand(100, PROJECT, AREA_PATH))
    await asyncio.sleep(0)
    release.set()
    await asyncio.gather(first, third)

    assert len(service.calls("GET", RELATED)) == 1
    assert linked.is_expanded(100)
    assert [child.id for child in linked.children(100)] == [456, 789]
    assert not linked.is_loading(100)


@pytest.mark.asyncio
async def test_collapse_keeps_children(linked, service):
    service.add("GET", RELATED, [work_item(456)])

    assert await linked.toggle_expand(100, PROJECT, AREA_PATH) is True
    assert await linked.toggle_expand(100, PROJECT, AREA_PATH) is False
    assert linked.is_loaded(100)
    assert await linked.toggle_expand(100, PROJECT, AREA_PATH) is True

    assert len(service.calls("GET", RELATED)) == 1


@pytest.mark.asyncio
async def test_failed_fetch_is_retried(linked, service):
    service.add("GET", RELATED, {"error": "Timeout"}, status=504)

    await linked.toggle_expand(100, PROJECT, AREA_PATH)
    assert not linked.is_loaded(100)
    assert linked.children(100) == []

    await linked.toggle_expand(100, PROJECT, AREA_PATH)
    service.add("GET", RELATED, [work_item(456)])
    await linked.toggle_expand(100, PROJECT, AREA_PATH)

    assert [child.id for child in linked.children(100)] == [456]
    assert len(service.calls("GET", RELATED)) == 2


@pytest.mark.asyncio
async def test_reset_discards_late_result(linked, service):
    started, release = _slow_route(service, RELATED, [work_item(456)])

    pending = asyncio.create_task(linked.toggle_expand(100, PROJECT, AREA_PATH))
    await started.wait()
    linked.reset()
    release.set()
    await pending

    assert not linked.is_loaded(100)
    assert not linked.is_expanded(100)


@pytest.mark.asyncio
async def test_duplicate_children_are_dropped(linked, service):
    service.add("GET", RELATED, [work_item(456), work_item(456, title="again"), work_item(789)])

    await linked.toggle_expand(100, PROJECT, AREA_PATH)

    children = linked.children(100)
    assert [child.id for child in children] == [456, 789]
    assert children[0].title == "Item 456"


@pytest.mark.asyncio
async def test_nested_level_requires_epic_or_feature(nested, service):
    with pytest.raises(ValidationException):
        await nested.toggle_expand(5, PROJECT, AREA_PATH)
    with pytest.raises(ValidationException):
        await nested.toggle_expand(5, PROJECT, AREA_PATH, "Bug")


@pytest.mark.asyncio
async def test_nested_level_loads_feature_children(nested, service):
    service.add("GET", "/api/features/6/children", [work_item(7)])

    await nested.toggle_expand(6, PROJECT, AREA_PATH, "Feature")

    assert [child.id for child in nested.children(6)] == [7]


@pytest.mark.asyncio
async def test_prefetch_does_not_expand(nested, service):
    service.add("GET", "/api/epics/5/children", [work_item(6, "Feature")])

    children = await nested.prefetch(5, PROJECT, AREA_PATH, "Epic")

    assert [child.id for child in children] == [6]
    assert not nested.is_expanded(5)
    assert nested.is_loaded(5)


@pytest.mark.asyncio
async def test_remove_child(linked, service):
    service.add("GET", RELATED, [work_item(456), work_item(789)])
    await linked.toggle_expand(100, PROJECT, AREA_PATH)

    assert linked.remove_child(100, 456) is True
    assert linked.remove_child(100, 456) is False
    assert [child.id for child in linked.children(100)] == [789]


@pytest.mark.asyncio
async def test_expansion_does_not_wait_for_branch_listeners(linked, service):
    service.add("GET", RELATED, [work_item(456)])
    release = asyncio.Event()
    seen = []

    async def listener(node_id, children, scope):
        await release.wait()
        seen.append((node_id, [child.id for child in children]))

    linked.add_branch_listener(listener)

    assert await linked.toggle_expand(100, PROJECT, AREA_PATH) is True
    assert linked.is_loaded(100)
    assert seen == []

    release.set()
    await linked.wait_for_listeners()
    assert seen == [(100, [456])]


@pytest.mark.asyncio
async def test_failing_branch_listeners_do_not_break_expansion(linked, service):
    service.add("GET", RELATED, [work_item(456)])
    seen = []

    def broken_sync(node_id, children, scope):
        raise RuntimeError("sync listener")

    async def broken_async(node_id, children, scope):
        raise RuntimeError("async listener")

    linked.add_branch_listener(broken_sync)
    linked.add_branch_listener(broken_async)
    linked.add_branch_listener(lambda node_id, children, scope: seen.append(node_id))

    assert await linked.toggle_expand(100, PROJECT, AREA_PATH) is True
    await linked.wait_for_listeners()

    assert [child.id for child in linked.children(100)] == [456]
    assert seen == [100]


@pytest.mark.asyncio
async def test_reset_cancels_running_listeners(linked, service):
    service.add("GET", RELATED, [work_item(456)])
    release = asyncio.Event()
    finished = []

    async def listener(node_id, children, scope):
        await release.wait()
        finished.append(node_id)

    linked.add_branch_listener(listener)
    await linked.toggle_expand(100, PROJECT, AREA_PATH)

    linked.reset()
    release.set()
    await asyncio.sleep(0)
    await linked.wait_for_listeners()

    assert finished == []
