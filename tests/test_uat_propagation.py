"""Tests for the UAT-ready highlight of Epics and Features."""

import asyncio

import httpx
import pytest

from release_board.releases.domain import BoardConfig
from tests.conftest import work_item

RELATED = "/api/releases/100/related-items"
UAT = "UAT - Ready For Test"


@pytest.mark.asyncio
async def test_flags_items_with_uat_ready_children(board, service):
    service.add("GET", RELATED, [
        work_item(6, "Feature"),
        work_item(7, "Product Backlog Item", UAT),
        work_item(8, "Epic"),
    ])
    service.add("GET", "/api/features/6/children", [work_item(60, state=UAT), work_item(61)])
    service.add("GET", "/api/epics/8/children", [work_item(80, "Feature", "Done")])

    await board.toggle_epic(100)
    await board.settle()

    assert board.uat_checker.flagged == {6}
    assert board.nested_items.is_loaded(6)
    assert not board.nested_items.is_expanded(6)
    assert {r.url.path for r in service.requests if "children" in r.url.path} == {
        "/api/features/6/children",
        "/api/epics/8/children",
    }


@pytest.mark.asyncio
async def test_scan_is_one_level_deep(board, service):
    service.add("GET", RELATED, [work_item(8, "Epic")])
    service.add("GET", "/api/epics/8/children", [work_item(9, "Feature")])
    service.add("GET", "/api/features/9/children", [work_item(90, state=UAT)])

    await board.toggle_epic(100)
    await board.settle()

    assert not board.uat_checker.is_flagged(8)
    assert service.calls("GET", "/api/features/9/children") == []


@pytest.mark.asyncio
async def test_expanding_a_scanned_item_reuses_its_children(board, service):
    service.add("GET", RELATED, [work_item(6, "Feature")])
    service.add("GET", "/api/features/6/children", [work_item(60, state=UAT)])

    await board.toggle_epic(100)
    await board.settle()
    await board.toggle_item(6, "Feature")

    assert board.nested_items.is_expanded(6)
    assert len(service.calls("GET", "/api/features/6/children")) == 1


@pytest.mark.asyncio
async def test_propagation_types_are_configurable(board, service, config_provider):
    config_provider.config = BoardConfig(propagation_types=["Feature"])
    service.add("GET", RELATED, [work_item(8, "Epic")])
    service.add("GET", "/api/epics/8/children", [work_item(80, state=UAT)])

    await board.toggle_epic(100)
    await board.settle()

    assert board.uat_checker.flagged == set()
    assert service.calls("GET", "/api/epics/8/children") == []


@pytest.mark.asyncio
async def test_custom_aliases(board, service, config_provider):
    config_provider.config = BoardConfig(uat_ready_aliases=["Ready for UAT"])
    service.add("GET", RELATED, [work_item(6, "Feature")])
    service.add("GET", "/api/features/6/children", [work_item(60, state="Ready for UAT")])

    await board.toggle_epic(100)
    await board.settle()

    assert board.uat_checker.is_flagged(6)


@pytest.mark.asyncio
async def test_failed_scan_is_not_marked_visited(board, service):
    service.add("GET", RELATED, [work_item(6, "Feature")])
    service.add("GET", "/api/features/6/children", {"error": "boom"}, status=500)
    await board.toggle_epic(100)
    await board.settle()
    assert not board.uat_checker.is_flagged(6)

    service.add("GET", "/api/features/6/children", [work_item(60, state=UAT)])
    item = board.linked_items.children(100)[0]
    assert await board.uat_checker.check_item(item, board.scope) is True


@pytest.mark.asyncio
async def test_selection_change_resets_flags(board, service):
    service.add("GET", RELATED, [work_item(6, "Feature")])
    service.add("GET", "/api/features/6/children", [work_item(60, state=UAT)])
    await board.toggle_epic(100)
    await board.settle()
    assert board.uat_checker.is_flagged(6)

    board.catalog.select_release("v2.0")

    assert board.uat_checker.flagged == set()
    assert not board.linked_items.is_loaded(100)
    assert not board.nested_items.is_loaded(6)


@pytest.mark.asyncio
async def test_expansion_returns_before_the_scan_finishes(board, service):
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_children(request):
        started.set()
        await release.wait()
        return httpx.Response(200, json=[work_item(60, state=UAT)])

    service.add("GET", RELATED, [work_item(6, "Feature")])
    service.add_handler("GET", "/api/features/6/children", slow_children)

    assert await board.toggle_epic(100) is True
    assert board.linked_items.is_loaded(100)
    assert not board.uat_checker.is_flagged(6)

    await started.wait()
    assert board.nested_items.is_loading(6)
    release.set()
    await board.settle()

    assert board.uat_checker.is_flagged(6)


@pytest.mark.asyncio
async def test_scan_errors_do_not_reach_the_expansion(board, service, config_provider, monkeypatch):
    def broken():
        raise RuntimeError("config unavailable")

    monkeypatch.setattr(config_provider, "get_config", broken)
    service.add("GET", RELATED, [work_item(6, "Feature")])

    assert await board.toggle_epic(100) is True
    await board.settle()

    assert [child.id for child in board.linked_items.children(100)] == [6]
    assert board.uat_checker.flagged == set()
