"""
Release Board Controllers (API Routes)
=======================================

FastAPI routes for the release board.

Controllers are thin - they delegate to the ReleaseBoard held in app state
and translate MutationResults into HTTP responses.
"""

from typing import List, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from release_board.core import ConfirmationRequiredException, ResourceNotFoundException
from release_board.releases.application import (
    DELETE_PROMPT, UNLINK_PROMPT, HierarchyCache, MutationResult, ReleaseBoard,
)
from release_board.releases.application.dto import (
    BranchResponse, DeploymentCreateRequest,
    EditReleaseRequest, LatestDeploymentsResponse, LinkItemsRequest,
    MetricsResponse, MutationResponse, NotesFormatStr, NotificationsResponse,
    ReleaseDetailsResponse, ReleaseEpicResponse, ScopeRequest, ScopeResponse,
    SelectionRequest, TagReleaseRequest, TagReleaseResponse, WorkItemResponse,
)
from release_board.releases.domain import MetricsEngine, ReleaseDetails, WorkItemNode
from release_board.releases.infrastructure import StaticConfirmation
from release_board.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/board", tags=["Release Board"])


# ========== Dependencies ==========

def get_board(request: Request) -> ReleaseBoard:
    """Get the board session from app state."""
    board = getattr(request.app.state, "board", None)
    if board is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Release board not initialized"
        )
    return board


# ========== Response builders ==========

def _work_item(item: WorkItemNode, board: ReleaseBoard) -> WorkItemResponse:
    return WorkItemResponse(
        id=item.id,
        title=item.title,
        work_item_type=item.work_item_type,
        state=item.state,
        state_bucket=MetricsEngine.classify_state(item.state).value,
        assigned_to=item.assigned_to,
        target_date=item.target_date,
        parent_id=item.parent_id,
        has_uat_ready_children=board.uat_checker.is_flagged(item.id),
    )


def _branch(node_id: int, cache: HierarchyCache, board: ReleaseBoard) -> BranchResponse:
    return BranchResponse(
        node_id=node_id,
        expanded=cache.is_expanded(node_id),
        loading=cache.is_loading(node_id),
        loaded=cache.is_loaded(node_id),
        children=[_work_item(child, board) for child in cache.children(node_id)],
    )


def _details(details: ReleaseDetails, board: ReleaseBoard) -> ReleaseDetailsResponse:
    metrics = details.metrics
    return ReleaseDetailsResponse(
        version=details.version,
        work_items=[_work_item(item, board) for item in details.work_items],
        metrics=MetricsResponse(
            total_features=metrics.total_features,
            completed_features=metrics.completed_features,
            in_progress_features=metrics.in_progress_features,
            blocked_features=metrics.blocked_features,
            ready_for_release_features=metrics.ready_for_release_features,
        ) if metrics else None,
        health=MetricsEngine.health_status(metrics).value,
        completion_percent=metrics.completion_percent if metrics else 0,
        latest_deployments=LatestDeploymentsResponse.from_entity(details.latest_deployments),
        errors=dict(details.errors),
    )


def _raise_for(result: MutationResult, prompt: str = "") -> None:
    if result.success:
        return
    if result.cancelled:
        raise ConfirmationRequiredException(prompt)
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.error)


# ========== Scope and selection ==========

@router.get("/scope", response_model=ScopeResponse, summary="Current board scope")
async def get_scope(board: ReleaseBoard = Depends(get_board)):
    return ScopeResponse(
        project=board.scope.project,
        area_path=board.scope.area_path,
        selected_release=board.catalog.selected_release,
    )


@router.put("/scope", response_model=ScopeResponse, summary="Change project / area path")
async def set_scope(request: ScopeRequest, board: ReleaseBoard = Depends(get_board)):
    board.catalog.set_scope(request.project, request.area_path)
    return ScopeResponse(
        project=board.scope.project,
        area_path=board.scope.area_path,
        selected_release=board.catalog.selected_release,
    )


@router.get(
    "/releases",
    response_model=List[str],
    summary="List release versions",
    description="Empty when the work item service is unavailable. "
                "Selects the first version when nothing is selected yet."
)
async def list_releases(board: ReleaseBoard = Depends(get_board)):
    return await board.catalog.list_release_versions()


@router.get("/epics", response_model=List[ReleaseEpicResponse], summary="List release epics")
async def list_epics(board: ReleaseBoard = Depends(get_board)):
    epics = await board.catalog.list_release_epics()
    return [ReleaseEpicResponse.from_entity(epic) for epic in epics]


@router.post("/selection", response_model=ScopeResponse, summary="Select a release")
async def select_release(request: SelectionRequest, board: ReleaseBoard = Depends(get_board)):
    board.catalog.select_release(request.version)
    return ScopeResponse(
        project=board.scope.project,
        area_path=board.scope.area_path,
        selected_release=board.catalog.selected_release,
    )


@router.get(
    "/details",
    response_model=ReleaseDetailsResponse,
    summary="Details of the selected release",
    description="""
    Work items, feature metrics and latest deployments of the selected release.

    The three parts are loaded independently; a part that failed is empty and
    its message is listed under `errors`.
    """
)
async def get_details(board: ReleaseBoard = Depends(get_board)):
    if board.catalog.selected_release is None:
        raise ResourceNotFoundException("Selected release")
    details = await board.catalog.load_selected_details()
    if details is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Release selection changed while loading"
        )
    return _details(details, board)


# ========== Hierarchy ==========

@router.post(
    "/epics/{epic_id}/toggle",
    response_model=BranchResponse,
    summary="Expand or collapse a release epic",
    description="Answers once the linked items are loaded. UAT-ready flags are computed "
                "in the background and appear under `GET /board/epics/{epic_id}/items`."
)
async def toggle_epic(epic_id: int, board: ReleaseBoard = Depends(get_board)):
    await board.toggle_epic(epic_id)
    return _branch(epic_id, board.linked_items, board)


@router.get(
    "/epics/{epic_id}/items",
    response_model=BranchResponse,
    summary="Cached items linked to a release epic",
    description="Waits for UAT-ready scans that are still running."
)
async def get_epic_items(epic_id: int, board: ReleaseBoard = Depends(get_board)):
    await board.settle()
    return _branch(epic_id, board.linked_items, board)


@router.post("/items/{item_id}/toggle", response_model=BranchResponse, summary="Expand or collapse an Epic or Feature")
async def toggle_item(
    item_id: int,
    kind: Literal["Epic", "Feature"] = Query(..., description="Work item type of the node"),
    board: ReleaseBoard = Depends(get_board),
):
    await board.toggle_item(item_id, kind)
    return _branch(item_id, board.nested_items, board)


@router.get("/items/{item_id}/children", response_model=BranchResponse, summary="Cached children of an Epic or Feature")
async def get_item_children(item_id: int, board: ReleaseBoard = Depends(get_board)):
    return _branch(item_id, board.nested_items, board)


# ========== Linkage ==========

@router.post("/epics/{epic_id}/links", response_model=MutationResponse, summary="Link work items to a release epic")
async def link_items(
    epic_id: int,
    request: LinkItemsRequest,
    board: ReleaseBoard = Depends(get_board),
):
    result = await board.linkage.link_items(epic_id, request.work_item_ids)
    _raise_for(result)
    return MutationResponse(success=True, message=f"Linked {len(result.value)} item(s)")


@router.delete(
    "/epics/{epic_id}/links/{item_id}",
    response_model=MutationResponse,
    summary="Unlink a work item from a release epic",
    description="Requires `confirm=true`; answers 428 otherwise."
)
async def unlink_item(
    epic_id: int,
    item_id: int,
    confirm: bool = Query(False),
    board: ReleaseBoard = Depends(get_board),
):
    result = await board.linkage.unlink_item(
        epic_id, item_id, confirmation=StaticConfirmation(confirm)
    )
    _raise_for(result, UNLINK_PROMPT)
    return MutationResponse(success=True, message=f"Unlinked {result.value} item(s)")


# ========== Release editing ==========

@router.post(
    "/releases",
    response_model=TagReleaseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Tag a new release"
)
async def tag_release(request: TagReleaseRequest, board: ReleaseBoard = Depends(get_board)):
    result = await board.editor.tag_release(
        request.version,
        start_date=request.start_date,
        target_date=request.target_date,
        description=request.description,
    )
    _raise_for(result)
    return TagReleaseResponse(epic_id=result.value)


@router.patch("/epics/{epic_id}", response_model=MutationResponse, summary="Edit a release epic")
async def edit_release(
    epic_id: int,
    request: EditReleaseRequest,
    board: ReleaseBoard = Depends(get_board),
):
    result = await board.editor.edit_release(
        epic_id,
        request.title,
        request.status,
        start_date=request.start_date,
        target_date=request.target_date,
        description=request.description,
    )
    _raise_for(result)
    return MutationResponse(success=True, message="Release updated")


@router.delete(
    "/epics/{epic_id}",
    response_model=MutationResponse,
    summary="Delete a release epic",
    description="Linked work items are kept. Requires `confirm=true`; answers 428 otherwise."
)
async def delete_release(
    epic_id: int,
    confirm: bool = Query(False),
    board: ReleaseBoard = Depends(get_board),
):
    result = await board.linkage.delete_release_epic(
        epic_id, confirmation=StaticConfirmation(confirm)
    )
    _raise_for(result, DELETE_PROMPT)
    return MutationResponse(success=True, message="Release epic deleted")


# ========== Deployments ==========

@router.post(
    "/deployments",
    response_model=MutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a deployment"
)
async def record_deployment(
    request: DeploymentCreateRequest,
    board: ReleaseBoard = Depends(get_board),
):
    result = await board.deployments.record_deployment(
        request.release_version,
        request.environment,
        work_item_ids=request.work_item_ids,
        notes=request.notes,
    )
    _raise_for(result)
    return MutationResponse(success=True, message=f"Deployment recorded for {request.environment}")


@router.get(
    "/releases/{version}/deployments/latest",
    response_model=LatestDeploymentsResponse,
    summary="Latest deployment per environment"
)
async def latest_deployments(version: str, board: ReleaseBoard = Depends(get_board)):
    latest = await board.deployments.get_latest_deployments(version)
    return LatestDeploymentsResponse.from_entity(latest)


# ========== Release notes ==========

@router.get("/releases/{version}/notes", summary="Download release notes")
async def release_notes(
    version: str,
    fmt: NotesFormatStr = Query("markdown", alias="format"),
    board: ReleaseBoard = Depends(get_board),
):
    export = await board.catalog.export_release_notes(version, fmt)
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


# ========== Notifications ==========

@router.get("/notifications", response_model=NotificationsResponse, summary="Collect pending user alerts")
async def notifications(board: ReleaseBoard = Depends(get_board)):
    drain = getattr(board.notifier, "drain", None)
    return NotificationsResponse(messages=drain() if drain else [])


board_router = router
