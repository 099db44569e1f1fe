# ABOUTME: Borrow-request routes: create, approve, decline, list, mark decisions seen.
# ABOUTME: Approval opens a loan; its response carries the due-date source in meta.

from typing import Any

from fastapi import APIRouter, Depends, Query, status

from lendery.api.dependencies import get_request_service, get_viewer
from lendery.api.schemas import BorrowRequestPayload
from lendery.core.requests import BorrowRequestService
from lendery.core.viewer import Viewer

router = APIRouter(prefix="/borrow-requests", tags=["borrow-requests"])


@router.get("")
def list_requests(
    status_filter: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    viewer: Viewer = Depends(get_viewer),
    requests: BorrowRequestService = Depends(get_request_service),
) -> dict[str, Any]:
    listing = requests.list_requests(viewer, status=status_filter, limit=limit)
    return {"data": [view.to_dict() for view in listing.requests], "meta": listing.meta()}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_request(
    payload: BorrowRequestPayload,
    viewer: Viewer = Depends(get_viewer),
    requests: BorrowRequestService = Depends(get_request_service),
) -> dict[str, Any]:
    return {"data": requests.create(viewer, payload.book_id).to_dict()}


@router.post("/me/mark-seen")
def mark_seen(
    viewer: Viewer = Depends(get_viewer),
    requests: BorrowRequestService = Depends(get_request_service),
) -> dict[str, Any]:
    return {"data": {"updatedCount": requests.mark_seen(viewer)}}


@router.post("/{request_id}/approve")
def approve_request(
    request_id: int,
    viewer: Viewer = Depends(get_viewer),
    requests: BorrowRequestService = Depends(get_request_service),
) -> dict[str, Any]:
    result = requests.approve(viewer, request_id)
    return {
        "data": {**result.request.to_dict(), "loan": result.loan.to_dict()},
        "meta": result.meta(),
    }


@router.post("/{request_id}/decline")
def decline_request(
    request_id: int,
    viewer: Viewer = Depends(get_viewer),
    requests: BorrowRequestService = Depends(get_request_service),
) -> dict[str, Any]:
    return {"data": requests.decline(viewer, request_id).to_dict()}
