# ABOUTME: Lending routes: checkout, checkin, due-date override, listings, admin overview.
# ABOUTME: Claims and their dependent writes happen in LendingService.

from typing import Any

from fastapi import APIRouter, Depends, Query, status

from lendery.api.dependencies import get_lending_service, get_viewer
from lendery.api.schemas import CheckinPayload, CheckoutPayload, DueDatePayload
from lendery.core.lending import LendingService
from lendery.core.viewer import Viewer

router = APIRouter(prefix="/loans", tags=["loans"])


@router.get("")
def list_loans(
    status_filter: str | None = Query(default=None, alias="status"),
    user_id: str | None = Query(default=None, alias="userId"),
    viewer: Viewer = Depends(get_viewer),
    lending: LendingService = Depends(get_lending_service),
) -> dict[str, Any]:
    loans = lending.list_loans(viewer, status=status_filter, user_id=user_id)
    return {"data": [view.to_dict() for view in loans]}


@router.get("/admin/overview")
def admin_overview(
    viewer: Viewer = Depends(get_viewer),
    lending: LendingService = Depends(get_lending_service),
) -> dict[str, Any]:
    return {"data": lending.overview(viewer)}


@router.get("/due-soon")
def due_soon(
    days: int = Query(default=3, ge=1, le=30),
    viewer: Viewer = Depends(get_viewer),
    lending: LendingService = Depends(get_lending_service),
) -> dict[str, Any]:
    loans = lending.due_soon(viewer, days)
    return {"data": [view.to_dict() for view in loans], "meta": {"days": days}}


@router.post("/checkout", status_code=status.HTTP_201_CREATED)
def checkout(
    payload: CheckoutPayload,
    viewer: Viewer = Depends(get_viewer),
    lending: LendingService = Depends(get_lending_service),
) -> dict[str, Any]:
    result = lending.checkout(viewer, payload.book_id, payload.due_at)
    return {"data": result.loan.to_dict(), "meta": result.meta()}


@router.post("/checkin")
def checkin(
    payload: CheckinPayload,
    viewer: Viewer = Depends(get_viewer),
    lending: LendingService = Depends(get_lending_service),
) -> dict[str, Any]:
    return {"data": lending.checkin(viewer, payload.book_id).to_dict()}


@router.patch("/{loan_id}/due-date")
def set_due_date(
    loan_id: int,
    payload: DueDatePayload,
    viewer: Viewer = Depends(get_viewer),
    lending: LendingService = Depends(get_lending_service),
) -> dict[str, Any]:
    return {"data": lending.set_due_date(viewer, loan_id, payload.due_at).to_dict()}


@router.get("/admin/audit")
def audit_log(
    entity: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    viewer: Viewer = Depends(get_viewer),
    lending: LendingService = Depends(get_lending_service),
) -> dict[str, Any]:
    return {"data": lending.audit_log(viewer, entity=entity, limit=limit)}
