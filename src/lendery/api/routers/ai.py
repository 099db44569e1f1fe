# ABOUTME: Helper routes backed by the estimator and the recommendation scorer.
# ABOUTME: Due-date estimates run synchronously here; no inline timeout applies.

from typing import Any

from fastapi import APIRouter, Depends

from lendery.api.dependencies import get_library_service, get_runtime, get_viewer
from lendery.api.schemas import DueDateEstimatePayload, RecommendationsPayload
from lendery.core.library import LibraryService
from lendery.core.runtime import Runtime
from lendery.core.viewer import Viewer

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/due-date-estimate")
def due_date_estimate(
    payload: DueDateEstimatePayload,
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    estimate = runtime.estimator.estimate(payload.title, payload.author, payload.isbn)
    return estimate.to_dict()


@router.post("/recommendations")
def recommendations(
    payload: RecommendationsPayload | None = None,
    viewer: Viewer = Depends(get_viewer),
    library: LibraryService = Depends(get_library_service),
) -> dict[str, Any]:
    limit = payload.limit if payload is not None else RecommendationsPayload().limit
    ranked, history_length = library.recommend(viewer, limit)
    return {
        "data": [item.to_dict() for item in ranked],
        "meta": {
            "strategy": "history-weighted genre/author affinity",
            "sourceLoans": history_length,
        },
    }
