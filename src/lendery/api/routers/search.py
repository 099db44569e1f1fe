# ABOUTME: Catalog search route with an optional provider fallback for signed-in callers.
# ABOUTME: A local miss with withFallback=true imports matching records from the providers.

from typing import Any

from fastapi import APIRouter, Depends, Query

from lendery.api.dependencies import get_library_service, get_viewer
from lendery.core.library import LibraryService
from lendery.core.viewer import Viewer

router = APIRouter(prefix="/search", tags=["search"])


@router.get("/books")
def search_books(
    q: str = Query(min_length=1, max_length=200),
    limit: int = Query(default=10, ge=1, le=30),
    with_fallback: bool = Query(default=False, alias="withFallback"),
    viewer: Viewer = Depends(get_viewer),
    library: LibraryService = Depends(get_library_service),
) -> dict[str, Any]:
    result = library.search(viewer, q, limit, with_fallback=with_fallback)
    return {"data": [record.to_dict() for record in result.records], "meta": result.meta()}
