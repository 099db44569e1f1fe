# ABOUTME: Catalog routes: listing, stats, details, CRUD, external import, and enrichment.
# ABOUTME: Bodies follow the {"data": ..., "meta": ...} envelope.

from typing import Any

from fastapi import APIRouter, Depends, Query, Response, status

from lendery.api.dependencies import get_library_service, get_viewer
from lendery.api.schemas import (
    BookCreatePayload,
    BookUpdatePayload,
    EnrichMetadataPayload,
    ImportExternalPayload,
)
from lendery.core.library import LibraryService
from lendery.core.viewer import Viewer
from lendery.db.catalog import BookQuery

router = APIRouter(prefix="/books", tags=["books"])


@router.get("")
def list_books(
    q: str | None = None,
    author: str | None = None,
    genre: str | None = None,
    available: bool | None = None,
    cursor: int | None = None,
    limit: int = Query(default=12, ge=1, le=50),
    viewer: Viewer = Depends(get_viewer),
    library: LibraryService = Depends(get_library_service),
) -> dict[str, Any]:
    query = BookQuery(
        q=q, author=author, genre=genre, available=available, cursor=cursor, limit=limit
    )
    page = library.list_books(viewer, query)
    return {
        "data": [record.to_dict() for record in page.records],
        "pageInfo": {"hasNextPage": page.has_next_page, "nextCursor": page.next_cursor},
    }


@router.get("/stats")
def book_stats(library: LibraryService = Depends(get_library_service)) -> dict[str, Any]:
    stats = library.stats()
    return {
        "data": {
            "totalBooks": stats.total_books,
            "availableBooks": stats.available_books,
            "checkedOutBooks": stats.checked_out_books,
            "activeLoans": stats.active_loans,
        }
    }


@router.get("/{book_id}")
def get_book(
    book_id: int, library: LibraryService = Depends(get_library_service)
) -> dict[str, Any]:
    return {"data": library.get_book(book_id).to_dict()}


@router.get("/{book_id}/details")
def book_details(
    book_id: int,
    related_limit: int = Query(default=8, ge=1, le=12, alias="relatedLimit"),
    library: LibraryService = Depends(get_library_service),
) -> dict[str, Any]:
    record, related = library.related_books(book_id, related_limit)
    return {
        "data": {
            "book": record.to_dict(),
            "relatedBooks": [item.to_dict() for item in related],
        }
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_book(
    payload: BookCreatePayload,
    viewer: Viewer = Depends(get_viewer),
    library: LibraryService = Depends(get_library_service),
) -> dict[str, Any]:
    record = library.create_book(viewer, payload.catalog_fields())
    return {"data": record.to_dict()}


@router.patch("/{book_id}")
def update_book(
    book_id: int,
    payload: BookUpdatePayload,
    viewer: Viewer = Depends(get_viewer),
    library: LibraryService = Depends(get_library_service),
) -> dict[str, Any]:
    record = library.update_book(viewer, book_id, payload.catalog_fields())
    return {"data": record.to_dict()}


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_book(
    book_id: int,
    viewer: Viewer = Depends(get_viewer),
    library: LibraryService = Depends(get_library_service),
) -> Response:
    library.delete_book(viewer, book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/import/external", status_code=status.HTTP_201_CREATED)
def import_external(
    payload: ImportExternalPayload,
    viewer: Viewer = Depends(get_viewer),
    library: LibraryService = Depends(get_library_service),
) -> dict[str, Any]:
    result = library.import_external(viewer, payload.query, payload.limit, payload.provider)
    return {"data": [record.to_dict() for record in result.records], "meta": result.meta()}


@router.post("/enrich-metadata")
def enrich_metadata(
    payload: EnrichMetadataPayload,
    viewer: Viewer = Depends(get_viewer),
    library: LibraryService = Depends(get_library_service),
) -> dict[str, Any]:
    result = library.enrich_metadata(
        viewer, payload.limit, payload.provider, only_missing=payload.only_missing
    )
    return {"data": result.to_dict()}
