# ABOUTME: Public API for the lendery storage layer.
# ABOUTME: Exports connection management, the claim primitive, stores, and record types.

from lendery.db.catalog import BookCatalog, BookPage, BookQuery, DuplicateKeyError
from lendery.db.circulation import CirculationStore
from lendery.db.claims import conditional_update
from lendery.db.connection import open_library, transaction
from lendery.db.mapping import BorrowRequest, CatalogRecord, Loan, RequestStatus

__all__ = [
    "BookCatalog",
    "BookPage",
    "BookQuery",
    "BorrowRequest",
    "CatalogRecord",
    "CirculationStore",
    "DuplicateKeyError",
    "Loan",
    "RequestStatus",
    "conditional_update",
    "open_library",
    "transaction",
]
