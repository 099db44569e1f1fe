# ABOUTME: The borrow-request workflow: request, approve, decline, list, mark seen.
# ABOUTME: Approval claims the request and the record together and opens the loan atomically.

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from lendery.core.lending import LoanView, inline_estimate
from lendery.core.runtime import Runtime
from lendery.core.viewer import Viewer
from lendery.db.catalog import BookCatalog, DuplicateKeyError
from lendery.db.circulation import CirculationStore
from lendery.db.claims import conditional_update
from lendery.db.connection import transaction
from lendery.db.mapping import (
    BorrowRequest,
    CatalogRecord,
    RequestStatus,
    format_timestamp,
    utcnow,
)
from lendery.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 200


@dataclass
class RequestView:
    """A borrow request with its catalog record."""

    request: BorrowRequest
    book: CatalogRecord | None

    def to_dict(self) -> dict[str, Any]:
        return {**self.request.to_dict(), "book": self.book.to_dict() if self.book else None}


@dataclass
class RequestListing:
    requests: list[RequestView]
    pending_count: int = 0
    unread_for_member: int = 0

    def meta(self) -> dict[str, int]:
        return {"pendingCount": self.pending_count, "unreadForMember": self.unread_for_member}


@dataclass
class ApprovalResult:
    """An approved request and the loan it opened."""

    request: RequestView
    loan: LoanView
    due_date_source: str
    estimated_days: int | None = field(default=None)

    def meta(self) -> dict[str, Any]:
        return {
            "dueDateSource": self.due_date_source,
            "estimatedReadingDays": self.estimated_days,
        }


class BorrowRequestService:
    """Request-mediated checkout for one connection."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        runtime: Runtime,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._conn = conn
        self._runtime = runtime
        self._catalog = BookCatalog(conn)
        self._circulation = CirculationStore(conn)
        self._clock = clock

    def _view(self, request: BorrowRequest) -> RequestView:
        return RequestView(request=request, book=self._catalog.get_by_id(request.book_id))

    def _require_request(self, request_id: int) -> BorrowRequest:
        request = self._circulation.get_request(request_id)
        if request is None:
            raise NotFoundError("Borrow request not found", {"requestId": request_id})
        return request

    def create(self, viewer: Viewer, book_id: int) -> RequestView:
        """Move an AVAILABLE record to REQUEST_PENDING on the caller's behalf.

        Raises:
            NotFoundError: The record does not exist.
            ConflictError: The record is on loan or already requested.
        """
        borrower_id = viewer.require_user()
        self._catalog.require(book_id)

        now = self._clock()
        with transaction(self._conn):
            claimed = conditional_update(
                self._conn,
                "books",
                book_id,
                expected={"available": True, "request_pending": False},
                changes={"request_pending": True},
            )
            if not claimed:
                logger.info("Borrow request for book #%d lost the claim", book_id)
                raise ConflictError(
                    "Book is not available for request", {"bookId": book_id}
                )
            try:
                request = self._circulation.create_request(
                    borrower_id, book_id, acknowledged_at=now
                )
            except DuplicateKeyError as exc:
                raise ConflictError(
                    "Book already has a pending request", {"bookId": book_id}
                ) from exc
            self._circulation.record_audit(
                "BOOK_BORROW_REQUESTED",
                "BORROW_REQUEST",
                actor_id=borrower_id,
                entity_id=request.id,
                metadata={"bookId": book_id},
            )

        self._runtime.invalidate_caches()
        return self._view(request)

    def approve(self, viewer: Viewer, request_id: int) -> ApprovalResult:
        """Approve a PENDING request: the record goes ON_LOAN and a loan opens.

        The status check is repeated inside the transaction, so a concurrent
        second approval loses with ConflictError.
        """
        reviewer_id = viewer.require_admin()
        request = self._require_request(request_id)
        if request.status != RequestStatus.PENDING:
            raise ConflictError(
                "Borrow request is no longer pending",
                {"requestId": request_id, "status": request.status.value},
            )

        record = self._catalog.require(request.book_id)
        estimate = inline_estimate(self._runtime, record)

        now = self._clock()
        with transaction(self._conn):
            decided = conditional_update(
                self._conn,
                "borrow_requests",
                request_id,
                expected={"status": RequestStatus.PENDING.value},
                changes={
                    "status": RequestStatus.APPROVED.value,
                    "reviewed_by_id": reviewer_id,
                    "reviewed_at": format_timestamp(now),
                    "borrower_acknowledged_at": None,
                },
            )
            if not decided:
                logger.info("Approval of request #%d lost the claim", request_id)
                raise ConflictError(
                    "Borrow request is no longer pending", {"requestId": request_id}
                )

            claimed = conditional_update(
                self._conn,
                "books",
                request.book_id,
                expected={"available": True, "request_pending": True},
                changes={"available": False, "request_pending": False},
            )
            if not claimed:
                raise ConflictError(
                    "Book is no longer awaiting this request", {"bookId": request.book_id}
                )
            try:
                loan = self._circulation.create_loan(
                    request.book_id,
                    request.borrower_id,
                    checked_out_at=now,
                    due_at=estimate.due_at,
                )
            except DuplicateKeyError as exc:
                raise ConflictError(
                    "Book already has an active loan", {"bookId": request.book_id}
                ) from exc

            self._circulation.record_audit(
                "BOOK_BORROW_REQUEST_APPROVED",
                "BORROW_REQUEST",
                actor_id=reviewer_id,
                entity_id=request_id,
                metadata={
                    "bookId": request.book_id,
                    "loanId": loan.id,
                    "borrowerId": request.borrower_id,
                    "dueAt": format_timestamp(estimate.due_at),
                    "dueDateSource": estimate.source,
                    "estimatedReadingDays": estimate.days,
                },
            )

        self._runtime.invalidate_caches()
        logger.info("Request #%d approved; loan #%d opened", request_id, loan.id)
        book = self._catalog.get_by_id(request.book_id)
        return ApprovalResult(
            request=self._view(self._require_request(request_id)),
            loan=LoanView(loan=loan, book=book),
            due_date_source=estimate.source,
            estimated_days=estimate.days,
        )

    def decline(self, viewer: Viewer, request_id: int) -> RequestView:
        """Decline a PENDING request: the record returns to AVAILABLE."""
        reviewer_id = viewer.require_admin()
        request = self._require_request(request_id)
        if request.status != RequestStatus.PENDING:
            raise ConflictError(
                "Borrow request is no longer pending",
                {"requestId": request_id, "status": request.status.value},
            )

        now = self._clock()
        with transaction(self._conn):
            decided = conditional_update(
                self._conn,
                "borrow_requests",
                request_id,
                expected={"status": RequestStatus.PENDING.value},
                changes={
                    "status": RequestStatus.DECLINED.value,
                    "reviewed_by_id": reviewer_id,
                    "reviewed_at": format_timestamp(now),
                    "borrower_acknowledged_at": None,
                },
            )
            released = decided and conditional_update(
                self._conn,
                "books",
                request.book_id,
                expected={"request_pending": True},
                changes={"request_pending": False},
            )
            if not released:
                logger.info("Decline of request #%d lost the claim", request_id)
                raise ConflictError(
                    "Borrow request is no longer pending", {"requestId": request_id}
                )
            self._circulation.record_audit(
                "BOOK_BORROW_REQUEST_DECLINED",
                "BORROW_REQUEST",
                actor_id=reviewer_id,
                entity_id=request_id,
                metadata={"bookId": request.book_id, "borrowerId": request.borrower_id},
            )

        self._runtime.invalidate_caches()
        return self._view(self._require_request(request_id))

    def list_requests(
        self, viewer: Viewer, *, status: str | None = None, limit: int = 50
    ) -> RequestListing:
        """Members see their own requests; admins default to PENDING."""
        caller = viewer.require_user()
        if not 1 <= limit <= MAX_LIST_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIST_LIMIT}", {"limit": limit})
        try:
            wanted = RequestStatus(status) if status is not None else None
        except ValueError as exc:
            raise ValidationError("Unknown request status", {"status": status}) from exc

        if viewer.is_admin:
            requests = self._circulation.list_requests(
                status=wanted or RequestStatus.PENDING, limit=limit
            )
            return RequestListing(
                requests=[self._view(r) for r in requests],
                pending_count=self._circulation.count_pending(),
            )

        requests = self._circulation.list_requests(borrower_id=caller, status=wanted, limit=limit)
        return RequestListing(
            requests=[self._view(r) for r in requests],
            unread_for_member=self._circulation.count_unacknowledged(caller),
        )

    def mark_seen(self, viewer: Viewer) -> int:
        """Acknowledge every terminal decision the caller has not seen. Returns the count."""
        caller = viewer.require_user()
        return self._circulation.acknowledge_decisions(caller, self._clock())
