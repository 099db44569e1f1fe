# ABOUTME: Direct checkout, checkin, due-date override, and loan queries.
# ABOUTME: Every transition is a claim plus its dependent writes inside one transaction.

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from lendery.core.concurrency import first_of
from lendery.core.due_dates import DueDateEstimate
from lendery.core.runtime import Runtime
from lendery.core.viewer import Viewer
from lendery.db.catalog import BookCatalog, DuplicateKeyError
from lendery.db.circulation import CirculationStore
from lendery.db.claims import conditional_update
from lendery.db.connection import transaction
from lendery.db.mapping import BookState, CatalogRecord, Loan, format_timestamp, utcnow
from lendery.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MANUAL_SOURCE = "manual"
LOAN_STATUSES = ("active", "returned")
MIN_DUE_SOON_DAYS = 1
MAX_DUE_SOON_DAYS = 30


@dataclass
class LoanView:
    """A loan with its catalog record, as returned to callers."""

    loan: Loan
    book: CatalogRecord | None
    overdue: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.loan.to_dict(),
            "overdue": self.overdue,
            "book": self.book.to_dict() if self.book else None,
        }


@dataclass
class CheckoutResult:
    """A new loan plus where its due date came from."""

    loan: LoanView
    due_date_source: str
    estimated_days: int | None

    def meta(self) -> dict[str, Any]:
        return {
            "dueDateSource": self.due_date_source,
            "estimatedReadingDays": self.estimated_days,
        }


def inline_estimate(runtime: Runtime, record: CatalogRecord) -> DueDateEstimate:
    """Race the estimator against the inline wait; a slow estimate becomes the fallback."""
    estimator = runtime.estimator
    race = first_of(
        lambda: estimator.estimate(record.title, record.author, record.isbn),
        runtime.settings.lending.due_estimate_wait_seconds,
        estimator.fallback,
        executor=runtime.executor,
    )
    return race.value


class LendingService:
    """Direct-checkout lending flow and loan reporting for one connection."""

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

    def _view(self, loan: Loan, now: datetime | None = None) -> LoanView:
        now = now or self._clock()
        return LoanView(
            loan=loan,
            book=self._catalog.get_by_id(loan.book_id),
            overdue=loan.is_overdue(now),
        )

    def checkout(
        self, viewer: Viewer, book_id: int, due_at: datetime | None = None
    ) -> CheckoutResult:
        """Claim an AVAILABLE record and open a loan for the caller.

        Raises:
            ForbiddenError: Anonymous caller, or a member supplying due_at.
            NotFoundError: The record does not exist.
            ConflictError: The record is not AVAILABLE (including a lost race).
        """
        borrower_id = viewer.require_user()
        if due_at is not None and not viewer.is_admin:
            raise ForbiddenError("Only administrators can set a due date at checkout")

        record = self._catalog.require(book_id)
        if record.state != BookState.AVAILABLE:
            raise ConflictError(
                "Book is currently unavailable", {"bookId": book_id, "state": record.state.value}
            )

        estimate: DueDateEstimate | None = None
        if due_at is None:
            estimate = inline_estimate(self._runtime, record)
            due_at = estimate.due_at

        now = self._clock()
        with transaction(self._conn):
            claimed = conditional_update(
                self._conn,
                "books",
                book_id,
                expected={"available": True, "request_pending": False},
                changes={"available": False},
            )
            if not claimed:
                logger.info("Checkout of book #%d lost the claim", book_id)
                raise ConflictError("Book is currently unavailable", {"bookId": book_id})
            try:
                loan = self._circulation.create_loan(
                    book_id, borrower_id, checked_out_at=now, due_at=due_at
                )
            except DuplicateKeyError as exc:
                raise ConflictError("Book already has an active loan", {"bookId": book_id}) from exc

            source = estimate.source if estimate else MANUAL_SOURCE
            self._circulation.record_audit(
                "BOOK_CHECKED_OUT",
                "LOAN",
                actor_id=borrower_id,
                entity_id=loan.id,
                metadata={
                    "bookId": book_id,
                    "dueAt": format_timestamp(due_at),
                    "dueDateSource": source,
                    "estimatedReadingDays": estimate.days if estimate else None,
                },
            )

        self._runtime.invalidate_caches()
        logger.info("Book #%d checked out to %s (loan #%d)", book_id, borrower_id, loan.id)
        return CheckoutResult(
            loan=self._view(loan, now),
            due_date_source=source,
            estimated_days=estimate.days if estimate else None,
        )

    def checkin(self, viewer: Viewer, book_id: int) -> LoanView:
        """Close the record's active loan and make it AVAILABLE again.

        Raises:
            NotFoundError: No active loan exists for the record.
            ForbiddenError: The caller is neither the borrower nor an admin.
            ConflictError: The loan was closed concurrently.
        """
        actor_id = viewer.require_user()
        loan = self._circulation.active_loan_for_book(book_id)
        if loan is None:
            raise NotFoundError("No active loan found for this book", {"bookId": book_id})
        if not viewer.is_admin and loan.borrower_id != actor_id:
            raise ForbiddenError("You can only check in your own loans")

        now = self._clock()
        with transaction(self._conn):
            closed = conditional_update(
                self._conn,
                "loans",
                loan.id,
                expected={"returned_at": None},
                changes={"returned_at": format_timestamp(now)},
            )
            released = closed and conditional_update(
                self._conn,
                "books",
                book_id,
                expected={"available": False},
                changes={"available": True},
            )
            if not released:
                logger.info("Checkin of book #%d lost the claim", book_id)
                raise ConflictError("Loan was already returned", {"loanId": loan.id})
            self._circulation.record_audit(
                "BOOK_CHECKED_IN",
                "LOAN",
                actor_id=actor_id,
                entity_id=loan.id,
                metadata={"bookId": book_id},
            )

        self._runtime.invalidate_caches()
        returned = self._circulation.get_loan(loan.id)
        assert returned is not None
        return self._view(returned, now)

    def set_due_date(self, viewer: Viewer, loan_id: int, due_at: datetime) -> LoanView:
        """Override the due date of an active loan (admin only).

        Raises:
            NotFoundError: The loan does not exist.
            ConflictError: The loan has already been returned.
        """
        actor_id = viewer.require_admin()
        loan = self._circulation.get_loan(loan_id)
        if loan is None:
            raise NotFoundError("Loan not found", {"loanId": loan_id})

        with transaction(self._conn):
            updated = conditional_update(
                self._conn,
                "loans",
                loan_id,
                expected={"returned_at": None},
                changes={"due_at": format_timestamp(due_at)},
            )
            if not updated:
                raise ConflictError(
                    "Cannot update due date for a returned loan", {"loanId": loan_id}
                )
            self._circulation.record_audit(
                "LOAN_DUE_DATE_UPDATED",
                "LOAN",
                actor_id=actor_id,
                entity_id=loan_id,
                metadata={
                    "previousDueAt": format_timestamp(loan.due_at),
                    "newDueAt": format_timestamp(due_at),
                    "borrowerId": loan.borrower_id,
                    "bookId": loan.book_id,
                },
            )

        refreshed = self._circulation.get_loan(loan_id)
        assert refreshed is not None
        return self._view(refreshed)

    def list_loans(
        self,
        viewer: Viewer,
        *,
        status: str | None = None,
        user_id: str | None = None,
    ) -> list[LoanView]:
        """Loans newest first. Members see only their own; admins may filter by user."""
        caller = viewer.require_user()
        if status is not None and status not in LOAN_STATUSES:
            raise ValidationError("status must be 'active' or 'returned'", {"status": status})
        borrower_id = user_id if viewer.is_admin else caller
        now = self._clock()
        return [
            self._view(loan, now)
            for loan in self._circulation.list_loans(borrower_id=borrower_id, status=status)
        ]

    def due_soon(self, viewer: Viewer, days: int = 3) -> list[LoanView]:
        """Active loans due within the next `days` days."""
        caller = viewer.require_user()
        if not MIN_DUE_SOON_DAYS <= days <= MAX_DUE_SOON_DAYS:
            raise ValidationError(
                f"days must be between {MIN_DUE_SOON_DAYS} and {MAX_DUE_SOON_DAYS}",
                {"days": days},
            )
        now = self._clock()
        loans = self._circulation.list_due_between(
            now,
            now + timedelta(days=days),
            borrower_id=None if viewer.is_admin else caller,
        )
        return [self._view(loan, now) for loan in loans]

    def overview(self, viewer: Viewer) -> dict[str, Any]:
        """Active loans grouped by borrower, with overdue counts (admin only)."""
        viewer.require_admin()
        now = self._clock()
        views = [self._view(loan, now) for loan in self._circulation.list_active_loans()]

        borrowers: dict[str, dict[str, Any]] = {}
        for view in views:
            entry = borrowers.setdefault(
                view.loan.borrower_id,
                {"borrowerId": view.loan.borrower_id, "activeLoans": [], "overdueCount": 0},
            )
            entry["activeLoans"].append(view.to_dict())
            if view.overdue:
                entry["overdueCount"] += 1

        return {
            "borrowers": list(borrowers.values()),
            "overdueLoans": [view.to_dict() for view in views if view.overdue],
            "overdueUsers": sum(1 for entry in borrowers.values() if entry["overdueCount"] > 0),
        }

    def audit_log(
        self, viewer: Viewer, *, entity: str | None = None, limit: int = 100
    ) -> list[dict[str, Any]]:
        viewer.require_admin()
        return self._circulation.list_audit(entity=entity, limit=limit)
