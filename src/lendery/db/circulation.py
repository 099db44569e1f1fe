# ABOUTME: Persistence for loans, borrow requests, and the audit log.
# ABOUTME: Plain inserts and queries; state transitions go through claims in the service layer.

import json
import sqlite3
from datetime import datetime
from typing import Any

from lendery.db.catalog import DuplicateKeyError, is_unique_violation
from lendery.db.mapping import (
    BorrowRequest,
    Loan,
    RequestStatus,
    format_timestamp,
    row_to_loan,
    row_to_request,
)


class CirculationStore:
    """Typed access to the loans, borrow_requests, and audit_log tables."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # --- Loans ---

    def create_loan(
        self,
        book_id: int,
        borrower_id: str,
        *,
        checked_out_at: datetime,
        due_at: datetime | None,
    ) -> Loan:
        """Insert an active loan.

        Raises:
            DuplicateKeyError: If the book already has an active loan.
        """
        try:
            cursor = self._conn.execute(
                "INSERT INTO loans (book_id, borrower_id, checked_out_at, due_at) "
                "VALUES (?, ?, ?, ?)",
                (book_id, borrower_id, format_timestamp(checked_out_at), format_timestamp(due_at)),
            )
        except sqlite3.IntegrityError as exc:
            if is_unique_violation(exc):
                raise DuplicateKeyError(f"Book {book_id} already has an active loan") from exc
            raise
        loan = self.get_loan(cursor.lastrowid)  # type: ignore[arg-type]
        assert loan is not None
        return loan

    def get_loan(self, loan_id: int) -> Loan | None:
        row = self._conn.execute("SELECT * FROM loans WHERE id = ?", (loan_id,)).fetchone()
        return row_to_loan(row) if row else None

    def active_loan_for_book(self, book_id: int) -> Loan | None:
        row = self._conn.execute(
            "SELECT * FROM loans WHERE book_id = ? AND returned_at IS NULL", (book_id,)
        ).fetchone()
        return row_to_loan(row) if row else None

    def list_loans(
        self,
        *,
        borrower_id: str | None = None,
        status: str | None = None,
    ) -> list[Loan]:
        """List loans, newest checkout first.

        Args:
            borrower_id: Restrict to one borrower.
            status: "active", "returned", or None for both.
        """
        conditions: list[str] = []
        params: list[Any] = []
        if borrower_id is not None:
            conditions.append("borrower_id = ?")
            params.append(borrower_id)
        if status == "active":
            conditions.append("returned_at IS NULL")
        elif status == "returned":
            conditions.append("returned_at IS NOT NULL")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        cursor = self._conn.execute(
            f"SELECT * FROM loans {where} ORDER BY checked_out_at DESC, id DESC", params
        )
        return [row_to_loan(row) for row in cursor.fetchall()]

    def list_active_loans(self) -> list[Loan]:
        """Active loans ordered by due date (undated last), then checkout time."""
        cursor = self._conn.execute(
            "SELECT * FROM loans WHERE returned_at IS NULL "
            "ORDER BY due_at IS NULL, due_at ASC, checked_out_at ASC"
        )
        return [row_to_loan(row) for row in cursor.fetchall()]

    def list_due_between(
        self, start: datetime, end: datetime, *, borrower_id: str | None = None
    ) -> list[Loan]:
        """Active loans whose due date falls in [start, end]."""
        params: list[Any] = [format_timestamp(start), format_timestamp(end)]
        borrower_clause = ""
        if borrower_id is not None:
            borrower_clause = "AND borrower_id = ?"
            params.append(borrower_id)
        cursor = self._conn.execute(
            "SELECT * FROM loans WHERE returned_at IS NULL AND due_at IS NOT NULL "
            f"AND due_at >= ? AND due_at <= ? {borrower_clause} "
            "ORDER BY due_at ASC, checked_out_at ASC",
            params,
        )
        return [row_to_loan(row) for row in cursor.fetchall()]

    def borrowing_history(self, borrower_id: str, limit: int) -> list[Loan]:
        """The borrower's most recent loans, newest first."""
        cursor = self._conn.execute(
            "SELECT * FROM loans WHERE borrower_id = ? "
            "ORDER BY checked_out_at DESC, id DESC LIMIT ?",
            (borrower_id, limit),
        )
        return [row_to_loan(row) for row in cursor.fetchall()]

    def borrowed_book_ids(self, borrower_id: str) -> set[int]:
        cursor = self._conn.execute(
            "SELECT DISTINCT book_id FROM loans WHERE borrower_id = ?", (borrower_id,)
        )
        return {row[0] for row in cursor.fetchall()}

    # --- Borrow requests ---

    def create_request(
        self, borrower_id: str, book_id: int, *, acknowledged_at: datetime
    ) -> BorrowRequest:
        """Insert a PENDING request.

        Raises:
            DuplicateKeyError: If the book already has a pending request.
        """
        try:
            cursor = self._conn.execute(
                "INSERT INTO borrow_requests "
                "(borrower_id, book_id, status, borrower_acknowledged_at) "
                "VALUES (?, ?, ?, ?)",
                (
                    borrower_id,
                    book_id,
                    RequestStatus.PENDING.value,
                    format_timestamp(acknowledged_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            if is_unique_violation(exc):
                raise DuplicateKeyError(f"Book {book_id} already has a pending request") from exc
            raise
        request = self.get_request(cursor.lastrowid)  # type: ignore[arg-type]
        assert request is not None
        return request

    def get_request(self, request_id: int) -> BorrowRequest | None:
        row = self._conn.execute(
            "SELECT * FROM borrow_requests WHERE id = ?", (request_id,)
        ).fetchone()
        return row_to_request(row) if row else None

    def list_requests(
        self,
        *,
        borrower_id: str | None = None,
        status: RequestStatus | None = None,
        limit: int = 50,
    ) -> list[BorrowRequest]:
        conditions: list[str] = []
        params: list[Any] = []
        if borrower_id is not None:
            conditions.append("borrower_id = ?")
            params.append(borrower_id)
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        cursor = self._conn.execute(
            f"SELECT * FROM borrow_requests {where} ORDER BY created_at DESC, id DESC LIMIT ?",
            [*params, limit],
        )
        return [row_to_request(row) for row in cursor.fetchall()]

    def count_pending(self) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM borrow_requests WHERE status = 'PENDING'"
        ).fetchone()[0]

    def count_unacknowledged(self, borrower_id: str) -> int:
        """Terminal decisions the borrower has not yet seen."""
        return self._conn.execute(
            "SELECT COUNT(*) FROM borrow_requests WHERE borrower_id = ? "
            "AND status IN ('APPROVED', 'DECLINED') AND borrower_acknowledged_at IS NULL",
            (borrower_id,),
        ).fetchone()[0]

    def acknowledge_decisions(self, borrower_id: str, at: datetime) -> int:
        """Mark every unseen terminal decision as seen. Returns rows updated."""
        cursor = self._conn.execute(
            "UPDATE borrow_requests SET borrower_acknowledged_at = ? "
            "WHERE borrower_id = ? AND status IN ('APPROVED', 'DECLINED') "
            "AND borrower_acknowledged_at IS NULL",
            (format_timestamp(at), borrower_id),
        )
        return cursor.rowcount

    # --- Audit log ---

    def record_audit(
        self,
        action: str,
        entity: str,
        *,
        actor_id: str | None = None,
        entity_id: int | str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._conn.execute(
            "INSERT INTO audit_log (actor_id, action, entity, entity_id, metadata) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                actor_id,
                action,
                entity,
                str(entity_id) if entity_id is not None else None,
                json.dumps(metadata, default=str) if metadata is not None else None,
            ),
        )

    def list_audit(self, *, entity: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
        """Recent audit entries, newest first."""
        params: list[Any] = []
        where = ""
        if entity is not None:
            where = "WHERE entity = ?"
            params.append(entity)
        cursor = self._conn.execute(
            f"SELECT * FROM audit_log {where} ORDER BY id DESC LIMIT ?", [*params, limit]
        )
        return [
            {
                "id": row["id"],
                "actorId": row["actor_id"],
                "action": row["action"],
                "entity": row["entity"],
                "entityId": row["entity_id"],
                "metadata": json.loads(row["metadata"]) if row["metadata"] else None,
                "createdAt": row["created_at"],
            }
            for row in cursor.fetchall()
        ]
