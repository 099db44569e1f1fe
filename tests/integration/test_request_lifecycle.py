# ABOUTME: Integration tests for the borrow-request workflow through checkin.
# ABOUTME: Walks a record through every lending state and checks the audit trail.

from lendery.core.lending import LendingService
from lendery.core.requests import BorrowRequestService
from lendery.core.viewer import Viewer
from lendery.db.mapping import BookState, RequestStatus

ALICE = Viewer.member("alice")
ADMIN = Viewer.admin("admin")


class TestRequestLifecycle:
    """A record goes AVAILABLE -> REQUEST_PENDING -> ON_LOAN -> AVAILABLE."""

    def test_full_cycle(self, conn, runtime, add_book, catalog) -> None:
        requests = BorrowRequestService(conn, runtime)
        lending = LendingService(conn, runtime)
        book = add_book()

        request = requests.create(ALICE, book.id).request
        assert catalog.require(book.id).state == BookState.REQUEST_PENDING

        approval = requests.approve(ADMIN, request.id)
        assert approval.request.request.status == RequestStatus.APPROVED
        assert catalog.require(book.id).state == BookState.ON_LOAN
        assert [v.loan.id for v in lending.list_loans(ALICE, status="active")] == [
            approval.loan.loan.id
        ]

        lending.checkin(ALICE, book.id)
        assert catalog.require(book.id).state == BookState.AVAILABLE

        actions = [entry["action"] for entry in lending.audit_log(ADMIN)]
        assert actions == [
            "BOOK_CHECKED_IN",
            "BOOK_BORROW_REQUEST_APPROVED",
            "BOOK_BORROW_REQUESTED",
        ]

    def test_decline_then_direct_checkout(self, conn, runtime, add_book, catalog) -> None:
        requests = BorrowRequestService(conn, runtime)
        lending = LendingService(conn, runtime)
        book = add_book()

        request = requests.create(ALICE, book.id).request
        requests.decline(ADMIN, request.id)
        result = lending.checkout(Viewer.member("bob"), book.id)

        assert result.loan.loan.borrower_id == "bob"
        assert catalog.require(book.id).state == BookState.ON_LOAN
        assert requests.list_requests(ALICE).unread_for_member == 1

    def test_caches_are_cleared_by_transitions(self, conn, runtime, add_book) -> None:
        book = add_book()
        runtime.books_cache.set(("books",), "stale")
        runtime.recommendations_cache.set(("recommendations",), "stale")

        BorrowRequestService(conn, runtime).create(ALICE, book.id)

        assert len(runtime.books_cache) == 0
        assert len(runtime.recommendations_cache) == 0
