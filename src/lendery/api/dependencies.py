# ABOUTME: FastAPI dependencies: runtime, per-request SQLite connection, caller identity, services.
# ABOUTME: Identity comes from forwarded X-User-Id / X-User-Role headers.

import sqlite3
from collections.abc import Iterator

from fastapi import Depends, Header, Request

from lendery.core.lending import LendingService
from lendery.core.library import LibraryService
from lendery.core.requests import BorrowRequestService
from lendery.core.runtime import Runtime
from lendery.core.viewer import Role, Viewer


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_connection(runtime: Runtime = Depends(get_runtime)) -> Iterator[sqlite3.Connection]:
    """Open a connection for the duration of one request."""
    conn = runtime.connect()
    try:
        yield conn
    finally:
        conn.close()


def get_viewer(
    user_id: str | None = Header(default=None, alias="X-User-Id"),
    user_role: str | None = Header(default=None, alias="X-User-Role"),
) -> Viewer:
    """Resolve the caller from forwarded identity headers. No id means anonymous."""
    user_id = (user_id or "").strip() or None
    if user_id is None:
        return Viewer.anonymous()
    role = Role.ADMIN if (user_role or "").strip().upper() == Role.ADMIN else Role.MEMBER
    return Viewer(user_id=user_id, role=role)


def get_library_service(
    conn: sqlite3.Connection = Depends(get_connection),
    runtime: Runtime = Depends(get_runtime),
) -> LibraryService:
    return LibraryService(conn, runtime)


def get_lending_service(
    conn: sqlite3.Connection = Depends(get_connection),
    runtime: Runtime = Depends(get_runtime),
) -> LendingService:
    return LendingService(conn, runtime)


def get_request_service(
    conn: sqlite3.Connection = Depends(get_connection),
    runtime: Runtime = Depends(get_runtime),
) -> BorrowRequestService:
    return BorrowRequestService(conn, runtime)
