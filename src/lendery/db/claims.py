# ABOUTME: The conditional-update ("claim") primitive used for all lending transitions.
# ABOUTME: Updates a row only if it still holds the expected prior state; reports win or loss.

import logging
import sqlite3
from typing import Any

logger = logging.getLogger(__name__)

_TABLES = frozenset({"books", "loans", "borrow_requests"})


def _sql_value(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    return value


def conditional_update(
    conn: sqlite3.Connection,
    table: str,
    row_id: int,
    *,
    expected: dict[str, Any],
    changes: dict[str, Any],
) -> bool:
    """Apply `changes` to row `row_id` only if every column matches `expected`.

    This is the store's compare-and-swap: the expected prior state is the
    compare token, so no version column is needed. An expected value of None
    matches SQL NULL.

    Returns:
        True if exactly one row was transformed, False if the row is missing
        or no longer in the expected state (a lost race).
    """
    if table not in _TABLES:
        raise ValueError(f"Unknown table for claim: {table}")
    if not changes:
        raise ValueError("A claim must change at least one column")

    set_clause = ", ".join(f"{column} = ?" for column in changes)
    conditions = ["id = ?"]
    params: list[Any] = [_sql_value(v) for v in changes.values()]
    params.append(row_id)
    for column, value in expected.items():
        if value is None:
            conditions.append(f"{column} IS NULL")
        else:
            conditions.append(f"{column} = ?")
            params.append(_sql_value(value))

    if table == "books":
        set_clause += ", updated_at = strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')"

    cursor = conn.execute(
        f"UPDATE {table} SET {set_clause} WHERE {' AND '.join(conditions)}",
        params,
    )
    won = cursor.rowcount == 1
    if not won:
        logger.debug("Claim lost on %s #%s (expected %s)", table, row_id, expected)
    return won
