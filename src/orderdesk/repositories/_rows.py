from __future__ import annotations

from typing import Any
from uuid import UUID

from psycopg import Connection, Cursor, sql


def is_uuid(value: Any) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def fetch_one(cur: Cursor) -> dict | None:
    row = cur.fetchone()
    if not row:
        return None
    cols = [d.name for d in cur.description]
    return dict(zip(cols, row))


def fetch_all(cur: Cursor) -> list[dict]:
    cols = [d.name for d in cur.description]
    return [dict(zip(cols, row)) for row in cur.fetchall()]


def update_by_id(conn: Connection, table: str, row_id: Any, fields: dict[str, Any]) -> dict | None:
    if not fields:
        raise ValueError("Nothing to update.")
    query = sql.SQL("UPDATE {table} SET {assignments} WHERE id = %s RETURNING *;").format(
        table=sql.Identifier(table),
        assignments=sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(col)) for col in fields
        ),
    )
    cur = conn.execute(query, (*fields.values(), row_id))
    return fetch_one(cur)
