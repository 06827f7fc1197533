from __future__ import annotations

from psycopg import Connection

from ._rows import fetch_all, fetch_one, is_uuid


class UserRepository:
    def get(self, conn: Connection, user_id: str) -> dict | None:
        if not is_uuid(user_id):
            return None
        cur = conn.execute(
            "SELECT id, name, role, is_active, commission FROM users WHERE id = %s;",
            (user_id,),
        )
        return fetch_one(cur)

    def list_active_by_roles(self, conn: Connection, roles: tuple[str, ...]) -> list[dict]:
        cur = conn.execute(
            """
            SELECT id, name, role, is_active, commission
            FROM users
            WHERE is_active AND role = ANY(%s)
            ORDER BY name;
            """,
            (list(roles),),
        )
        return fetch_all(cur)
