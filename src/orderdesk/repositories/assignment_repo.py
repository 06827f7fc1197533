from __future__ import annotations

from psycopg import Connection, sql

from ._rows import fetch_all


class _AssignmentRepository:
    table: str
    user_column: str

    def delete_for_item(self, conn: Connection, item_id: str) -> int:
        cur = conn.execute(
            sql.SQL("DELETE FROM {} WHERE item_id = %s;").format(sql.Identifier(self.table)),
            (item_id,),
        )
        return cur.rowcount

    def insert_many(
        self,
        conn: Connection,
        *,
        item_id: str,
        item_shape: str,
        assignees: list[tuple[str, float]],
        assigned_by: str | None,
    ) -> int:
        query = sql.SQL(
            """
            INSERT INTO {table}(item_id, item_shape, {user_col}, commission, assigned_by, assigned_at)
            VALUES (%s, %s, %s, %s, %s, now());
            """
        ).format(table=sql.Identifier(self.table), user_col=sql.Identifier(self.user_column))
        with conn.cursor() as cur:
            cur.executemany(
                query,
                [(item_id, item_shape, user_id, commission, assigned_by) for user_id, commission in assignees],
            )
        return len(assignees)

    def list_for_items(self, conn: Connection, item_ids: list[str]) -> list[dict]:
        if not item_ids:
            return []
        query = sql.SQL(
            """
            SELECT item_id, item_shape, {user_col}, commission, assigned_by, assigned_at
            FROM {table}
            WHERE item_id = ANY(%s::uuid[])
            ORDER BY assigned_at, {user_col};
            """
        ).format(table=sql.Identifier(self.table), user_col=sql.Identifier(self.user_column))
        cur = conn.execute(query, (list(item_ids),))
        return fetch_all(cur)


class TechnicianAssignmentRepository(_AssignmentRepository):
    table = "line_item_technicians"
    user_column = "technician_id"


class SalesAssignmentRepository(_AssignmentRepository):
    table = "line_item_sales"
    user_column = "sale_id"
