from __future__ import annotations

from psycopg import Connection

from ..domain import CommissionEntry
from ._rows import fetch_all


class CommissionRepository:
    def list_for_order(self, conn: Connection, order_id: str) -> list[dict]:
        cur = conn.execute(
            """
            SELECT id, user_id, order_id, commission_type, amount, percentage,
                   base_amount, status, notes, source_ref, created_at
            FROM commissions
            WHERE order_id = %s
            ORDER BY created_at, id;
            """,
            (order_id,),
        )
        return fetch_all(cur)

    def create(self, conn: Connection, *, entry: CommissionEntry) -> str | None:
        """Insert a ledger row; returns None when the unique fingerprint already exists."""
        cur = conn.execute(
            """
            INSERT INTO commissions(user_id, order_id, commission_type, amount, percentage,
                                    base_amount, status, notes, source_ref)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (order_id, user_id, commission_type, source_ref) DO NOTHING
            RETURNING id;
            """,
            (
                entry.user_id,
                entry.order_id,
                entry.commission_type,
                entry.amount,
                entry.percentage,
                entry.base_amount,
                entry.status,
                entry.notes,
                entry.source_ref,
            ),
        )
        row = cur.fetchone()
        return str(row[0]) if row else None
