from __future__ import annotations

from typing import Any

from flowbuilder.infrastructure.repositories.base import BaseRepository


_PO_COLUMNS = """
    po.id, po.quote_id, po.status, po.notes, po.created_by, po.created_at, po.updated_at, po.cancelled_at,
    q.rfq_id, r.name AS rfq_name, q.duration,
    p.id AS project_id, p.name AS project_name,
    p.company_id AS buyer_company_id, bc.name AS buyer_company_name,
    q.company_id AS supplier_company_id, sc.name AS supplier_name,
    (SELECT COALESCE(SUM(qi.price * qi.quantity), 0) FROM quote_items qi WHERE qi.quote_id = q.id) AS total
"""

_PO_FROM = """
    FROM pos po
    JOIN quotes q ON q.id = po.quote_id
    JOIN rfqs r ON r.id = q.rfq_id
    JOIN projects p ON p.id = r.project_id
    JOIN companies bc ON bc.id = p.company_id
    JOIN companies sc ON sc.id = q.company_id
"""

_VISIBLE = "(p.company_id = ? OR q.company_id = ?)"

_VISIBLE_PO_IDS = f"""
    id IN (
        SELECT po.id
        FROM pos po
        JOIN quotes q ON q.id = po.quote_id
        JOIN rfqs r ON r.id = q.rfq_id
        JOIN projects p ON p.id = r.project_id
        WHERE {_VISIBLE}
    )
"""


class PurchaseOrderRepository(BaseRepository):
    """Purchase orders where the acting company is the buyer or the supplier."""

    def get_by_id(self, db, purchase_order_id: int) -> dict | None:
        row = db.execute(
            f"""
            SELECT {_PO_COLUMNS}
            {_PO_FROM}
            WHERE po.id = ? AND {_VISIBLE}
            """,
            (purchase_order_id, self.company_id, self.company_id),
        ).fetchone()
        return self.row_to_dict(row)

    def find_by_quote(self, db, quote_id: int) -> dict | None:
        row = db.execute(
            f"""
            SELECT po.id, po.status
            {_PO_FROM}
            WHERE po.quote_id = ? AND {_VISIBLE}
            """,
            (quote_id, self.company_id, self.company_id),
        ).fetchone()
        return self.row_to_dict(row)

    def list_visible(self, db, *, status: str = "", project_id: int | None = None, limit: int = 200) -> list[dict]:
        clauses = [_VISIBLE]
        params: list[Any] = [self.company_id, self.company_id]
        if status:
            clauses.append("po.status = ?")
            params.append(status)
        if project_id:
            clauses.append("p.id = ?")
            params.append(project_id)
        rows = db.execute(
            f"""
            SELECT {_PO_COLUMNS}
            {_PO_FROM}
            WHERE {" AND ".join(clauses)}
            ORDER BY po.created_at DESC, po.id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def status_counts(self, db, *, project_id: int | None = None) -> dict:
        clauses = [_VISIBLE]
        params: list[Any] = [self.company_id, self.company_id]
        if project_id:
            clauses.append("p.id = ?")
            params.append(project_id)
        rows = db.execute(
            f"""
            SELECT po.status, COUNT(*) AS total
            {_PO_FROM}
            WHERE {" AND ".join(clauses)}
            GROUP BY po.status
            """,
            tuple(params),
        ).fetchall()
        counts = {key: 0 for key in ("ordered", "confirmed", "shipped", "delivered", "cancelled")}
        for row in rows:
            counts[row["status"]] = int(row["total"] or 0)
        counts["all"] = sum(counts.values())
        return counts

    def create(self, db, *, quote_id: int, notes: str | None, created_by: int) -> int:
        return self.insert_returning_id(
            db,
            """
            INSERT INTO pos (quote_id, status, notes, created_by)
            VALUES (?, 'ordered', ?, ?)
            RETURNING id
            """,
            (quote_id, notes, created_by),
        )

    def update_notes(self, db, purchase_order_id: int, notes: str | None) -> None:
        db.execute(
            f"UPDATE pos SET notes = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ? AND {_VISIBLE_PO_IDS}",
            (notes, purchase_order_id, self.company_id, self.company_id),
        )

    def transition_status(
        self,
        db,
        purchase_order_id: int,
        *,
        from_status: str,
        to_status: str,
        cancelled_at: str | None = None,
    ) -> bool:
        """Compare-and-set on status. False when another request moved it first."""
        cursor = db.execute(
            f"""
            UPDATE pos
            SET status = ?, cancelled_at = COALESCE(?, cancelled_at), updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND status = ? AND {_VISIBLE_PO_IDS}
            """,
            (to_status, cancelled_at, purchase_order_id, from_status, self.company_id, self.company_id),
        )
        return cursor.rowcount == 1
