from __future__ import annotations

from typing import Any, Iterable

from flowbuilder.infrastructure.repositories.base import BaseRepository


_QUOTE_COLUMNS = """
    q.id, q.rfq_id, q.company_id, c.name AS supplier_name, q.duration, q.notes, q.status,
    q.created_by, q.created_at, q.updated_at,
    r.name AS rfq_name, r.status AS rfq_status, r.deadline AS rfq_deadline,
    p.id AS project_id, p.company_id AS buyer_company_id
"""

_BUYER_OWNED = "rfq_id IN (SELECT r.id FROM rfqs r JOIN projects p ON p.id = r.project_id WHERE p.company_id = ?)"

_QUOTE_FROM = """
    FROM quotes q
    JOIN companies c ON c.id = q.company_id
    JOIN rfqs r ON r.id = q.rfq_id
    JOIN projects p ON p.id = r.project_id
"""


class QuoteRepository(BaseRepository):
    """Quotes visible to the acting company: its own (supplier) or those on its RFQs (buyer)."""

    def get_by_id(self, db, quote_id: int) -> dict | None:
        row = db.execute(
            f"""
            SELECT {_QUOTE_COLUMNS}
            {_QUOTE_FROM}
            WHERE q.id = ? AND (q.company_id = ? OR p.company_id = ?)
            """,
            (quote_id, self.company_id, self.company_id),
        ).fetchone()
        return self.row_to_dict(row)

    def find_own_for_rfq(self, db, rfq_id: int) -> dict | None:
        row = db.execute(
            "SELECT id, status FROM quotes WHERE rfq_id = ? AND company_id = ?",
            (rfq_id, self.company_id),
        ).fetchone()
        return self.row_to_dict(row)

    def awarded_quote_id(self, db, rfq_id: int) -> int | None:
        row = db.execute(
            "SELECT id FROM quotes WHERE rfq_id = ? AND status = 'awarded' ORDER BY id LIMIT 1",
            (rfq_id,),
        ).fetchone()
        return int(row["id"]) if row else None

    def list_own(self, db, *, status: str = "") -> list[dict]:
        clauses = ["q.company_id = ?"]
        params: list[Any] = [self.company_id]
        if status:
            clauses.append("q.status = ?")
            params.append(status)
        rows = db.execute(
            f"""
            SELECT {_QUOTE_COLUMNS},
                   (SELECT COALESCE(SUM(qi.price * qi.quantity), 0) FROM quote_items qi WHERE qi.quote_id = q.id) AS total
            {_QUOTE_FROM}
            WHERE {" AND ".join(clauses)}
            ORDER BY q.id DESC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_for_project(self, db, project_id: int, *, status: str = "", rfq_id: int | None = None) -> list[dict]:
        clauses = ["p.id = ?", "p.company_id = ?"]
        params: list[Any] = [project_id, self.company_id]
        if status:
            clauses.append("q.status = ?")
            params.append(status)
        if rfq_id:
            clauses.append("q.rfq_id = ?")
            params.append(rfq_id)
        rows = db.execute(
            f"""
            SELECT {_QUOTE_COLUMNS},
                   (SELECT COALESCE(SUM(qi.price * qi.quantity), 0) FROM quote_items qi WHERE qi.quote_id = q.id) AS total
            {_QUOTE_FROM}
            WHERE {" AND ".join(clauses)}
            ORDER BY q.id DESC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def status_counts_for_project(self, db, project_id: int) -> dict:
        rows = db.execute(
            """
            SELECT q.status, COUNT(*) AS total
            FROM quotes q
            JOIN rfqs r ON r.id = q.rfq_id
            JOIN projects p ON p.id = r.project_id
            WHERE p.id = ? AND p.company_id = ?
            GROUP BY q.status
            """,
            (project_id, self.company_id),
        ).fetchall()
        counts = {"submitted": 0, "awarded": 0, "rejected": 0}
        for row in rows:
            counts[row["status"]] = int(row["total"] or 0)
        counts["all"] = sum(counts.values())
        return counts

    def list_for_rfq_with_items(self, db, rfq_id: int) -> list[dict]:
        """All quotes of one buyer-owned RFQ with their items, fetched in one query."""
        rows = db.execute(
            """
            SELECT q.id AS quote_id, q.company_id, c.name AS supplier_name, q.duration, q.notes,
                   q.status, q.created_at,
                   qi.id AS item_id, qi.material_id, m.name AS material_name, m.unit,
                   qi.price, qi.quantity, qi.discount_rate, qi.total_price
            FROM quotes q
            JOIN companies c ON c.id = q.company_id
            JOIN rfqs r ON r.id = q.rfq_id
            JOIN projects p ON p.id = r.project_id
            LEFT JOIN quote_items qi ON qi.quote_id = q.id
            LEFT JOIN materials m ON m.id = qi.material_id
            WHERE q.rfq_id = ? AND p.company_id = ?
            ORDER BY q.id, qi.id
            """,
            (rfq_id, self.company_id),
        ).fetchall()

        quotes: dict[int, dict] = {}
        for row in rows:
            quote_id = int(row["quote_id"])
            quote = quotes.get(quote_id)
            if quote is None:
                quote = {
                    "id": quote_id,
                    "company_id": row["company_id"],
                    "supplier_name": row["supplier_name"],
                    "duration": row["duration"],
                    "notes": row["notes"],
                    "status": row["status"],
                    "created_at": row["created_at"],
                    "items": [],
                }
                quotes[quote_id] = quote
            if row["item_id"] is not None:
                quote["items"].append(
                    {
                        "id": row["item_id"],
                        "material_id": row["material_id"],
                        "material_name": row["material_name"],
                        "unit": row["unit"],
                        "price": row["price"],
                        "quantity": row["quantity"],
                        "discount_rate": row["discount_rate"],
                        "total_price": row["total_price"],
                    }
                )
        return list(quotes.values())

    def list_items(self, db, quote_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT qi.id, qi.material_id, m.name AS material_name, m.sku, m.unit, qi.price, qi.quantity,
                   qi.discount_rate, qi.original_unit_price, qi.total_price, qi.external_ref, qi.status
            FROM quote_items qi
            JOIN materials m ON m.id = qi.material_id
            WHERE qi.quote_id = ?
            ORDER BY qi.id
            """,
            (quote_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def create(self, db, *, rfq_id: int, duration: int, notes: str | None, created_by: int) -> int:
        return self.insert_returning_id(
            db,
            """
            INSERT INTO quotes (rfq_id, company_id, duration, notes, status, created_by)
            VALUES (?, ?, ?, ?, 'submitted', ?)
            RETURNING id
            """,
            (rfq_id, self.company_id, duration, notes, created_by),
        )

    def update_header(self, db, quote_id: int, *, duration: int, notes: str | None) -> None:
        db.execute(
            """
            UPDATE quotes SET duration = ?, notes = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND company_id = ?
            """,
            (duration, notes, quote_id, self.company_id),
        )

    def replace_items(self, db, quote_id: int, lines: Iterable[Any]) -> None:
        db.execute("DELETE FROM quote_items WHERE quote_id = ?", (quote_id,))
        for line in lines:
            db.execute(
                """
                INSERT INTO quote_items (
                    quote_id, material_id, price, quantity, discount_rate,
                    original_unit_price, total_price, external_ref, status
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'pending')
                """,
                (
                    quote_id,
                    line.material_id,
                    line.price,
                    line.quantity,
                    line.discount_rate,
                    line.original_unit_price,
                    line.total_price,
                    line.external_ref,
                ),
            )

    def delete(self, db, quote_id: int) -> None:
        db.execute("DELETE FROM quotes WHERE id = ? AND company_id = ?", (quote_id, self.company_id))

    def transition_status(self, db, quote_id: int, *, from_status: str, to_status: str) -> bool:
        cursor = db.execute(
            f"""
            UPDATE quotes SET status = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND status = ? AND {_BUYER_OWNED}
            """,
            (to_status, quote_id, from_status, self.company_id),
        )
        return cursor.rowcount == 1

    def settle_items(self, db, quote_id: int, status: str) -> None:
        db.execute(
            f"""
            UPDATE quote_items SET status = ?
            WHERE quote_id = ? AND quote_id IN (SELECT id FROM quotes WHERE {_BUYER_OWNED})
            """,
            (status, quote_id, self.company_id),
        )

    def reject_other_quotes(self, db, rfq_id: int, *, awarded_quote_id: int) -> list[int]:
        rows = db.execute(
            f"SELECT id FROM quotes WHERE rfq_id = ? AND id <> ? AND status = 'submitted' AND {_BUYER_OWNED}",
            (rfq_id, awarded_quote_id, self.company_id),
        ).fetchall()
        rejected = [int(row["id"]) for row in rows]
        for quote_id in rejected:
            self.transition_status(db, quote_id, from_status="submitted", to_status="rejected")
            self.settle_items(db, quote_id, "rejected")
        return rejected
