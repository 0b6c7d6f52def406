from __future__ import annotations

from typing import Any, Dict

from flowbuilder.infrastructure.repositories.base import BaseRepository


_SUPPLIER_COLUMNS = """
    c.id, c.name, c.address, c.phone, c.email, c.trade_specialty, c.description, c.created_at,
    p.status AS partnership_status, p.notes AS partnership_notes
"""


class SupplierRepository(BaseRepository):
    """Supplier companies as seen by the acting (buying) company.

    Supplier rows are shared across tenants; what belongs to the acting company
    is the partnership row and the RFQ/quote history on its own projects.
    """

    EDITABLE_FIELDS = ("name", "address", "phone", "email", "trade_specialty", "description")

    def search(
        self,
        db,
        *,
        search: str = "",
        trade_specialty: str = "",
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[dict], int]:
        clauses = ["c.type = 'supplier'", "c.id <> ?"]
        params: list[Any] = [self.company_id]
        if search:
            clauses.append("(LOWER(c.name) LIKE ? OR LOWER(COALESCE(c.email, '')) LIKE ?)")
            pattern = f"%{search.lower()}%"
            params.extend([pattern, pattern])
        if trade_specialty:
            clauses.append("c.trade_specialty = ?")
            params.append(trade_specialty)
        where = " AND ".join(clauses)

        total_row = db.execute(
            f"SELECT COUNT(*) AS total FROM companies c WHERE {where}",
            tuple(params),
        ).fetchone()
        rows = db.execute(
            f"""
            SELECT {_SUPPLIER_COLUMNS}
            FROM companies c
            LEFT JOIN company_partnerships p
              ON p.target_company_id = c.id AND p.source_company_id = ?
            WHERE {where}
            ORDER BY c.name, c.id
            LIMIT ? OFFSET ?
            """,
            (self.company_id, *params, int(limit), int(offset)),
        ).fetchall()
        return self.rows_to_dicts(rows), int(total_row["total"] or 0)

    def trade_specialties(self, db) -> list[str]:
        rows = db.execute(
            """
            SELECT DISTINCT trade_specialty
            FROM companies
            WHERE type = 'supplier' AND trade_specialty IS NOT NULL AND trade_specialty <> ''
            ORDER BY trade_specialty
            """
        ).fetchall()
        return [row["trade_specialty"] for row in rows]

    def get_by_id(self, db, supplier_id: int) -> dict | None:
        row = db.execute(
            f"""
            SELECT {_SUPPLIER_COLUMNS}
            FROM companies c
            LEFT JOIN company_partnerships p
              ON p.target_company_id = c.id AND p.source_company_id = ?
            WHERE c.id = ? AND c.type = 'supplier'
            """,
            (self.company_id, supplier_id),
        ).fetchone()
        return self.row_to_dict(row)

    def existing_ids(self, db, supplier_ids: list[int]) -> set[int]:
        if not supplier_ids:
            return set()
        rows = db.execute(
            f"""
            SELECT id FROM companies
            WHERE type = 'supplier' AND id <> ? AND id IN ({self.placeholders(supplier_ids)})
            """,
            (self.company_id, *supplier_ids),
        ).fetchall()
        return {int(row["id"]) for row in rows}

    def update(self, db, supplier_id: int, changes: Dict[str, Any]) -> None:
        fields = [key for key in self.EDITABLE_FIELDS if key in changes]
        if not fields:
            return
        assignments = ", ".join(f"{key} = ?" for key in fields)
        db.execute(
            f"""
            UPDATE companies SET {assignments}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND type = 'supplier'
            """,
            (*[changes[key] for key in fields], supplier_id),
        )

    def delete(self, db, supplier_id: int) -> None:
        db.execute("DELETE FROM companies WHERE id = ? AND type = 'supplier'", (supplier_id,))

    def is_managed(self, db, supplier_id: int) -> bool:
        row = db.execute(
            "SELECT 1 FROM companies WHERE id = ? AND type = 'supplier' AND created_by_company_id = ?",
            (supplier_id, self.company_id),
        ).fetchone()
        return row is not None

    def foreign_reference_count(self, db, supplier_id: int) -> int:
        """Partnerships, invitations and quotes that tie the supplier to other companies."""
        row = db.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM company_partnerships
                 WHERE target_company_id = ? AND source_company_id <> ?)
              + (SELECT COUNT(*) FROM rfq_suppliers rs
                 JOIN rfqs r ON r.id = rs.rfq_id
                 JOIN projects p ON p.id = r.project_id
                 WHERE rs.company_id = ? AND p.company_id <> ?)
              + (SELECT COUNT(*) FROM quotes q
                 JOIN rfqs r ON r.id = q.rfq_id
                 JOIN projects p ON p.id = r.project_id
                 WHERE q.company_id = ? AND p.company_id <> ?) AS total
            """,
            (supplier_id, self.company_id) * 3,
        ).fetchone()
        return int(row["total"] or 0)

    def active_quote_count(self, db, supplier_id: int) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM quotes WHERE company_id = ? AND status IN ('submitted', 'awarded')",
            (supplier_id,),
        ).fetchone()
        return int(row["total"] or 0)

    def get_partnership(self, db, supplier_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT id, source_company_id, target_company_id, status, notes, created_at
            FROM company_partnerships
            WHERE source_company_id = ? AND target_company_id = ?
            """,
            (self.company_id, supplier_id),
        ).fetchone()
        return self.row_to_dict(row)

    def add_partnership(self, db, supplier_id: int, *, status: str = "active", notes: str | None = None) -> int:
        return self.insert_returning_id(
            db,
            """
            INSERT INTO company_partnerships (source_company_id, target_company_id, status, notes)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            (self.company_id, supplier_id, status, notes),
        )

    def update_partnership(self, db, supplier_id: int, *, status: str, notes: str | None) -> None:
        db.execute(
            """
            UPDATE company_partnerships
            SET status = ?, notes = ?, updated_at = CURRENT_TIMESTAMP
            WHERE source_company_id = ? AND target_company_id = ?
            """,
            (status, notes, self.company_id, supplier_id),
        )

    def remove_partnership(self, db, supplier_id: int) -> None:
        db.execute(
            "DELETE FROM company_partnerships WHERE source_company_id = ? AND target_company_id = ?",
            (self.company_id, supplier_id),
        )

    def rfq_history(self, db, supplier_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT r.id AS rfq_id, r.name AS rfq_name, r.status AS rfq_status, r.deadline,
                   rs.status AS invite_status, rs.notified_at, rs.responded_at,
                   p.id AS project_id, p.name AS project_name
            FROM rfq_suppliers rs
            JOIN rfqs r ON r.id = rs.rfq_id
            JOIN projects p ON p.id = r.project_id
            WHERE rs.company_id = ? AND p.company_id = ?
            ORDER BY r.id DESC
            """,
            (supplier_id, self.company_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def quote_history(self, db, supplier_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT q.id, q.rfq_id, r.name AS rfq_name, q.status, q.duration, q.created_at,
                   COALESCE(SUM(qi.price * qi.quantity), 0) AS total
            FROM quotes q
            JOIN rfqs r ON r.id = q.rfq_id
            JOIN projects p ON p.id = r.project_id
            LEFT JOIN quote_items qi ON qi.quote_id = q.id
            WHERE q.company_id = ? AND p.company_id = ?
            GROUP BY q.id, q.rfq_id, r.name, q.status, q.duration, q.created_at
            ORDER BY q.id DESC
            """,
            (supplier_id, self.company_id),
        ).fetchall()
        return self.rows_to_dicts(rows)
