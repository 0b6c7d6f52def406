from __future__ import annotations

from typing import Any, Iterable

from flowbuilder.infrastructure.repositories.base import BaseRepository


_RFQ_COLUMNS = """
    r.id, r.project_id, p.name AS project_name, p.company_id AS buyer_company_id,
    r.name, r.description, r.deadline, r.status, r.created_by, r.created_at, r.updated_at
"""

_OWNED_RFQ = "project_id IN (SELECT id FROM projects WHERE company_id = ?)"

_SORT_ORDERS = {
    "newest": "r.created_at DESC, r.id DESC",
    "oldest": "r.created_at ASC, r.id ASC",
    "deadline": "r.deadline ASC, r.id ASC",
    "name": "LOWER(r.name) ASC, r.id ASC",
}


class RfqRepository(BaseRepository):
    """RFQs from both sides of the table.

    Buyer-side methods match RFQs whose project belongs to the acting company.
    Supplier-side methods (``*_for_supplier``, ``*_invite*``) match RFQs the
    acting company was invited to.
    """

    SORT_KEYS = tuple(_SORT_ORDERS)

    def get_by_id(self, db, rfq_id: int) -> dict | None:
        row = db.execute(
            f"""
            SELECT {_RFQ_COLUMNS}
            FROM rfqs r
            JOIN projects p ON p.id = r.project_id
            WHERE r.id = ? AND p.company_id = ?
            """,
            (rfq_id, self.company_id),
        ).fetchone()
        return self.row_to_dict(row)

    def list_for_project(
        self,
        db,
        project_id: int,
        *,
        search: str = "",
        status: str = "",
        sort: str = "newest",
    ) -> list[dict]:
        clauses = ["r.project_id = ?", "p.company_id = ?"]
        params: list[Any] = [project_id, self.company_id]
        if search:
            clauses.append("LOWER(r.name) LIKE ?")
            params.append(f"%{search.lower()}%")
        if status:
            clauses.append("r.status = ?")
            params.append(status)
        rows = db.execute(
            f"""
            SELECT {_RFQ_COLUMNS},
                   (SELECT COUNT(*) FROM rfq_materials rm WHERE rm.rfq_id = r.id) AS material_count,
                   (SELECT COUNT(*) FROM rfq_suppliers rs WHERE rs.rfq_id = r.id) AS supplier_count,
                   (SELECT COUNT(*) FROM quotes q WHERE q.rfq_id = r.id) AS quote_count
            FROM rfqs r
            JOIN projects p ON p.id = r.project_id
            WHERE {" AND ".join(clauses)}
            ORDER BY {_SORT_ORDERS.get(sort, _SORT_ORDERS["newest"])}
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def status_counts(self, db, project_id: int | None = None) -> dict:
        clauses = ["p.company_id = ?"]
        params: list[Any] = [self.company_id]
        if project_id is not None:
            clauses.append("r.project_id = ?")
            params.append(project_id)
        rows = db.execute(
            f"""
            SELECT r.status, COUNT(*) AS total
            FROM rfqs r
            JOIN projects p ON p.id = r.project_id
            WHERE {" AND ".join(clauses)}
            GROUP BY r.status
            """,
            tuple(params),
        ).fetchall()
        counts = {"draft": 0, "open": 0, "closed": 0}
        for row in rows:
            counts[row["status"]] = int(row["total"] or 0)
        counts["all"] = sum(counts.values())
        return counts

    def list_recent(self, db, *, limit: int = 5) -> list[dict]:
        rows = db.execute(
            f"""
            SELECT {_RFQ_COLUMNS}
            FROM rfqs r
            JOIN projects p ON p.id = r.project_id
            WHERE p.company_id = ?
            ORDER BY r.created_at DESC, r.id DESC
            LIMIT ?
            """,
            (self.company_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def create(
        self,
        db,
        *,
        project_id: int,
        name: str,
        description: str | None,
        deadline: str,
        created_by: int,
    ) -> int:
        return self.insert_returning_id(
            db,
            """
            INSERT INTO rfqs (project_id, name, description, deadline, status, created_by)
            VALUES (?, ?, ?, ?, 'draft', ?)
            RETURNING id
            """,
            (project_id, name, description, deadline, created_by),
        )

    def update_header(self, db, rfq_id: int, *, name: str, description: str | None, deadline: str) -> None:
        db.execute(
            f"""
            UPDATE rfqs
            SET name = ?, description = ?, deadline = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND {_OWNED_RFQ}
            """,
            (name, description, deadline, rfq_id, self.company_id),
        )

    def transition_status(self, db, rfq_id: int, *, from_status: str, to_status: str) -> bool:
        """Compare-and-set on status. False when another request moved it first."""
        cursor = db.execute(
            f"""
            UPDATE rfqs
            SET status = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND status = ? AND {_OWNED_RFQ}
            """,
            (to_status, rfq_id, from_status, self.company_id),
        )
        return cursor.rowcount == 1

    def delete(self, db, rfq_id: int) -> None:
        db.execute(
            f"DELETE FROM rfqs WHERE id = ? AND {_OWNED_RFQ}",
            (rfq_id, self.company_id),
        )

    def list_materials(self, db, rfq_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT rm.material_id, rm.quantity, m.name, m.sku, m.unit
            FROM rfq_materials rm
            JOIN materials m ON m.id = rm.material_id
            WHERE rm.rfq_id = ?
            ORDER BY m.name, rm.material_id
            """,
            (rfq_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_suppliers(self, db, rfq_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT rs.company_id, c.name, c.email, c.trade_specialty, rs.status, rs.notified_at, rs.responded_at
            FROM rfq_suppliers rs
            JOIN companies c ON c.id = rs.company_id
            WHERE rs.rfq_id = ?
            ORDER BY c.name, rs.company_id
            """,
            (rfq_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def count_lines(self, db, rfq_id: int) -> tuple[int, int]:
        row = db.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM rfq_materials WHERE rfq_id = ?) AS materials,
                (SELECT COUNT(*) FROM rfq_suppliers WHERE rfq_id = ?) AS suppliers
            """,
            (rfq_id, rfq_id),
        ).fetchone()
        return int(row["materials"] or 0), int(row["suppliers"] or 0)

    def replace_materials(self, db, rfq_id: int, lines: Iterable[Any]) -> None:
        db.execute("DELETE FROM rfq_materials WHERE rfq_id = ?", (rfq_id,))
        for line in lines:
            db.execute(
                "INSERT INTO rfq_materials (rfq_id, material_id, quantity) VALUES (?, ?, ?)",
                (rfq_id, line.material_id, line.quantity),
            )

    def replace_suppliers(self, db, rfq_id: int, supplier_ids: Iterable[int]) -> None:
        db.execute("DELETE FROM rfq_suppliers WHERE rfq_id = ?", (rfq_id,))
        for supplier_id in supplier_ids:
            db.execute(
                "INSERT INTO rfq_suppliers (rfq_id, company_id, status) VALUES (?, ?, 'invited')",
                (rfq_id, supplier_id),
            )

    def mark_suppliers_notified(self, db, rfq_id: int, *, notified_at: str) -> None:
        db.execute(
            "UPDATE rfq_suppliers SET status = 'pending', notified_at = ?, responded_at = NULL WHERE rfq_id = ?",
            (notified_at, rfq_id),
        )

    # Supplier side.

    def get_for_supplier(self, db, rfq_id: int) -> dict | None:
        row = db.execute(
            f"""
            SELECT {_RFQ_COLUMNS}, rs.status AS invite_status, rs.notified_at, rs.responded_at
            FROM rfqs r
            JOIN projects p ON p.id = r.project_id
            JOIN rfq_suppliers rs ON rs.rfq_id = r.id
            WHERE r.id = ? AND rs.company_id = ? AND r.status <> 'draft'
            """,
            (rfq_id, self.company_id),
        ).fetchone()
        return self.row_to_dict(row)

    def list_for_supplier(self, db, *, status: str = "") -> list[dict]:
        clauses = ["rs.company_id = ?", "r.status <> 'draft'"]
        params: list[Any] = [self.company_id]
        if status:
            clauses.append("r.status = ?")
            params.append(status)
        rows = db.execute(
            f"""
            SELECT {_RFQ_COLUMNS}, c.name AS buyer_company_name,
                   rs.status AS invite_status, rs.notified_at, rs.responded_at
            FROM rfqs r
            JOIN projects p ON p.id = r.project_id
            JOIN companies c ON c.id = p.company_id
            JOIN rfq_suppliers rs ON rs.rfq_id = r.id
            WHERE {" AND ".join(clauses)}
            ORDER BY r.deadline ASC, r.id DESC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def mark_invite_submitted(self, db, rfq_id: int, *, responded_at: str) -> None:
        db.execute(
            """
            UPDATE rfq_suppliers
            SET status = 'submitted', responded_at = ?
            WHERE rfq_id = ? AND company_id = ?
            """,
            (responded_at, rfq_id, self.company_id),
        )

    def reset_invite(self, db, rfq_id: int) -> None:
        db.execute(
            """
            UPDATE rfq_suppliers
            SET status = 'pending', responded_at = NULL
            WHERE rfq_id = ? AND company_id = ?
            """,
            (rfq_id, self.company_id),
        )
