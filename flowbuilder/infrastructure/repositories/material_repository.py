from __future__ import annotations

from typing import Any, Dict, Iterable

from flowbuilder.infrastructure.repositories.base import BaseRepository


_MATERIAL_COLUMNS = """
    m.id, m.name, m.sku, m.unit, m.description, m.category_id, c.name AS category_name,
    m.avg_price, m.price_stdev, m.price_samples, m.created_at, m.updated_at
"""


class MaterialRepository(BaseRepository):
    EDITABLE_FIELDS = ("name", "sku", "unit", "description", "category_id")

    def search(self, db, *, search: str = "", category_id: int | None = None) -> list[dict]:
        clauses = ["m.company_id = ?"]
        params: list[Any] = [self.company_id]
        if search:
            pattern = f"%{search.lower()}%"
            clauses.append("(LOWER(m.name) LIKE ? OR LOWER(COALESCE(m.sku, '')) LIKE ?)")
            params.extend([pattern, pattern])
        if category_id:
            clauses.append("m.category_id = ?")
            params.append(category_id)
        rows = db.execute(
            f"""
            SELECT {_MATERIAL_COLUMNS}
            FROM materials m
            LEFT JOIN categories c ON c.id = m.category_id
            WHERE {" AND ".join(clauses)}
            ORDER BY m.name, m.id
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def get_by_id(self, db, material_id: int) -> dict | None:
        row = db.execute(
            f"""
            SELECT {_MATERIAL_COLUMNS}
            FROM materials m
            LEFT JOIN categories c ON c.id = m.category_id
            WHERE m.id = ? AND m.company_id = ?
            """,
            (material_id, self.company_id),
        ).fetchone()
        return self.row_to_dict(row)

    def existing_ids(self, db, material_ids: Iterable[int]) -> set[int]:
        ids = list(material_ids)
        if not ids:
            return set()
        rows = db.execute(
            f"SELECT id FROM materials WHERE company_id = ? AND id IN ({self.placeholders(ids)})",
            (self.company_id, *ids),
        ).fetchall()
        return {int(row["id"]) for row in rows}

    def create(
        self,
        db,
        *,
        name: str,
        sku: str | None,
        unit: str | None,
        description: str | None,
        category_id: int | None,
    ) -> int:
        return self.insert_returning_id(
            db,
            """
            INSERT INTO materials (company_id, name, sku, unit, description, category_id)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (self.company_id, name, sku, unit, description, category_id),
        )

    def update(self, db, material_id: int, changes: Dict[str, Any]) -> None:
        fields = [key for key in self.EDITABLE_FIELDS if key in changes]
        if not fields:
            return
        assignments = ", ".join(f"{key} = ?" for key in fields)
        db.execute(
            f"UPDATE materials SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ? AND company_id = ?",
            (*[changes[key] for key in fields], material_id, self.company_id),
        )

    def rfq_usage(self, db, material_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT r.id AS rfq_id, r.name AS rfq_name, r.status, rm.quantity, p.id AS project_id, p.name AS project_name
            FROM rfq_materials rm
            JOIN rfqs r ON r.id = rm.rfq_id
            JOIN projects p ON p.id = r.project_id
            WHERE rm.material_id = ? AND p.company_id = ?
            ORDER BY r.id DESC
            """,
            (material_id, self.company_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def active_rfq_count(self, db, material_id: int) -> int:
        row = db.execute(
            """
            SELECT COUNT(*) AS total
            FROM rfq_materials rm
            JOIN rfqs r ON r.id = rm.rfq_id
            WHERE rm.material_id = ? AND r.status <> 'closed'
            """,
            (material_id,),
        ).fetchone()
        return int(row["total"] or 0)

    def reference_count(self, db, material_id: int) -> int:
        row = db.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM rfq_materials WHERE material_id = ?)
                + (SELECT COUNT(*) FROM quote_items WHERE material_id = ?) AS total
            """,
            (material_id, material_id),
        ).fetchone()
        return int(row["total"] or 0)

    def delete(self, db, material_id: int) -> None:
        db.execute("DELETE FROM materials WHERE id = ? AND company_id = ?", (material_id, self.company_id))
