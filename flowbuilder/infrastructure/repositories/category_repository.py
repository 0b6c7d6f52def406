from __future__ import annotations

from flowbuilder.infrastructure.repositories.base import BaseRepository


class CategoryRepository(BaseRepository):
    def list_all(self, db) -> list[dict]:
        rows = db.execute(
            """
            SELECT c.id, c.name, c.description, c.created_at, COUNT(m.id) AS material_count
            FROM categories c
            LEFT JOIN materials m ON m.category_id = c.id
            WHERE c.company_id = ?
            GROUP BY c.id, c.name, c.description, c.created_at
            ORDER BY c.name
            """,
            (self.company_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def get_by_id(self, db, category_id: int) -> dict | None:
        row = db.execute(
            "SELECT id, name, description, created_at FROM categories WHERE id = ? AND company_id = ?",
            (category_id, self.company_id),
        ).fetchone()
        return self.row_to_dict(row)

    def name_taken(self, db, name: str, *, exclude_id: int | None = None) -> bool:
        row = db.execute(
            """
            SELECT id FROM categories
            WHERE company_id = ? AND LOWER(name) = LOWER(?) AND id <> ?
            """,
            (self.company_id, name, exclude_id or 0),
        ).fetchone()
        return row is not None

    def create(self, db, *, name: str, description: str | None) -> int:
        return self.insert_returning_id(
            db,
            "INSERT INTO categories (company_id, name, description) VALUES (?, ?, ?) RETURNING id",
            (self.company_id, name, description),
        )

    def update(self, db, category_id: int, *, name: str, description: str | None) -> None:
        db.execute(
            "UPDATE categories SET name = ?, description = ? WHERE id = ? AND company_id = ?",
            (name, description, category_id, self.company_id),
        )

    def material_count(self, db, category_id: int) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM materials WHERE category_id = ? AND company_id = ?",
            (category_id, self.company_id),
        ).fetchone()
        return int(row["total"] or 0)

    def delete(self, db, category_id: int) -> None:
        db.execute("DELETE FROM categories WHERE id = ? AND company_id = ?", (category_id, self.company_id))
