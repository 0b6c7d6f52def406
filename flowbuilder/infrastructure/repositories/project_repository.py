from __future__ import annotations

from typing import Any, Dict

from flowbuilder.infrastructure.repositories.base import BaseRepository


class ProjectRepository(BaseRepository):
    def list_all(self, db) -> list[dict]:
        rows = db.execute(
            """
            SELECT p.id, p.name, p.description, p.created_at, p.updated_at,
                   COUNT(r.id) AS rfq_count,
                   SUM(CASE WHEN r.status = 'open' THEN 1 ELSE 0 END) AS open_rfq_count
            FROM projects p
            LEFT JOIN rfqs r ON r.project_id = p.id
            WHERE p.company_id = ?
            GROUP BY p.id, p.name, p.description, p.created_at, p.updated_at
            ORDER BY p.id DESC
            """,
            (self.company_id,),
        ).fetchall()
        items = self.rows_to_dicts(rows)
        for item in items:
            item["open_rfq_count"] = int(item.get("open_rfq_count") or 0)
        return items

    def get_by_id(self, db, project_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT id, company_id, name, description, created_at, updated_at
            FROM projects
            WHERE id = ? AND company_id = ?
            """,
            (project_id, self.company_id),
        ).fetchone()
        return self.row_to_dict(row)

    def create(self, db, *, name: str, description: str | None) -> int:
        return self.insert_returning_id(
            db,
            "INSERT INTO projects (company_id, name, description) VALUES (?, ?, ?) RETURNING id",
            (self.company_id, name, description),
        )

    def update(self, db, project_id: int, changes: Dict[str, Any]) -> None:
        fields = [key for key in ("name", "description") if key in changes]
        if not fields:
            return
        assignments = ", ".join(f"{key} = ?" for key in fields)
        db.execute(
            f"UPDATE projects SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ? AND company_id = ?",
            (*[changes[key] for key in fields], project_id, self.company_id),
        )

    def non_draft_rfq_count(self, db, project_id: int) -> int:
        row = db.execute(
            """
            SELECT COUNT(*) AS total
            FROM rfqs r
            JOIN projects p ON p.id = r.project_id
            WHERE r.project_id = ? AND p.company_id = ? AND r.status <> 'draft'
            """,
            (project_id, self.company_id),
        ).fetchone()
        return int(row["total"] or 0)

    def delete(self, db, project_id: int) -> None:
        db.execute("DELETE FROM projects WHERE id = ? AND company_id = ?", (project_id, self.company_id))
