from __future__ import annotations

from typing import Any, Dict

from flowbuilder.infrastructure.repositories.base import BaseRepository


class CompanyRepository(BaseRepository):
    """The acting company's own profile."""

    EDITABLE_FIELDS = ("name", "address", "phone", "email", "trade_specialty", "description")

    def get_profile(self, db) -> dict | None:
        row = db.execute(
            """
            SELECT id, name, type, address, phone, email, trade_specialty, description, created_at
            FROM companies
            WHERE id = ?
            """,
            (self.company_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def update_profile(self, db, changes: Dict[str, Any]) -> None:
        fields = [key for key in self.EDITABLE_FIELDS if key in changes]
        if not fields:
            return
        assignments = ", ".join(f"{key} = ?" for key in fields)
        db.execute(
            f"UPDATE companies SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (*[changes[key] for key in fields], self.company_id),
        )

    def stats(self, db) -> dict:
        row = db.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM users WHERE company_id = ?) AS users,
                (SELECT COUNT(*) FROM projects WHERE company_id = ?) AS projects,
                (SELECT COUNT(*) FROM company_partnerships
                  WHERE source_company_id = ? AND status = 'active') AS partner_suppliers,
                (SELECT COUNT(*) FROM materials WHERE company_id = ?) AS materials
            """,
            (self.company_id, self.company_id, self.company_id, self.company_id),
        ).fetchone()
        return {key: int(row[key] or 0) for key in ("users", "projects", "partner_suppliers", "materials")}
