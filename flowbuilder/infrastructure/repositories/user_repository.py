from __future__ import annotations

from typing import Any, Dict

from werkzeug.security import generate_password_hash

from flowbuilder.infrastructure.repositories.base import BaseRepository


_USER_COLUMNS = """
    u.id, u.company_id, u.name, u.email, u.role_id, r.name AS role_name, u.created_at
"""


class UserRepository(BaseRepository):
    def list_users(self, db) -> list[dict]:
        rows = db.execute(
            f"""
            SELECT {_USER_COLUMNS}
            FROM users u
            JOIN roles r ON r.id = u.role_id
            WHERE u.company_id = ?
            ORDER BY u.name, u.id
            """,
            (self.company_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def get_by_id(self, db, user_id: int) -> dict | None:
        row = db.execute(
            f"""
            SELECT {_USER_COLUMNS}
            FROM users u
            JOIN roles r ON r.id = u.role_id
            WHERE u.id = ? AND u.company_id = ?
            """,
            (user_id, self.company_id),
        ).fetchone()
        return self.row_to_dict(row)

    def list_ids(self, db) -> list[int]:
        rows = db.execute(
            "SELECT id FROM users WHERE company_id = ? ORDER BY id",
            (self.company_id,),
        ).fetchall()
        return [int(row["id"]) for row in rows]

    def count(self, db) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM users WHERE company_id = ?",
            (self.company_id,),
        ).fetchone()
        return int(row["total"] or 0)

    def create(self, db, *, name: str, email: str, password: str, role_id: int) -> int:
        return self.insert_returning_id(
            db,
            """
            INSERT INTO users (company_id, role_id, name, email, password_hash)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            (self.company_id, role_id, name, email, generate_password_hash(password)),
        )

    def update(self, db, user_id: int, changes: Dict[str, Any]) -> None:
        assignments = []
        params: list[Any] = []
        for key in ("name", "email", "role_id"):
            if key in changes:
                assignments.append(f"{key} = ?")
                params.append(changes[key])
        if "password" in changes:
            assignments.append("password_hash = ?")
            params.append(generate_password_hash(changes["password"]))
        if not assignments:
            return
        db.execute(
            f"""
            UPDATE users
            SET {", ".join(assignments)}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND company_id = ?
            """,
            (*params, user_id, self.company_id),
        )

    def has_activity(self, db, user_id: int) -> bool:
        row = db.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM rfqs WHERE created_by = ?)
                + (SELECT COUNT(*) FROM pos WHERE created_by = ?) AS total
            """,
            (user_id, user_id),
        ).fetchone()
        return int(row["total"] or 0) > 0

    def delete(self, db, user_id: int) -> None:
        db.execute("DELETE FROM users WHERE id = ? AND company_id = ?", (user_id, self.company_id))
