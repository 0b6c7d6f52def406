from __future__ import annotations

from werkzeug.security import generate_password_hash


class AuthRepository:
    """Lookups that happen before a company scope exists (sign-in, sign-up, session load)."""

    def find_user_by_email(self, db, email: str) -> dict | None:
        row = db.execute(
            """
            SELECT u.id, u.company_id, u.name, u.email, u.password_hash, r.name AS role_name
            FROM users u
            JOIN roles r ON r.id = u.role_id
            WHERE u.email = ?
            """,
            (email,),
        ).fetchone()
        return dict(row) if row else None

    def find_session_user(self, db, user_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT u.id, u.company_id, u.name, u.email, r.name AS role_name,
                   c.name AS company_name, c.type AS company_type
            FROM users u
            JOIN roles r ON r.id = u.role_id
            JOIN companies c ON c.id = u.company_id
            WHERE u.id = ?
            """,
            (user_id,),
        ).fetchone()
        return dict(row) if row else None

    def email_exists(self, db, email: str) -> bool:
        row = db.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone()
        return bool(row)

    def role_id(self, db, role_name: str) -> int | None:
        row = db.execute(
            "SELECT id FROM roles WHERE LOWER(name) = LOWER(?)",
            (role_name,),
        ).fetchone()
        return int(row["id"]) if row else None

    def list_roles(self, db) -> list[dict]:
        rows = db.execute("SELECT id, name FROM roles ORDER BY id").fetchall()
        return [dict(row) for row in rows]

    def create_company(
        self,
        db,
        *,
        name: str,
        company_type: str = "client",
        address: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        trade_specialty: str | None = None,
        description: str | None = None,
        created_by_company_id: int | None = None,
    ) -> int:
        rows = db.execute(
            """
            INSERT INTO companies
                (name, type, address, phone, email, trade_specialty, description, created_by_company_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (name, company_type, address, phone, email, trade_specialty, description, created_by_company_id),
        ).fetchall()
        return int(rows[0]["id"])

    def create_user(
        self,
        db,
        *,
        company_id: int,
        role_id: int,
        name: str,
        email: str,
        password: str,
    ) -> int:
        rows = db.execute(
            """
            INSERT INTO users (company_id, role_id, name, email, password_hash)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            (company_id, role_id, name, email, generate_password_hash(password)),
        ).fetchall()
        return int(rows[0]["id"])
