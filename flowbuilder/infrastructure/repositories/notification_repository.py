from __future__ import annotations

from flowbuilder.infrastructure.repositories.base import BaseRepository, CompanyScopeRequiredError


class NotificationRepository(BaseRepository):
    """Reads and read-marks are restricted to the owning user."""

    def __init__(self, *, company_id: int | None = None, user_id: int | None = None) -> None:
        super().__init__(company_id=company_id)
        try:
            owner = int(user_id) if user_id is not None else 0
        except (TypeError, ValueError):
            owner = 0
        if owner <= 0:
            raise CompanyScopeRequiredError("user_id is required for notification access")
        self.user_id = owner

    @staticmethod
    def _normalize(row) -> dict:
        item = dict(row)
        item["is_read"] = bool(item.get("is_read"))
        return item

    def add(self, db, *, recipient_id: int, kind: str, reference_id: int | None, message: str) -> int:
        return self.insert_returning_id(
            db,
            """
            INSERT INTO notifications (user_id, type, reference_id, message)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            (recipient_id, kind, reference_id, message),
        )

    def list_own(self, db, *, unread_only: bool = False, limit: int = 100) -> list[dict]:
        clause = "AND is_read = ?" if unread_only else ""
        params = (self.user_id, False, int(limit)) if unread_only else (self.user_id, int(limit))
        rows = db.execute(
            f"""
            SELECT id, user_id, type, reference_id, message, is_read, created_at
            FROM notifications
            WHERE user_id = ? {clause}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            params,
        ).fetchall()
        return [self._normalize(row) for row in rows]

    def get_own(self, db, notification_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT id, user_id, type, reference_id, message, is_read, created_at
            FROM notifications
            WHERE id = ? AND user_id = ?
            """,
            (notification_id, self.user_id),
        ).fetchone()
        return self._normalize(row) if row else None

    def unread_count(self, db) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM notifications WHERE user_id = ? AND is_read = ?",
            (self.user_id, False),
        ).fetchone()
        return int(row["total"] or 0)

    def mark_read(self, db, notification_id: int) -> bool:
        cursor = db.execute(
            "UPDATE notifications SET is_read = ? WHERE id = ? AND user_id = ?",
            (True, notification_id, self.user_id),
        )
        return cursor.rowcount == 1

    def mark_all_read(self, db) -> int:
        cursor = db.execute(
            "UPDATE notifications SET is_read = ? WHERE user_id = ? AND is_read = ?",
            (True, self.user_id, False),
        )
        return int(cursor.rowcount or 0)
