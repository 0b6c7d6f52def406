from __future__ import annotations

from flowbuilder.infrastructure.repositories.base import BaseRepository


class StatusEventRepository(BaseRepository):
    def add_event(
        self,
        db,
        *,
        entity: str,
        entity_id: int,
        from_status: str | None,
        to_status: str,
        reason: str | None,
        user_id: int | None = None,
    ) -> int:
        return self.insert_returning_id(
            db,
            """
            INSERT INTO status_events (entity, entity_id, from_status, to_status, reason, company_id, user_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (entity, entity_id, from_status, to_status, reason, self.company_id, user_id),
        )

    def list_for_entity(self, db, *, entity: str, entity_id: int, limit: int = 100) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, entity, entity_id, from_status, to_status, reason, user_id, created_at
            FROM status_events
            WHERE entity = ? AND entity_id = ?
            ORDER BY id DESC
            LIMIT ?
            """,
            (entity, entity_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
