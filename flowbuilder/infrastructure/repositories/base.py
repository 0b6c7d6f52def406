from __future__ import annotations

from typing import Any, Iterable


class CompanyScopeRequiredError(ValueError):
    """Raised when a repository is instantiated without a company scope."""


class BaseRepository:
    """Every query issued through a subclass is filtered by ``company_id``."""

    def __init__(self, *, company_id: int | None = None) -> None:
        try:
            scope = int(company_id) if company_id is not None else 0
        except (TypeError, ValueError):
            scope = 0
        if scope <= 0:
            raise CompanyScopeRequiredError("company_id is required for repository access")
        self.company_id = scope

    @staticmethod
    def insert_returning_id(db, sql: str, params: Iterable[Any]) -> int:
        # fetchall drains the statement so sqlite can commit right after.
        rows = db.execute(sql, tuple(params)).fetchall()
        row = rows[0]
        return int(row["id"])

    @staticmethod
    def row_to_dict(row: Any) -> dict | None:
        return dict(row) if row else None

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]

    @staticmethod
    def placeholders(values: Iterable[Any]) -> str:
        return ", ".join("?" for _ in values)
