import contextlib
import sqlite3
from typing import Dict, Iterable, List

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g


if psycopg2 is not None:
    INTEGRITY_ERRORS = (sqlite3.IntegrityError, psycopg2.IntegrityError)
else:  # pragma: no cover
    INTEGRITY_ERRORS = (sqlite3.IntegrityError,)

DEFAULT_ROLES = ("Admin", "Buyer", "Supplier")


class Database:
    """Connection wrapper shared by both backends.

    Connections run in autocommit mode; multi-statement writes go through
    ``transaction()``, which issues BEGIN/COMMIT/ROLLBACK explicitly. Nested
    ``transaction()`` blocks join the outermost one.
    """

    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection
        self._tx_depth = 0

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, tuple(params or ()))

    @contextlib.contextmanager
    def transaction(self):
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        self.execute("BEGIN IMMEDIATE" if self.backend == "sqlite" else "BEGIN")
        self._tx_depth = 1
        try:
            yield self
        except BaseException:
            self._tx_depth = 0
            self.execute("ROLLBACK")
            raise
        self._tx_depth = 0
        self.execute("COMMIT")

    def commit(self):
        self._conn.commit()

    def close(self):
        self._conn.close()


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("%", "%%").replace("?", "%s")


def _connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 is not installed.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path, timeout=30.0, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = _connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    if db.backend == "postgres":
        _init_db_postgres(db)
    else:
        _init_db_sqlite(db)
    db.commit()


_COLUMN_TYPES: Dict[str, Dict[str, str]] = {
    "sqlite": {
        "pk": "INTEGER PRIMARY KEY AUTOINCREMENT",
        "ts": "TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP",
        "bool_false": "INTEGER NOT NULL DEFAULT 0",
        "real": "REAL",
    },
    "postgres": {
        "pk": "SERIAL PRIMARY KEY",
        "ts": "TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP",
        "bool_false": "BOOLEAN NOT NULL DEFAULT FALSE",
        "real": "DOUBLE PRECISION",
    },
}


_SCHEMA: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS roles (
        id {pk},
        name TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS companies (
        id {pk},
        name TEXT NOT NULL,
        type TEXT NOT NULL DEFAULT 'client' CHECK (type IN ('client','supplier')),
        address TEXT,
        phone TEXT,
        email TEXT,
        trade_specialty TEXT,
        description TEXT,
        created_by_company_id INTEGER REFERENCES companies(id) ON DELETE SET NULL,
        created_at {ts},
        updated_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id {pk},
        company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
        role_id INTEGER NOT NULL REFERENCES roles(id),
        name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        created_at {ts},
        updated_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS company_partnerships (
        id {pk},
        source_company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
        target_company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
        status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active','inactive','pending')),
        notes TEXT,
        created_at {ts},
        updated_at {ts},
        UNIQUE (source_company_id, target_company_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS categories (
        id {pk},
        company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        created_at {ts},
        UNIQUE (company_id, name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS materials (
        id {pk},
        company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
        category_id INTEGER REFERENCES categories(id),
        name TEXT NOT NULL,
        sku TEXT,
        unit TEXT,
        description TEXT,
        avg_price {real},
        price_stdev {real},
        price_samples INTEGER,
        created_at {ts},
        updated_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id {pk},
        company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        created_at {ts},
        updated_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rfqs (
        id {pk},
        project_id INTEGER NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        deadline TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'draft' CHECK (status IN ('draft','open','closed')),
        created_by INTEGER REFERENCES users(id) ON DELETE SET NULL,
        created_at {ts},
        updated_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rfq_materials (
        id {pk},
        rfq_id INTEGER NOT NULL REFERENCES rfqs(id) ON DELETE CASCADE,
        material_id INTEGER NOT NULL REFERENCES materials(id),
        quantity {real} NOT NULL CHECK (quantity > 0),
        UNIQUE (rfq_id, material_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rfq_suppliers (
        id {pk},
        rfq_id INTEGER NOT NULL REFERENCES rfqs(id) ON DELETE CASCADE,
        company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
        status TEXT NOT NULL DEFAULT 'invited' CHECK (status IN ('invited','pending','submitted','declined')),
        notified_at TEXT,
        responded_at TEXT,
        UNIQUE (rfq_id, company_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quotes (
        id {pk},
        rfq_id INTEGER NOT NULL REFERENCES rfqs(id) ON DELETE CASCADE,
        company_id INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
        duration INTEGER NOT NULL CHECK (duration > 0),
        notes TEXT,
        status TEXT NOT NULL DEFAULT 'submitted' CHECK (status IN ('submitted','awarded','rejected')),
        created_by INTEGER REFERENCES users(id) ON DELETE SET NULL,
        created_at {ts},
        updated_at {ts},
        UNIQUE (rfq_id, company_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quote_items (
        id {pk},
        quote_id INTEGER NOT NULL REFERENCES quotes(id) ON DELETE CASCADE,
        material_id INTEGER NOT NULL REFERENCES materials(id),
        price {real} NOT NULL CHECK (price > 0),
        quantity {real} NOT NULL CHECK (quantity > 0),
        discount_rate {real} NOT NULL DEFAULT 0,
        original_unit_price {real},
        total_price {real},
        external_ref TEXT,
        status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending','accepted','rejected'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pos (
        id {pk},
        quote_id INTEGER NOT NULL UNIQUE REFERENCES quotes(id) ON DELETE CASCADE,
        status TEXT NOT NULL DEFAULT 'ordered' CHECK (
            status IN ('ordered','confirmed','shipped','delivered','cancelled')
        ),
        notes TEXT,
        created_by INTEGER REFERENCES users(id) ON DELETE SET NULL,
        created_at {ts},
        updated_at {ts},
        cancelled_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id {pk},
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        type TEXT NOT NULL,
        reference_id INTEGER,
        message TEXT NOT NULL,
        is_read {bool_false},
        created_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS status_events (
        id {pk},
        entity TEXT NOT NULL,
        entity_id INTEGER NOT NULL,
        from_status TEXT,
        to_status TEXT NOT NULL,
        reason TEXT,
        company_id INTEGER,
        user_id INTEGER,
        created_at {ts}
    )
    """,
]


_INDEXES: List[str] = [
    "CREATE INDEX IF NOT EXISTS idx_users_company ON users (company_id)",
    "CREATE INDEX IF NOT EXISTS idx_materials_company ON materials (company_id)",
    "CREATE INDEX IF NOT EXISTS idx_projects_company ON projects (company_id)",
    "CREATE INDEX IF NOT EXISTS idx_rfqs_project ON rfqs (project_id)",
    "CREATE INDEX IF NOT EXISTS idx_rfq_suppliers_company ON rfq_suppliers (company_id)",
    "CREATE INDEX IF NOT EXISTS idx_quotes_rfq ON quotes (rfq_id)",
    "CREATE INDEX IF NOT EXISTS idx_quote_items_quote ON quote_items (quote_id)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications (user_id, is_read)",
    "CREATE INDEX IF NOT EXISTS idx_status_events_entity ON status_events (entity, entity_id)",
]


SCHEMA_TABLES = (
    "roles",
    "companies",
    "users",
    "company_partnerships",
    "categories",
    "materials",
    "projects",
    "rfqs",
    "rfq_materials",
    "rfq_suppliers",
    "quotes",
    "quote_items",
    "pos",
    "notifications",
    "status_events",
)


def _create_schema(db, backend: str) -> None:
    types = _COLUMN_TYPES[backend]
    for statement in _SCHEMA:
        db.execute(statement.format(**types))
    for statement in _INDEXES:
        db.execute(statement)
    for role_name in DEFAULT_ROLES:
        db.execute(
            "INSERT INTO roles (name) VALUES (?) ON CONFLICT (name) DO NOTHING",
            (role_name,),
        )


def _init_db_sqlite(db) -> None:
    _create_schema(db, "sqlite")


def _init_db_postgres(db) -> None:
    _create_schema(db, "postgres")
