"""SQLite-backed record storage used as the reference slug host."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional

from ..cache import ConfigCache, FileConfigCache
from ..configuration import SlugConfigurationResolver
from ..mapping.schema import FieldMapping, FieldType, RecordSchema, SchemaRegistry

if TYPE_CHECKING:
    from .session import Session

DEFAULT_DB_PATH = Path("data/sluggable.sqlite")
CONFIG_CACHE_NAME = "slug_configs.json"
LOGGER = logging.getLogger(__name__)

_COLUMN_TYPES: Dict[FieldType, str] = {
    FieldType.STRING: "TEXT COLLATE BINARY",
    FieldType.TEXT: "TEXT COLLATE BINARY",
    FieldType.INTEGER: "INTEGER",
    FieldType.FLOAT: "REAL",
    FieldType.BOOLEAN: "INTEGER",
}


def _quote(identifier: str) -> str:
    """Quote a schema identifier; names are validated by the schema models."""
    return f'"{identifier}"'


def _column_definition(mapping: FieldMapping) -> str:
    parts = [_quote(mapping.name), _COLUMN_TYPES[mapping.type]]
    if not mapping.nullable:
        parts.append("NOT NULL")
    if mapping.unique:
        parts.append("UNIQUE")
    return " ".join(parts)


class RecordStore:
    """SQLite persistence for records described by a :class:`SchemaRegistry`.

    Each concrete schema is stored in its own table with an auto-assigned
    integer identifier. Text columns use binary collation, so slug lookups
    are exact and case-sensitive regardless of SQLite's ``LIKE`` defaults.
    Writes issued through :meth:`insert_row` and :meth:`update_row` are
    committed by the surrounding :meth:`transaction`.
    """

    def __init__(
        self,
        db_path: Path | str = DEFAULT_DB_PATH,
        *,
        registry: SchemaRegistry,
        cache: Optional[ConfigCache] = None,
    ) -> None:
        self.db_path = Path(db_path).resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.registry = registry
        self.resolver = SlugConfigurationResolver(registry, cache=cache)
        self._conn: Optional[sqlite3.Connection] = self._open_connection()
        self._bootstrap()

    def close(self) -> None:
        if getattr(self, "_conn", None) is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None

    def __enter__(self) -> "RecordStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self.db_path))
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    @classmethod
    def from_config(cls, config: Mapping[str, Any], registry: Optional[SchemaRegistry] = None) -> "RecordStore":
        if registry is None:
            registry = SchemaRegistry.from_config(config)

        paths = config.get("paths") or {}
        data_path = Path(paths.get("data") or "data")
        db_path = Path(paths["db_path"]) if paths.get("db_path") else data_path / "sluggable.sqlite"

        cache: Optional[ConfigCache] = None
        cache_cfg = config.get("cache") or {}
        if cache_cfg.get("enabled"):
            cache_dir = Path(paths.get("cache") or data_path / "cache")
            cache = FileConfigCache(cache_dir / CONFIG_CACHE_NAME)

        return cls(db_path, registry=registry, cache=cache)

    def _bootstrap(self) -> None:
        statements = []
        for schema in self.registry.concrete():
            columns = [f"{_quote(schema.identifier)} INTEGER PRIMARY KEY AUTOINCREMENT"]
            for mapping in self.registry.fields(schema.name).values():
                if mapping.name == schema.identifier:
                    continue
                columns.append(_column_definition(mapping))
            statements.append(
                f"CREATE TABLE IF NOT EXISTS {_quote(schema.table_name)} (\n    "
                + ",\n    ".join(columns)
                + "\n);"
            )
        if statements:
            self._conn.executescript("\n".join(statements))
        self._conn.commit()
        LOGGER.debug("Bootstrapped %d table(s) in %s", len(statements), self.db_path)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def session(self) -> "Session":
        from .session import Session

        return Session(self)

    # Row operations ------------------------------------------------------------------
    def insert_row(self, record_type: str, values: Mapping[str, Any]) -> int:
        schema = self._schema(record_type)
        columns = [name for name in values if name != schema.identifier]
        if columns:
            placeholders = ", ".join("?" for _ in columns)
            query = (
                f"INSERT INTO {_quote(schema.table_name)} ({', '.join(_quote(name) for name in columns)}) "
                f"VALUES ({placeholders})"
            )
            cursor = self._conn.execute(query, [values[name] for name in columns])
        else:
            cursor = self._conn.execute(f"INSERT INTO {_quote(schema.table_name)} DEFAULT VALUES")
        return int(cursor.lastrowid)

    def update_row(self, record_type: str, identifier: Any, values: Mapping[str, Any]) -> None:
        if not values:
            return
        schema = self._schema(record_type)
        assignments = ", ".join(f"{_quote(name)} = ?" for name in values)
        self._conn.execute(
            f"UPDATE {_quote(schema.table_name)} SET {assignments} WHERE {_quote(schema.identifier)} = ?",
            [*values.values(), identifier],
        )

    def fetch_row(self, record_type: str, identifier: Any) -> Optional[Dict[str, Any]]:
        schema = self._schema(record_type)
        cursor = self._conn.execute(
            f"SELECT * FROM {_quote(schema.table_name)} WHERE {_quote(schema.identifier)} = ?",
            (identifier,),
        )
        row = cursor.fetchone()
        if not row:
            return None
        return self._decode(schema, row)

    def fetch_rows(self, record_type: str) -> List[Dict[str, Any]]:
        schema = self._schema(record_type)
        cursor = self._conn.execute(
            f"SELECT * FROM {_quote(schema.table_name)} ORDER BY {_quote(schema.identifier)} ASC"
        )
        return [self._decode(schema, row) for row in cursor.fetchall()]

    def select_prefix(
        self,
        record_type: str,
        field: str,
        prefix: str,
        exclude: Optional[Mapping[str, Any]] = None,
    ) -> List[str]:
        """Return ``field`` values of ``record_type`` starting with ``prefix``."""
        schema = self._schema(record_type)
        column = _quote(field)
        clauses = [f"substr({column}, 1, ?) = ?"]
        params: List[Any] = [len(prefix), prefix]
        for name, value in (exclude or {}).items():
            clauses.append(f"{_quote(name)} <> ?")
            params.append(value)
        query = f"SELECT {column} FROM {_quote(schema.table_name)} WHERE " + " AND ".join(clauses)
        cursor = self._conn.execute(query, params)
        return [row[0] for row in cursor.fetchall()]

    def _schema(self, record_type: str) -> RecordSchema:
        schema = self.registry.get(record_type)
        if schema.mapped_superclass:
            raise ValueError(f"Record type '{record_type}' is a mapped superclass and has no table")
        return schema

    def _decode(self, schema: RecordSchema, row: sqlite3.Row) -> Dict[str, Any]:
        mappings = self.registry.fields(schema.name)
        values: Dict[str, Any] = {}
        for key in row.keys():
            value = row[key]
            mapping = mappings.get(key)
            if mapping is not None and mapping.type == FieldType.BOOLEAN and value is not None:
                value = bool(value)
            values[key] = value
        return values


__all__ = ["DEFAULT_DB_PATH", "RecordStore"]
