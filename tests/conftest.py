from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from sluggable.configuration import SlugConfig  # noqa: E402
from sluggable.mapping.schema import FieldMapping, RecordSchema, SchemaRegistry, SlugOptions  # noqa: E402


@dataclass
class FakeRecord:
    """Plain record used by the in-memory host."""

    type: str
    values: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FakeHost:
    """In-memory host that records every call the slug core makes."""

    identifier: str = "id"
    stored: List[FakeRecord] = field(default_factory=list)
    pending: Dict[str, int] = field(default_factory=dict)
    updates: List[Tuple[Any, str, Any, Any]] = field(default_factory=list)
    recomputed: List[Any] = field(default_factory=list)
    change_sets: Dict[int, Dict[str, Tuple[Any, Any]]] = field(default_factory=dict)
    queries: List[str] = field(default_factory=list)

    def store(self, record_type: str, **values: Any) -> FakeRecord:
        record = FakeRecord(record_type, dict(values))
        record.values.setdefault(self.identifier, len(self.stored) + 1)
        self.stored.append(record)
        return record

    def get_record_type(self, record: FakeRecord) -> str:
        return record.type

    def get_field_value(self, record: FakeRecord, field: str) -> Any:
        return record.values.get(field)

    def set_field_value(self, record: FakeRecord, field: str, value: Any) -> None:
        record.values[field] = value

    def get_identifier_values(self, record: FakeRecord) -> Mapping[str, Any]:
        value = record.values.get(self.identifier)
        return {} if value is None else {self.identifier: value}

    def has_pending_insertions(self, record_type: str) -> bool:
        return self.pending.get(record_type, 0) > 0

    def schedule_field_update(self, record: FakeRecord, field: str, old_value: Any, new_value: Any) -> None:
        record.values[field] = new_value
        self.updates.append((record, field, old_value, new_value))

    def recompute_change_set(self, record: FakeRecord) -> None:
        self.recomputed.append(record)

    def scheduled_updates(self) -> List[FakeRecord]:
        return [record for record in self.stored if self.change_sets.get(id(record))]

    def get_change_set(self, record: FakeRecord) -> Mapping[str, Tuple[Any, Any]]:
        return self.change_sets.get(id(record), {})

    def query_records_with_field_prefix(
        self,
        record_type: str,
        field: str,
        prefix: str,
        exclude: Mapping[str, Any],
    ) -> List[str]:
        self.queries.append(prefix)
        matches = []
        for record in self.stored:
            if record.type != record_type:
                continue
            if any(record.values.get(name) == value for name, value in exclude.items()):
                continue
            value = record.values.get(field)
            if isinstance(value, str) and value.startswith(prefix):
                matches.append(value)
        return matches


@pytest.fixture()
def host() -> FakeHost:
    return FakeHost()


def _make_config(**overrides: Any) -> SlugConfig:
    values: Dict[str, Any] = {
        "record_type": "article",
        "source_fields": ("title",),
        "slug_field": "slug",
        "max_length": 64,
    }
    values.update(overrides)
    return SlugConfig(**values)


def _article_schema(**overrides: Any) -> RecordSchema:
    values: Dict[str, Any] = {
        "name": "article",
        "fields": [
            FieldMapping(name="title", length=128),
            FieldMapping(name="code", length=16),
            FieldMapping(name="slug", length=64),
        ],
        "sluggable": ["title", "code"],
        "slugs": {"slug": SlugOptions()},
    }
    values.update(overrides)
    return RecordSchema(**values)


@pytest.fixture()
def registry() -> SchemaRegistry:
    return SchemaRegistry([_article_schema()])


@pytest.fixture()
def make_config():
    """Factory for slug configs of the ``article`` type."""
    return _make_config


@pytest.fixture()
def article_schema():
    """Factory for the ``article`` schema with optional overrides."""
    return _article_schema


@pytest.fixture()
def new_record():
    """Factory for records the in-memory host has not stored yet."""

    def factory(record_type: str, values: Dict[str, Any] | None = None) -> FakeRecord:
        return FakeRecord(record_type, dict(values or {}))

    return factory
