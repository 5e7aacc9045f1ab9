"""Typed schema descriptions consumed by the slug configuration resolver."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import UnknownRecordTypeError

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SchemaModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class FieldType(str, Enum):
    """Storage types a mapped field can declare."""

    STRING = "string"
    TEXT = "text"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"


TEXT_TYPES = frozenset({FieldType.STRING, FieldType.TEXT})


class SlugStyle(str, Enum):
    """Casing applied to a normalized slug."""

    NONE = "none"
    CAMEL = "camel"


class FieldMapping(SchemaModel):
    """Single persisted field of a record type."""

    name: str
    type: FieldType = FieldType.STRING
    length: int = Field(default=255, ge=1)
    unique: bool = False
    nullable: bool = True

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not _IDENTIFIER_PATTERN.match(value):
            raise ValueError(f"Invalid field name '{value}'")
        return value


class SlugOptions(SchemaModel):
    """Options attached to the field that stores the slug."""

    style: SlugStyle = SlugStyle.NONE
    updatable: bool = True
    unique: bool = True
    separator: str = "-"

    @field_validator("separator")
    @classmethod
    def _check_separator(cls, value: str) -> str:
        if any(char.isalnum() for char in value):
            raise ValueError(f"Slug separator '{value}' must not contain letters or digits")
        return value


class RecordSchema(SchemaModel):
    """Declarations of one level of a record type hierarchy.

    ``fields`` lists the columns introduced at this level, ``sluggable`` names
    the source fields declared here and ``slugs`` maps the slug field(s)
    declared here to their options. A derived schema names its base through
    ``parent`` and inherits everything declared above it.
    """

    name: str
    parent: Optional[str] = None
    table: Optional[str] = None
    mapped_superclass: bool = False
    identifier: str = "id"
    fields: List[FieldMapping] = Field(default_factory=list)
    sluggable: List[str] = Field(default_factory=list)
    slugs: Dict[str, SlugOptions] = Field(default_factory=dict)

    @field_validator("name", "table", "identifier")
    @classmethod
    def _check_identifier(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _IDENTIFIER_PATTERN.match(value):
            raise ValueError(f"Invalid schema identifier '{value}'")
        return value

    @property
    def table_name(self) -> str:
        return self.table or self.name


class Record(SchemaModel):
    """Mutable record instance: a type name plus its field values."""

    type: str
    values: Dict[str, Any] = Field(default_factory=dict)

    def get(self, field: str, default: Any = None) -> Any:
        return self.values.get(field, default)

    def __getitem__(self, field: str) -> Any:
        return self.values[field]

    def __setitem__(self, field: str, value: Any) -> None:
        self.values[field] = value


class SchemaRegistry:
    """In-memory catalogue of record schemas keyed by type name."""

    def __init__(self, schemas: Iterable[RecordSchema] = ()) -> None:
        self._schemas: Dict[str, RecordSchema] = {}
        for schema in schemas:
            self.register(schema)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SchemaRegistry":
        entries = config.get("schemas") or []
        return cls(RecordSchema.model_validate(entry) for entry in entries)

    def register(self, schema: RecordSchema) -> RecordSchema:
        if schema.name in self._schemas:
            raise ValueError(f"Record type '{schema.name}' is already registered")
        self._schemas[schema.name] = schema
        return schema

    def get(self, record_type: str) -> RecordSchema:
        try:
            return self._schemas[record_type]
        except KeyError:
            raise UnknownRecordTypeError(record_type) from None

    def __contains__(self, record_type: object) -> bool:
        return record_type in self._schemas

    def __iter__(self) -> Iterator[RecordSchema]:
        return iter(self._schemas.values())

    def lineage(self, record_type: str) -> List[RecordSchema]:
        """Return the inheritance chain of ``record_type`` from most-base to most-derived."""
        chain: List[RecordSchema] = []
        seen: set[str] = set()
        current: Optional[str] = record_type
        while current is not None:
            if current in seen:
                raise ValueError(f"Inheritance cycle detected at record type '{current}'")
            seen.add(current)
            schema = self.get(current)
            chain.append(schema)
            current = schema.parent
        chain.reverse()
        return chain

    def fields(self, record_type: str) -> Dict[str, FieldMapping]:
        """Merge field mappings along the lineage; derived levels override base ones."""
        merged: Dict[str, FieldMapping] = {}
        for schema in self.lineage(record_type):
            for mapping in schema.fields:
                merged[mapping.name] = mapping
        return merged

    def identifier(self, record_type: str) -> str:
        return self.get(record_type).identifier

    def concrete(self) -> List[RecordSchema]:
        """Return the schemas that are stored in their own table."""
        return [schema for schema in self._schemas.values() if not schema.mapped_superclass]


__all__ = [
    "FieldMapping",
    "FieldType",
    "Record",
    "RecordSchema",
    "SchemaRegistry",
    "SlugOptions",
    "SlugStyle",
    "TEXT_TYPES",
]
