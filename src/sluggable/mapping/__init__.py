"""Schema descriptions declaring which record fields take part in slugs."""

from .schema import (
    TEXT_TYPES,
    FieldMapping,
    FieldType,
    Record,
    RecordSchema,
    SchemaRegistry,
    SlugOptions,
    SlugStyle,
)

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
