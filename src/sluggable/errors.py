"""Domain exceptions raised while configuring, building and resolving slugs."""

from __future__ import annotations

from typing import Optional


class SluggableError(RuntimeError):
    """Base error raised for slug behaviour failures."""

    def __init__(self, message: str, *, record_type: Optional[str] = None, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.record_type = record_type
        self.field = field


class SlugConfigurationError(SluggableError):
    """Raised when a record schema carries invalid slug declarations."""


class UnknownRecordTypeError(SlugConfigurationError):
    """Raised when a record type is not present in the schema registry."""

    def __init__(self, record_type: str) -> None:
        super().__init__(f"Record type '{record_type}' is not registered", record_type=record_type)


class MissingFieldsError(SlugConfigurationError):
    """Raised when a slug field is declared without any source fields."""

    def __init__(self, record_type: str) -> None:
        super().__init__(
            f"Unable to find any sluggable source fields for record type '{record_type}'",
            record_type=record_type,
        )


class MissingSlugFieldError(SlugConfigurationError):
    """Raised when source fields are declared but no field holds the slug."""

    def __init__(self, record_type: str) -> None:
        super().__init__(
            f"Record type '{record_type}' declares sluggable fields but no slug field",
            record_type=record_type,
        )


class FieldNotMappedError(SlugConfigurationError):
    def __init__(self, record_type: str, field: str, *, role: str = "sluggable") -> None:
        super().__init__(
            f"Unable to find {role} field '{field}' as mapped property in record type '{record_type}'",
            record_type=record_type,
            field=field,
        )


class InvalidFieldTypeError(SlugConfigurationError):
    def __init__(self, record_type: str, field: str, field_type: str) -> None:
        super().__init__(
            f"Field '{field}' of record type '{record_type}' has type '{field_type}'; "
            "slug and sluggable fields must be text",
            record_type=record_type,
            field=field,
        )
        self.field_type = field_type


class DuplicateSlugFieldError(SlugConfigurationError):
    def __init__(self, record_type: str, field: str, existing: str) -> None:
        super().__init__(
            f"Record type '{record_type}' marks '{field}' as slug field but '{existing}' already holds the slug",
            record_type=record_type,
            field=field,
        )
        self.existing = existing


class EmptySlugSourceError(SluggableError):
    """Raised when the source fields produce nothing to slug."""

    def __init__(self, record_type: str, fields: tuple[str, ...]) -> None:
        joined = ", ".join(fields)
        super().__init__(
            f"Unable to build a slug for '{record_type}': source fields ({joined}) are empty",
            record_type=record_type,
        )
        self.fields = fields


class PendingInsertionsError(SluggableError):
    """Raised when uniqueness is resolved while the insertion batch is still open."""

    def __init__(self, record_type: str) -> None:
        super().__init__(
            f"Cannot resolve a unique slug for '{record_type}' while insertions are pending",
            record_type=record_type,
        )


class DeferredUniquenessNotSupportedError(SluggableError):
    """Raised when a unique-constrained slug column would need deferred resolution."""

    def __init__(self, record_type: str, field: str) -> None:
        super().__init__(
            f"Slug field '{field}' of '{record_type}' is unique at schema level and cannot be "
            "resolved after a batched insertion; persist these records one at a time",
            record_type=record_type,
            field=field,
        )


class SlugLengthExhaustedError(SluggableError):
    """Raised when no counter suffix fits within the slug field capacity."""

    def __init__(self, record_type: str, field: str, max_length: int) -> None:
        super().__init__(
            f"Slug field '{field}' of '{record_type}' (max length {max_length}) has no room left "
            "for a disambiguation counter",
            record_type=record_type,
            field=field,
        )
        self.max_length = max_length


__all__ = [
    "DeferredUniquenessNotSupportedError",
    "DuplicateSlugFieldError",
    "EmptySlugSourceError",
    "FieldNotMappedError",
    "InvalidFieldTypeError",
    "MissingFieldsError",
    "MissingSlugFieldError",
    "PendingInsertionsError",
    "SlugConfigurationError",
    "SlugLengthExhaustedError",
    "SluggableError",
    "UnknownRecordTypeError",
]
