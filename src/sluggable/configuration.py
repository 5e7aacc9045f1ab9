"""Resolution of per-type slug configuration from schema declarations."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError

from .cache import ConfigCache, cache_key
from .errors import (
    DuplicateSlugFieldError,
    FieldNotMappedError,
    InvalidFieldTypeError,
    MissingFieldsError,
    MissingSlugFieldError,
)
from .mapping.schema import TEXT_TYPES, FieldMapping, SchemaRegistry, SlugOptions, SlugStyle

LOGGER = logging.getLogger(__name__)

_UNRESOLVED = object()


class SlugConfig(BaseModel):
    """Immutable slug behaviour of a single record type."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    record_type: str
    source_fields: Tuple[str, ...]
    slug_field: str
    separator: str = "-"
    style: SlugStyle = SlugStyle.NONE
    updatable: bool = True
    unique: bool = True
    max_length: int
    unique_constraint: bool = False


class SlugConfigurationResolver:
    """Builds and caches :class:`SlugConfig` objects for registered record types."""

    def __init__(self, registry: SchemaRegistry, *, cache: Optional[ConfigCache] = None) -> None:
        self._registry = registry
        self._cache = cache
        self._configurations: Dict[str, Optional[SlugConfig]] = {}
        self._lock = threading.Lock()

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    def resolve(self, record_type: str) -> Optional[SlugConfig]:
        """Return the slug configuration of ``record_type`` or ``None`` when it has none."""
        with self._lock:
            cached = self._configurations.get(record_type, _UNRESOLVED)
        if cached is not _UNRESOLVED:
            return cached  # type: ignore[return-value]

        config = self._fetch_external(record_type)
        if config is None:
            config = self._build(record_type)
            if config is not None and self._cache is not None:
                self._cache.save(cache_key(record_type), config.model_dump(mode="json"))

        with self._lock:
            # Concurrent builds produce equal results; keep whichever landed first.
            return self._configurations.setdefault(record_type, config)

    def resolve_all(self) -> Dict[str, Optional[SlugConfig]]:
        """Resolve every concrete schema in the registry."""
        return {schema.name: self.resolve(schema.name) for schema in self._registry.concrete()}

    def _fetch_external(self, record_type: str) -> Optional[SlugConfig]:
        if self._cache is None:
            return None
        payload = self._cache.fetch(cache_key(record_type))
        if payload is None:
            return None
        try:
            return SlugConfig.model_validate(payload)
        except ValidationError as error:
            LOGGER.warning("Ignoring malformed cached slug config for %s: %s", record_type, error)
            return None

    def _build(self, record_type: str) -> Optional[SlugConfig]:
        schema = self._registry.get(record_type)
        if schema.mapped_superclass:
            LOGGER.debug("Skipping mapped superclass %s", record_type)
            return None

        mapped = self._registry.fields(record_type)
        sources: List[str] = []
        slug_field: Optional[str] = None
        options: Optional[SlugOptions] = None

        for level in self._registry.lineage(record_type):
            for name in level.sluggable:
                self._check_field(record_type, mapped, name, role="sluggable")
                if name not in sources:
                    sources.append(name)
            for name, declared in level.slugs.items():
                self._check_field(record_type, mapped, name, role="slug")
                if slug_field is not None and slug_field != name:
                    raise DuplicateSlugFieldError(record_type, name, slug_field)
                slug_field = name
                options = declared

        if slug_field is None or options is None:
            if sources:
                raise MissingSlugFieldError(record_type)
            return None
        if not sources:
            raise MissingFieldsError(record_type)

        slug_mapping = mapped[slug_field]
        config = SlugConfig(
            record_type=record_type,
            source_fields=tuple(sources),
            slug_field=slug_field,
            separator=options.separator,
            style=options.style,
            updatable=options.updatable,
            unique=options.unique,
            max_length=slug_mapping.length,
            unique_constraint=slug_mapping.unique,
        )
        LOGGER.debug(
            "Resolved slug config for %s: %s <- %s",
            record_type,
            config.slug_field,
            ", ".join(config.source_fields),
        )
        return config

    @staticmethod
    def _check_field(record_type: str, mapped: Dict[str, FieldMapping], name: str, *, role: str) -> None:
        mapping = mapped.get(name)
        if mapping is None:
            raise FieldNotMappedError(record_type, name, role=role)
        if mapping.type not in TEXT_TYPES:
            raise InvalidFieldTypeError(record_type, name, mapping.type.value)


__all__ = ["SlugConfig", "SlugConfigurationResolver"]
