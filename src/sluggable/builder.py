"""Candidate slug construction from a record's source fields."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .configuration import SlugConfig
from .errors import EmptySlugSourceError
from .host import BuildChanges, PersistenceHost
from .mapping.schema import SlugStyle
from .utils.slug import camelize, truncate, urlize

LOGGER = logging.getLogger(__name__)


class SlugBuilder:
    """Derive candidate slugs; uniqueness and persistence are left to the caller."""

    def __init__(self, host: PersistenceHost) -> None:
        self._host = host

    @staticmethod
    def needs_rebuild(config: SlugConfig, change_set: BuildChanges) -> bool:
        if change_set is False:
            return True
        return any(field in change_set for field in config.source_fields)

    def build(self, record: Any, config: SlugConfig, change_set: BuildChanges) -> Optional[str]:
        """Return a fresh candidate slug, or ``None`` when no source field changed."""
        if not self.needs_rebuild(config, change_set):
            return None

        parts = []
        for field in config.source_fields:
            value = self._host.get_field_value(record, field)
            parts.append("" if value is None else str(value))
        source = " ".join(parts)
        if not source.strip():
            raise EmptySlugSourceError(config.record_type, config.source_fields)

        slug = urlize(source, config.separator)
        if not slug:
            raise EmptySlugSourceError(config.record_type, config.source_fields)
        if config.style is SlugStyle.CAMEL:
            slug = camelize(slug, config.separator)
        slug = truncate(slug, config.max_length)
        LOGGER.debug("Built candidate slug %r for %s", slug, config.record_type)
        return slug


__all__ = ["SlugBuilder"]
