"""Collision-free slug resolution against the records already stored."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Iterable, Set, Tuple

from .configuration import SlugConfig
from .errors import PendingInsertionsError, SlugLengthExhaustedError
from .host import PersistenceHost
from .utils.slug import trailing_counter

LOGGER = logging.getLogger(__name__)


class UniquenessResolver:
    """Append the lowest free ``<separator><counter>`` suffix to colliding slugs.

    Matching is exact and case-sensitive. When the suffixed slug no longer fits
    the slug field, the base is cut so that base, separator and counter fill
    the field exactly and the whole ``<base><separator>`` family is checked
    again. The base is cut once more each time the counter gains a digit, so
    resolution takes at most one round per counter width.

    ``reserved`` lists slugs already handed out but possibly not yet visible to
    the host's queries. ``unresolved`` lists candidates still held by stored
    records that will be resolved afterwards; one stored occurrence per entry
    is not counted as a collision.
    """

    def __init__(self, host: PersistenceHost) -> None:
        self._host = host

    def make_unique(
        self,
        record: Any,
        config: SlugConfig,
        *,
        reserved: Iterable[str] = (),
        unresolved: Iterable[str] = (),
    ) -> str:
        if self._host.has_pending_insertions(config.record_type):
            raise PendingInsertionsError(config.record_type)

        reserved_slugs = tuple(reserved)
        unresolved_slugs = tuple(unresolved)
        separator = config.separator
        preferred = self._host.get_field_value(record, config.slug_field)

        taken = self._taken_slugs(record, config, preferred, reserved_slugs, unresolved_slugs)
        counter = trailing_counter(preferred, separator)
        candidate = preferred
        while candidate in taken:
            counter += 1
            candidate = f"{preferred}{separator}{counter}"
        if len(candidate) <= config.max_length:
            return self._assign(record, config, preferred, candidate)

        for _ in range(config.max_length):
            width = len(str(counter))
            room = config.max_length - len(separator) - width
            if room < 1:
                break
            base = preferred[:room]
            LOGGER.debug("Slug %r exceeds %d characters; retrying with base %r", candidate, config.max_length, base)
            taken = self._taken_slugs(record, config, f"{base}{separator}", reserved_slugs, unresolved_slugs)
            candidate = f"{base}{separator}{counter}"
            while candidate in taken and len(str(counter)) == width:
                counter += 1
                candidate = f"{base}{separator}{counter}"
            if candidate not in taken and len(candidate) <= config.max_length:
                return self._assign(record, config, preferred, candidate)

        raise SlugLengthExhaustedError(config.record_type, config.slug_field, config.max_length)

    def _assign(self, record: Any, config: SlugConfig, preferred: str, slug: str) -> str:
        if slug != preferred:
            self._host.set_field_value(record, config.slug_field, slug)
            LOGGER.debug("Resolved slug collision for %s: %r -> %r", config.record_type, preferred, slug)
        return slug

    def _taken_slugs(
        self,
        record: Any,
        config: SlugConfig,
        prefix: str,
        reserved: Tuple[str, ...],
        unresolved: Tuple[str, ...],
    ) -> Set[str]:
        exclude = {
            field: value
            for field, value in self._host.get_identifier_values(record).items()
            if value is not None and str(value) != ""
        }
        matches = self._host.query_records_with_field_prefix(
            config.record_type,
            config.slug_field,
            prefix,
            exclude,
        )
        counts = Counter(value for value in matches if value is not None)
        counts.subtract(value for value in unresolved if value.startswith(prefix))
        taken = {value for value, count in counts.items() if count > 0}
        taken.update(value for value in reserved if value.startswith(prefix))
        return taken


__all__ = ["UniquenessResolver"]
