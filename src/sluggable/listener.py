"""Lifecycle coordinator that keeps slugs in sync with a host's write cycle."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple

from .builder import SlugBuilder
from .configuration import SlugConfig, SlugConfigurationResolver
from .errors import DeferredUniquenessNotSupportedError, SluggableError
from .host import PersistenceHost
from .uniqueness import UniquenessResolver

LOGGER = logging.getLogger(__name__)


class SlugState(str, Enum):
    """Progress of a record through slug generation."""

    UNTOUCHED = "UNTOUCHED"
    CANDIDATE_BUILT = "CANDIDATE_BUILT"
    PENDING_UNIQUE = "PENDING_UNIQUE"
    FINALIZED = "FINALIZED"


@dataclass(slots=True)
class PendingSlugEntry:
    """Inserted record whose unique slug is resolved once its batch settles."""

    record: Any
    config: SlugConfig


class SluggableListener:
    """Drive slug building and uniqueness from the host's lifecycle callbacks.

    One listener belongs to one host session. Records inserted while other
    insertions of the same type are pending keep their candidate slug during
    the insert and are queued; the queue drains in insertion order as soon as
    the host reports the batch complete.
    """

    def __init__(self, host: PersistenceHost, resolver: SlugConfigurationResolver) -> None:
        self._host = host
        self._resolver = resolver
        self._builder = SlugBuilder(host)
        self._uniqueness = UniquenessResolver(host)
        self._pending: Dict[str, Deque[PendingSlugEntry]] = {}
        # keyed by id() but holding the record itself, so an id cannot be reused while tracked
        self._states: Dict[int, Tuple[Any, SlugState]] = {}

    @property
    def resolver(self) -> SlugConfigurationResolver:
        return self._resolver

    def state_of(self, record: Any) -> SlugState:
        entry = self._states.get(id(record))
        if entry is None or entry[0] is not record:
            return SlugState.UNTOUCHED
        return entry[1]

    def pending_count(self, record_type: Optional[str] = None) -> int:
        if record_type is not None:
            return len(self._pending.get(record_type, ()))
        return sum(len(queue) for queue in self._pending.values())

    def pre_insert(self, record: Any) -> None:
        record_type = self._host.get_record_type(record)
        config = self._resolver.resolve(record_type)
        if config is None:
            return

        previous = self._host.get_field_value(record, config.slug_field)
        try:
            slug = self._builder.build(record, config, False)
            self._host.set_field_value(record, config.slug_field, slug)
            self._set_state(record, SlugState.CANDIDATE_BUILT)

            if not config.unique:
                self._set_state(record, SlugState.FINALIZED)
                return

            if self._host.has_pending_insertions(record_type):
                if config.unique_constraint:
                    raise DeferredUniquenessNotSupportedError(record_type, config.slug_field)
                self._pending.setdefault(record_type, deque()).append(PendingSlugEntry(record, config))
                self._set_state(record, SlugState.PENDING_UNIQUE)
                LOGGER.debug("Deferred unique slug for %s until pending insertions settle", record_type)
                return

            self._uniqueness.make_unique(record, config)
            self._set_state(record, SlugState.FINALIZED)
        except SluggableError:
            self._host.set_field_value(record, config.slug_field, previous)
            self._forget(record)
            raise

    def post_insert(self, record: Any) -> None:
        record_type = self._host.get_record_type(record)
        queue = self._pending.get(record_type)
        if not queue or self._host.has_pending_insertions(record_type):
            return

        finalized: List[str] = []
        while queue:
            entry = queue.popleft()
            field = entry.config.slug_field
            candidate = self._host.get_field_value(entry.record, field)
            # siblings still queued were inserted with their candidates and get resolved next
            unresolved = [self._host.get_field_value(item.record, item.config.slug_field) for item in queue]
            try:
                slug = self._uniqueness.make_unique(
                    entry.record,
                    entry.config,
                    reserved=finalized,
                    unresolved=unresolved,
                )
            except SluggableError:
                self._host.set_field_value(entry.record, field, candidate)
                self._forget(entry.record)
                raise
            finalized.append(slug)
            self._host.schedule_field_update(entry.record, field, candidate, slug)
            self._set_state(entry.record, SlugState.FINALIZED)
        LOGGER.debug("Finalized %d deferred slug(s) for %s", len(finalized), record_type)

    def on_flush(self) -> None:
        # updates are written after this pass, so slugs handed out here are invisible to queries
        finalized: Dict[str, List[str]] = {}
        for record in list(self._host.scheduled_updates()):
            config = self._resolver.resolve(self._host.get_record_type(record))
            if config is None or not config.updatable:
                continue

            change_set = self._host.get_change_set(record)
            previous = self._host.get_field_value(record, config.slug_field)
            try:
                slug = self._builder.build(record, config, change_set)
                if slug is None:
                    continue
                self._host.set_field_value(record, config.slug_field, slug)
                if config.unique:
                    slug = self._uniqueness.make_unique(
                        record,
                        config,
                        reserved=finalized.get(config.record_type, ()),
                    )
            except SluggableError:
                self._host.set_field_value(record, config.slug_field, previous)
                raise
            finalized.setdefault(config.record_type, []).append(slug)
            self._set_state(record, SlugState.FINALIZED)
            self._host.recompute_change_set(record)
            LOGGER.debug("Regenerated slug %r for updated %s", slug, config.record_type)

    def discard(self, record: Any) -> None:
        """Drop the queued entry and state of a single record."""
        for queue in self._pending.values():
            for entry in list(queue):
                if entry.record is record:
                    queue.remove(entry)
        self._forget(record)

    def discard_pending(self) -> None:
        """Forget queued records, e.g. after the host rolled back its transaction."""
        for queue in self._pending.values():
            for entry in queue:
                self._forget(entry.record)
        self._pending.clear()

    def _set_state(self, record: Any, state: SlugState) -> None:
        self._states[id(record)] = (record, state)

    def _forget(self, record: Any) -> None:
        entry = self._states.get(id(record))
        if entry is not None and entry[0] is record:
            del self._states[id(record)]


__all__ = ["PendingSlugEntry", "SlugState", "SluggableListener"]
