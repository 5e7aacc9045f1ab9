"""Unit of work that batches record writes and drives the slug listener."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..host import ChangeSet
from ..listener import SluggableListener
from ..mapping.schema import Record

if TYPE_CHECKING:
    from .store import RecordStore

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _ManagedRecord:
    """Persisted record plus the field values last written to the database."""

    record: Record
    snapshot: Dict[str, Any]


class Session:
    """Tracks new and changed records and writes them in one transaction.

    ``persist`` accepts records for insertion, ``flush`` executes the pending
    insertions in order, then writes the field changes of managed records.
    The session implements :class:`~sluggable.host.PersistenceHost` for its
    own :class:`SluggableListener`.
    """

    def __init__(self, store: "RecordStore") -> None:
        self._store = store
        self._registry = store.registry
        self.listener = SluggableListener(self, store.resolver)
        self._insertions: List[Record] = []
        # batch members not yet accepted by persist_all
        self._accepting: List[Record] = []
        self._originals: Dict[int, Tuple[Record, Dict[str, Any]]] = {}
        self._managed: Dict[int, _ManagedRecord] = {}
        self._identity_map: Dict[Tuple[str, Any], Record] = {}
        self._change_sets: Dict[int, Dict[str, Tuple[Any, Any]]] = {}

    # Unit of work --------------------------------------------------------------------
    def persist(self, record: Record) -> None:
        """Accept ``record`` for insertion on the next flush."""
        if self._is_known(record):
            return
        self._validate(record)
        self._remember(record)
        try:
            self.listener.pre_insert(record)
        except Exception:
            self._restore([record])
            raise
        self._insertions.append(record)

    def persist_all(self, records: Iterable[Record]) -> None:
        """Accept a batch of records; each sees the rest of the batch pending."""
        batch: List[Record] = []
        for record in records:
            if not self._is_known(record) and all(item is not record for item in batch):
                batch.append(record)
        for record in batch:
            self._validate(record)

        accepted: List[Record] = []
        try:
            for index, record in enumerate(batch):
                self._accepting = batch[index + 1 :]
                self._remember(record)
                self.listener.pre_insert(record)
                self._insertions.append(record)
                accepted.append(record)
        except Exception:
            for record in batch:
                self.listener.discard(record)
            self._insertions = [item for item in self._insertions if all(item is not record for record in accepted)]
            self._restore(batch)
            raise
        finally:
            self._accepting = []

    def flush(self) -> None:
        """Write pending insertions and changes of managed records.

        On failure the transaction is rolled back and every record persisted
        since the last successful flush is handed back in the state it was
        persisted in: no identifier, no generated slug and no longer pending.
        Persist those records again to retry.
        """
        snapshots = {key: dict(managed.snapshot) for key, managed in self._managed.items()}
        inserted: List[Record] = []
        try:
            with self._store.transaction():
                self._execute_insertions(inserted)
                self._compute_change_sets()
                self.listener.on_flush()
                self._execute_updates()
        except Exception:
            self._rollback(inserted, snapshots)
            raise
        self._originals.clear()
        LOGGER.debug("Flushed %d insertion(s)", len(inserted))

    def find(self, record_type: str, identifier: Any) -> Optional[Record]:
        key = (record_type, identifier)
        if key in self._identity_map:
            return self._identity_map[key]
        row = self._store.fetch_row(record_type, identifier)
        if row is None:
            return None
        record = Record(type=record_type, values=row)
        self._manage(record)
        return record

    def all(self, record_type: str) -> List[Record]:
        identifier = self._registry.identifier(record_type)
        records: List[Record] = []
        for row in self._store.fetch_rows(record_type):
            key = (record_type, row[identifier])
            record = self._identity_map.get(key)
            if record is None:
                record = Record(type=record_type, values=row)
                self._manage(record)
            records.append(record)
        return records

    # PersistenceHost -----------------------------------------------------------------
    def get_record_type(self, record: Record) -> str:
        return record.type

    def get_field_value(self, record: Record, field: str) -> Any:
        return record.values.get(field)

    def set_field_value(self, record: Record, field: str, value: Any) -> None:
        record.values[field] = value

    def get_identifier_values(self, record: Record) -> Mapping[str, Any]:
        identifier = self._registry.identifier(record.type)
        value = record.values.get(identifier)
        if value is None:
            return {}
        return {identifier: value}

    def has_pending_insertions(self, record_type: str) -> bool:
        pending = (*self._insertions, *self._accepting)
        return any(record.type == record_type for record in pending)

    def schedule_field_update(self, record: Record, field: str, old_value: Any, new_value: Any) -> None:
        record.values[field] = new_value
        managed = self._managed.get(id(record))
        if managed is None:
            return
        identifier = self._registry.identifier(record.type)
        self._store.update_row(record.type, record.values[identifier], {field: new_value})
        managed.snapshot[field] = new_value
        LOGGER.debug("Applied %s.%s update %r -> %r", record.type, field, old_value, new_value)

    def recompute_change_set(self, record: Record) -> None:
        managed = self._managed.get(id(record))
        if managed is not None:
            self._change_sets[id(record)] = self._diff(managed)

    def scheduled_updates(self) -> List[Record]:
        return [
            managed.record
            for key, managed in self._managed.items()
            if self._change_sets.get(key)
        ]

    def get_change_set(self, record: Record) -> ChangeSet:
        return dict(self._change_sets.get(id(record), {}))

    def query_records_with_field_prefix(
        self,
        record_type: str,
        field: str,
        prefix: str,
        exclude: Mapping[str, Any],
    ) -> List[str]:
        return self._store.select_prefix(record_type, field, prefix, exclude)

    # Internals -----------------------------------------------------------------------
    def _execute_insertions(self, inserted: List[Record]) -> None:
        while self._insertions:
            record = self._insertions.pop(0)
            identifier = self._registry.identifier(record.type)
            values = {name: value for name, value in record.values.items() if name != identifier}
            record.values[identifier] = self._store.insert_row(record.type, values)
            self._manage(record)
            inserted.append(record)
            self.listener.post_insert(record)

    def _compute_change_sets(self) -> None:
        self._change_sets = {}
        for key, managed in self._managed.items():
            changes = self._diff(managed)
            if changes:
                self._change_sets[key] = changes

    def _execute_updates(self) -> None:
        for key, changes in self._change_sets.items():
            if not changes:
                continue
            managed = self._managed[key]
            record = managed.record
            identifier = self._registry.identifier(record.type)
            new_values = {field: new for field, (_, new) in changes.items()}
            self._store.update_row(record.type, record.values[identifier], new_values)
            managed.snapshot.update(new_values)
        self._change_sets = {}

    def _diff(self, managed: _ManagedRecord) -> Dict[str, Tuple[Any, Any]]:
        record = managed.record
        identifier = self._registry.identifier(record.type)
        changes: Dict[str, Tuple[Any, Any]] = {}
        for field in self._registry.fields(record.type):
            if field == identifier:
                continue
            old = managed.snapshot.get(field)
            new = record.values.get(field)
            if old != new:
                changes[field] = (old, new)
        return changes

    def _manage(self, record: Record) -> None:
        identifier = self._registry.identifier(record.type)
        self._managed[id(record)] = _ManagedRecord(record=record, snapshot=dict(record.values))
        self._identity_map[(record.type, record.values[identifier])] = record

    def _is_known(self, record: Record) -> bool:
        return id(record) in self._managed or any(item is record for item in self._insertions)

    def _validate(self, record: Record) -> None:
        schema = self._registry.get(record.type)
        if schema.mapped_superclass:
            raise ValueError(f"Record type '{record.type}' is a mapped superclass and cannot be persisted")
        known = set(self._registry.fields(record.type)) | {schema.identifier}
        unknown = sorted(set(record.values) - known)
        if unknown:
            raise ValueError(f"Unknown field(s) for '{record.type}': {', '.join(unknown)}")

    def _remember(self, record: Record) -> None:
        self._originals.setdefault(id(record), (record, dict(record.values)))

    def _restore(self, records: Iterable[Record]) -> None:
        for record in records:
            entry = self._originals.get(id(record))
            if entry is None or entry[0] is not record:
                continue
            del self._originals[id(record)]
            record.values.clear()
            record.values.update(entry[1])

    def _rollback(self, inserted: List[Record], snapshots: Dict[int, Dict[str, Any]]) -> None:
        self._insertions.clear()
        self.listener.discard_pending()
        for record in inserted:
            identifier = self._registry.identifier(record.type)
            self._identity_map.pop((record.type, record.values.get(identifier)), None)
            self._managed.pop(id(record), None)
        persisted = [record for record, _ in self._originals.values()]
        for record in persisted:
            self.listener.discard(record)
        self._restore(persisted)
        for key, snapshot in snapshots.items():
            managed = self._managed.get(key)
            if managed is not None:
                managed.snapshot = snapshot
        self._change_sets = {}


__all__ = ["Session"]
