"""Capabilities the slug core requires from a host persistence layer."""

from __future__ import annotations

from typing import Any, Iterable, List, Literal, Mapping, Protocol, Tuple, Union

ChangeSet = Mapping[str, Tuple[Any, Any]]
"""Mapping of changed field name to its ``(old, new)`` values."""

NewRecord = Literal[False]
"""Marker passed instead of a change set for records that are not tracked yet."""

BuildChanges = Union[ChangeSet, NewRecord]


class PersistenceHost(Protocol):
    """Narrow interface over the unit of work that stores records.

    Implementations call the :class:`~sluggable.listener.SluggableListener`
    entry points at the matching points of their write pipeline: ``pre_insert``
    when a record is accepted for insertion, ``post_insert`` after each
    executed insertion and ``on_flush`` before update change sets are written.
    Field updates requested through :meth:`schedule_field_update` must be
    visible to :meth:`query_records_with_field_prefix` within the same cycle.
    """

    def get_record_type(self, record: Any) -> str:
        ...

    def get_field_value(self, record: Any, field: str) -> Any:
        ...

    def set_field_value(self, record: Any, field: str, value: Any) -> None:
        ...

    def get_identifier_values(self, record: Any) -> Mapping[str, Any]:
        ...

    def has_pending_insertions(self, record_type: str) -> bool:
        ...

    def schedule_field_update(self, record: Any, field: str, old_value: Any, new_value: Any) -> None:
        ...

    def recompute_change_set(self, record: Any) -> None:
        ...

    def scheduled_updates(self) -> Iterable[Any]:
        ...

    def get_change_set(self, record: Any) -> ChangeSet:
        ...

    def query_records_with_field_prefix(
        self,
        record_type: str,
        field: str,
        prefix: str,
        exclude: Mapping[str, Any],
    ) -> List[str]:
        ...


__all__ = ["BuildChanges", "ChangeSet", "NewRecord", "PersistenceHost"]
