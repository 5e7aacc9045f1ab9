from __future__ import annotations

import json
from typing import Any, Dict

import pytest

from sluggable.cache import cache_key
from sluggable.errors import DeferredUniquenessNotSupportedError, EmptySlugSourceError
from sluggable.listener import SlugState
from sluggable.mapping.schema import Record
from sluggable.storage.store import CONFIG_CACHE_NAME, RecordStore


def _config(tmp_path, **slug_options: Any) -> Dict[str, Any]:
    slug_field: Dict[str, Any] = {"name": "slug", "type": "string", "length": slug_options.pop("length", 64)}
    if slug_options.pop("unique_column", False):
        slug_field["unique"] = True
    return {
        "paths": {
            "data": (tmp_path / "data").as_posix(),
            "db_path": (tmp_path / "data" / "sluggable.sqlite").as_posix(),
        },
        "schemas": [
            {
                "name": "article",
                "fields": [
                    {"name": "title", "type": "string", "length": 128},
                    {"name": "body", "type": "text", "length": 4000},
                    slug_field,
                ],
                "sluggable": ["title"],
                "slugs": {"slug": slug_options},
            },
            {
                "name": "tag",
                "fields": [{"name": "label", "type": "string"}],
            },
        ],
    }


def _article(title: str, **values: Any) -> Record:
    return Record(type="article", values={"title": title, **values})


def _stored_slugs(store: RecordStore) -> list[str]:
    return [row["slug"] for row in store.fetch_rows("article")]


def test_single_insert_gets_slug(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        session = store.session()
        record = _article("Hello World")
        session.persist(record)
        assert record["slug"] == "hello-world"

        session.flush()

        assert record["id"] == 1
        assert _stored_slugs(store) == ["hello-world"]
        assert session.listener.state_of(record) is SlugState.FINALIZED


def test_batch_slugs_follow_insertion_order(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        session = store.session()
        records = [_article("Hello World") for _ in range(3)]
        session.persist_all(records)
        assert session.listener.pending_count("article") == 3

        session.flush()

        assert [record["slug"] for record in records] == ["hello-world", "hello-world-1", "hello-world-2"]
        assert _stored_slugs(store) == ["hello-world", "hello-world-1", "hello-world-2"]
        assert session.listener.pending_count() == 0


def test_sequential_persists_share_one_flush(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        session = store.session()
        first, second = _article("Same Title"), _article("Same Title")
        session.persist(first)
        session.persist(second)
        assert session.listener.state_of(first) is SlugState.FINALIZED
        assert session.listener.state_of(second) is SlugState.PENDING_UNIQUE

        session.flush()

        assert _stored_slugs(store) == ["same-title", "same-title-1"]


def test_later_flushes_see_stored_slugs(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        for _ in range(3):
            session = store.session()
            session.persist(_article("Repeated"))
            session.flush()

        assert _stored_slugs(store) == ["repeated", "repeated-1", "repeated-2"]


def test_source_change_regenerates_slug(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        session = store.session()
        taken, original = _article("Taken"), _article("Original")
        session.persist_all([taken, original])
        session.flush()

        original["title"] = "Taken"
        session.flush()

        assert original["slug"] == "taken-1"
        assert store.fetch_row("article", original["id"])["slug"] == "taken-1"
        assert taken["slug"] == "taken"


def test_loaded_record_regenerates_slug(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        session = store.session()
        session.persist(_article("Draft"))
        session.flush()

        reader = store.session()
        record = reader.find("article", 1)
        record["title"] = "Published Piece"
        reader.flush()

        assert store.fetch_row("article", 1)["slug"] == "published-piece"


def test_unrelated_change_keeps_slug(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        session = store.session()
        record = _article("Stable")
        session.persist(record)
        session.flush()

        record["body"] = "New body"
        session.flush()

        row = store.fetch_row("article", record["id"])
        assert row["slug"] == "stable"
        assert row["body"] == "New body"


def test_non_updatable_slug_survives_title_change(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path, updatable=False)) as store:
        session = store.session()
        record = _article("First Title")
        session.persist(record)
        session.flush()

        record["title"] = "Second Title"
        session.flush()

        row = store.fetch_row("article", record["id"])
        assert row["title"] == "Second Title"
        assert row["slug"] == "first-title"


def test_non_unique_slugs_may_repeat(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path, unique=False)) as store:
        session = store.session()
        session.persist_all([_article("Twin"), _article("Twin")])
        session.flush()

        assert _stored_slugs(store) == ["twin", "twin"]


def test_slugs_never_exceed_column_length(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path, length=8)) as store:
        session = store.session()
        session.persist_all([_article("Abcdefgh Ijk") for _ in range(3)])
        session.flush()

        slugs = _stored_slugs(store)
        assert slugs == ["abcdefgh", "abcdef-1", "abcdef-2"]
        assert all(len(slug) <= 8 for slug in slugs)


def test_unique_column_rejects_deferred_batch(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path, unique_column=True)) as store:
        session = store.session()
        records = [_article("Clash"), _article("Clash")]

        with pytest.raises(DeferredUniquenessNotSupportedError):
            session.persist_all(records)

        assert session.listener.pending_count() == 0
        assert not session.has_pending_insertions("article")
        session.flush()
        assert _stored_slugs(store) == []

        session.persist(records[0])
        session.flush()
        assert _stored_slugs(store) == ["clash"]


def test_failed_flush_rolls_back_insertions(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        session = store.session()
        existing = _article("Existing")
        session.persist(existing)
        session.flush()

        fresh = _article("Fresh")
        session.persist(fresh)
        existing["title"] = "   "

        with pytest.raises(EmptySlugSourceError):
            session.flush()

        assert "id" not in fresh.values
        assert existing["slug"] == "existing"
        assert _stored_slugs(store) == ["existing"]


def test_find_and_all_share_identity(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        session = store.session()
        session.persist_all([_article("One"), _article("Two")])
        session.flush()

        reader = store.session()
        found = reader.find("article", 1)
        listed = reader.all("article")

        assert listed[0] is found
        assert [record["slug"] for record in listed] == ["one", "two"]
        assert reader.find("article", 99) is None


def test_prefix_lookup_is_case_sensitive(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        with store.transaction():
            first = store.insert_row("article", {"title": "x", "slug": "Hello-World"})
            store.insert_row("article", {"title": "x", "slug": "hello-world-1"})
            store.insert_row("article", {"title": "x", "slug": "hello_world"})

        assert store.select_prefix("article", "slug", "hello-world") == ["hello-world-1"]
        assert store.select_prefix("article", "slug", "Hello", {"id": first}) == []


def test_types_without_slug_are_persisted_untouched(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        session = store.session()
        tag = Record(type="tag", values={"label": "Python"})
        session.persist(tag)
        session.flush()

        assert store.fetch_row("tag", tag["id"]) == {"id": 1, "label": "Python"}


def test_unknown_fields_are_rejected(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        with pytest.raises(ValueError):
            store.session().persist(_article("Hello", colour="red"))


def test_config_cache_is_written_when_enabled(tmp_path) -> None:
    config = _config(tmp_path)
    config["cache"] = {"enabled": True}
    config["paths"]["cache"] = (tmp_path / "cache").as_posix()

    with RecordStore.from_config(config) as store:
        resolved = store.resolver.resolve("article")

    cache_file = tmp_path / "cache" / CONFIG_CACHE_NAME
    payload = json.loads(cache_file.read_text(encoding="utf-8"))
    assert payload[cache_key("article")]["slug_field"] == "slug"

    with RecordStore.from_config(config) as store:
        assert store.resolver.resolve("article") == resolved


def test_records_renamed_alike_in_one_flush_get_distinct_slugs(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        session = store.session()
        alpha, beta = _article("Alpha"), _article("Beta")
        session.persist_all([alpha, beta])
        session.flush()

        alpha["title"] = "Same"
        beta["title"] = "Same"
        session.flush()

        assert [alpha["slug"], beta["slug"]] == ["same", "same-1"]
        assert _stored_slugs(store) == ["same", "same-1"]


def test_batch_record_without_siblings_of_its_type_resolves_immediately(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path, unique_column=True)) as store:
        session = store.session()
        session.persist(_article("Taken"))
        session.flush()

        article = _article("Taken")
        tag = Record(type="tag", values={"label": "news"})
        session.persist_all([article, tag])

        assert session.listener.state_of(article) is SlugState.FINALIZED
        assert article["slug"] == "taken-1"
        assert session.listener.pending_count() == 0

        session.flush()
        assert _stored_slugs(store) == ["taken", "taken-1"]
        assert store.fetch_row("tag", tag["id"])["label"] == "news"


def test_failed_flush_hands_back_records_as_persisted(tmp_path) -> None:
    with RecordStore.from_config(_config(tmp_path)) as store:
        session = store.session()
        existing = _article("Existing")
        session.persist(existing)
        session.flush()

        batch = [_article("Same"), _article("Same")]
        session.persist_all(batch)
        existing["title"] = ""

        with pytest.raises(EmptySlugSourceError):
            session.flush()

        assert [record.values for record in batch] == [{"title": "Same"}, {"title": "Same"}]
        assert all(session.listener.state_of(record) is SlugState.UNTOUCHED for record in batch)
        assert not session.has_pending_insertions("article")
        assert _stored_slugs(store) == ["existing"]

        existing["title"] = "Existing"
        session.persist_all(batch)
        session.flush()
        assert _stored_slugs(store) == ["existing", "same", "same-1"]
