import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from magicaltsutsunlist import catalog_sync
from magicaltsutsunlist.errors import ValidationError
from magicaltsutsunlist.models import Anime, Manga
from magicaltsutsunlist.services import ANIME, MANGA, sync_catalog, upsert_reference_rows


def seed(catalog, kind, titles):
    return [catalog.add_item(kind, {"title": title, "genres": []}) for title in titles]


def anime_ids(db):
    return set(db.execute(select(Anime.anime_id)).scalars().all())


def test_sync_inserts_every_catalog_id(db, catalog):
    ids = seed(catalog, "anime", ["Ojamajo Doremi", "Cardcaptor Sakura", "Sailor Moon"])

    report = sync_catalog(db, catalog, ANIME)

    assert report.total == 3
    assert report.inserted == 3
    assert report.failed == 0
    assert anime_ids(db) == set(ids)


def test_sync_twice_changes_nothing(db, catalog):
    seed(catalog, "anime", ["Ojamajo Doremi", "Cardcaptor Sakura"])
    sync_catalog(db, catalog, ANIME)
    before = anime_ids(db)

    report = sync_catalog(db, catalog, ANIME)

    assert report.inserted == 0
    assert report.existing == 2
    assert anime_ids(db) == before


def test_sync_picks_up_new_items(db, catalog):
    seed(catalog, "anime", ["Ojamajo Doremi"])
    sync_catalog(db, catalog, ANIME)
    seed(catalog, "anime", ["Tokyo Mew Mew"])

    report = sync_catalog(db, catalog, ANIME)

    assert report.inserted == 1
    assert report.existing == 1


def test_kinds_use_separate_reference_tables(db, catalog):
    seed(catalog, "manga", ["Yotsuba&!"])

    sync_catalog(db, catalog, MANGA)

    assert anime_ids(db) == set()
    assert len(db.execute(select(Manga)).scalars().all()) == 1


def test_failed_insert_does_not_abort_the_batch(db, monkeypatch):
    real_commit = db.commit
    calls = []

    def flaky_commit():
        calls.append(1)
        if len(calls) == 2:
            raise OperationalError("INSERT", {}, Exception("lost connection"))
        real_commit()

    monkeypatch.setattr(db, "commit", flaky_commit)
    report = upsert_reference_rows(db, ANIME, ["a", "b", "c"])

    assert report.total == 3
    assert report.inserted == 2
    assert report.failed == 1
    assert anime_ids(db) == {"a", "c"}

    monkeypatch.setattr(db, "commit", real_commit)
    retry = upsert_reference_rows(db, ANIME, ["a", "b", "c"])
    assert retry.inserted == 1
    assert anime_ids(db) == {"a", "b", "c"}


def test_sync_once_runs_requested_kinds(session_factory, catalog, monkeypatch):
    seed(catalog, "anime", ["Ojamajo Doremi"])
    seed(catalog, "manga", ["Yotsuba&!", "Azumanga Daioh"])
    monkeypatch.setattr(catalog_sync, "SessionLocal", session_factory)

    reports = catalog_sync.sync_once(catalog, ["anime", "manga"])

    assert [(r.kind, r.inserted) for r in reports] == [("anime", 1), ("manga", 2)]


def test_catalog_store_round_trip(catalog):
    catalog_id = catalog.add_item("anime", {"_id": "ignored", "title": "Ojamajo Doremi"})

    item = catalog.get_item("anime", catalog_id)

    assert item["_id"] == catalog_id
    assert item["title"] == "Ojamajo Doremi"
    assert catalog.all_items("anime") == [item]
    assert catalog.get_item("anime", "000000000000000000000000") is None


def test_catalog_store_rejects_untitled_items(catalog):
    with pytest.raises(ValidationError):
        catalog.add_item("anime", {"synopsis": "No title"})
    with pytest.raises(ValidationError):
        catalog.all_items("novel")


def test_id_stored_by_a_concurrent_sync_counts_as_existing(db, session_factory):
    def catalog_ids():
        # Another sync commits "a" after this run has read the reference table.
        other = session_factory()
        try:
            other.add(Anime(anime_id="a"))
            other.commit()
        finally:
            other.close()
        yield "a"
        yield "b"

    report = upsert_reference_rows(db, ANIME, catalog_ids())

    assert (report.total, report.inserted, report.existing, report.failed) == (2, 1, 1, 0)
    assert anime_ids(db) == {"a", "b"}
