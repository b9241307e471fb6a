from __future__ import annotations

from pathlib import Path

import pytest

from seedcrawl.config import SinkConfig
from seedcrawl.infra.storage import SQLiteManager
from seedcrawl.sink import SQLiteStoreSink, build_sink


def _sink(tmp_path: Path, **kwargs) -> SQLiteStoreSink:
    return SQLiteStoreSink(tmp_path / "store.db", SQLiteManager(), sleep=lambda _: None, **kwargs)


def test_partial_batch_accepts_valid_records(tmp_path: Path, make_record) -> None:
    sink = _sink(tmp_path)
    records = [make_record(index) for index in range(1, 10)]
    records.append(make_record(10, poster_url="not a url"))

    result = sink.submit_batch(records)

    assert len(result.accepted) == 9
    assert len(result.rejected) == 1
    rejected, reason = result.rejected[0]
    assert rejected.title == "Sample Torrent 10"
    assert reason.startswith("downstream_validation")
    assert sink.count("torrent") == 9
    assert sink.count("torrent_file") == 9
    assert sink.count("torrent_tracker") == 9


def test_same_info_hash_updates_counts(tmp_path: Path, make_record) -> None:
    sink = _sink(tmp_path)
    sink.submit_batch([make_record(1, seeders=5, leechers=1)])
    sink.submit_batch([make_record(1, seeders=99, leechers=7, title="Sample Torrent 1 REPACK")])

    assert sink.count("torrent") == 1
    row = sink.find(info_hash=f"{1:040x}")
    assert row["seeders"] == 99
    assert row["leechers"] == 7
    assert row["title"] == "Sample Torrent 1"
    assert sink.count("torrent_file") == 1


def test_magnet_only_records_upsert_by_magnet(tmp_path: Path, make_record) -> None:
    sink = _sink(tmp_path)
    magnet = "magnet:?dn=no-hash-here"
    sink.submit_batch([make_record(1, info_hash=None, magnet_link=magnet, seeders=1)])
    sink.submit_batch([make_record(2, info_hash=None, magnet_link=magnet, seeders=3)])

    assert sink.count("torrent") == 1
    assert sink.find(magnet_link=magnet)["seeders"] == 3


def test_categories_are_matched_case_insensitively(tmp_path: Path, make_record) -> None:
    sink = _sink(tmp_path)
    sink.submit_batch(
        [
            make_record(1, category_name="TV Shows"),
            make_record(2, category_name="tv shows"),
            make_record(3, category_name="Music"),
        ]
    )
    assert sink.categories() == [
        {"name": "TV Shows", "slug": "tv-shows"},
        {"name": "Music", "slug": "music"},
    ]


def test_oversized_batch_is_refused(tmp_path: Path, make_record) -> None:
    sink = _sink(tmp_path, batch_size=2)
    assert sink.max_batch_size == 2
    with pytest.raises(ValueError):
        sink.submit_batch([make_record(1), make_record(2), make_record(3)])
    assert sink.submit_batch([]).accepted == []


def test_build_sink_defaults_to_local_store(tmp_path: Path) -> None:
    sink = build_sink(SinkConfig(), base_dir=tmp_path)
    assert isinstance(sink, SQLiteStoreSink)
    assert sink.db_path == (tmp_path / "data" / "store.db").resolve()
    assert sink.max_batch_size == 100
    assert sink.ping() is True
