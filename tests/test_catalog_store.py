import json
import os
import shutil
import stat
from pathlib import Path

import pytest

from invite_crawler.db import catalog_store as catalog_store_mod
from invite_crawler.db.catalog_store import CatalogStore
from invite_crawler.db.codecs import JsonCatalogCodec, LegacyListCodec
from invite_crawler.errors import CatalogCorruptionError, CatalogSaveError
from invite_crawler.models.entry import Entry
from invite_crawler.services.recovery import BackoffRetry


FIXTURES = Path(__file__).parent / "fixtures"


def sample_entries():
    return [
        Entry(id="beta", observed_at=20, payload={"code": "beta", "guild": {"id": "2", "name": "Beta"}}),
        Entry(id="alpha", observed_at=10, payload={"code": "alpha", "approximate_member_count": 7}),
    ]


def no_sleep_retry(**kw):
    return BackoffRetry(sleep=lambda s: None, **kw)


def test_missing_file_is_an_empty_catalog(tmp_path):
    store = CatalogStore(str(tmp_path / "guilds.json"))
    assert store.load() == []


def test_save_then_load_round_trip_sorted_by_id(tmp_path):
    store = CatalogStore(str(tmp_path / "guilds.json"), retry=no_sleep_retry())
    store.save(sample_entries())
    loaded = store.load()
    assert [e.id for e in loaded] == ["alpha", "beta"]
    assert {e.id: e for e in loaded} == {e.id: e for e in sample_entries()}


def test_save_writes_current_envelope_and_no_temp_files(tmp_path):
    path = tmp_path / "guilds.json"
    store = CatalogStore(str(path), retry=no_sleep_retry())
    store.save(sample_entries())
    doc = json.loads(path.read_text(encoding="utf-8"))
    assert doc["format"] == "invite-catalog"
    assert doc["version"] == 2
    assert len(doc["entries"]) == 2
    assert os.listdir(tmp_path) == ["guilds.json"]


def test_corrupt_file_raises_corruption_error(tmp_path):
    path = tmp_path / "guilds.json"
    path.write_bytes(b"\x00\x01 not a catalog")
    store = CatalogStore(str(path))
    with pytest.raises(CatalogCorruptionError) as ei:
        store.load()
    assert not ei.value.unreadable
    # Loading never touches the file
    assert path.read_bytes() == b"\x00\x01 not a catalog"


def test_invalid_entries_are_corruption(tmp_path):
    path = tmp_path / "guilds.json"
    path.write_text(json.dumps({"format": "invite-catalog", "version": 2, "entries": [{"id": "x"}]}), encoding="utf-8")
    with pytest.raises(CatalogCorruptionError):
        CatalogStore(str(path)).load()


def test_unopenable_catalog_is_reported_as_unreadable(tmp_path):
    path = tmp_path / "guilds.json"
    path.mkdir()
    with pytest.raises(CatalogCorruptionError) as ei:
        CatalogStore(str(path)).load()
    assert ei.value.unreadable


def test_legacy_catalog_is_read_and_migrated_on_save(tmp_path):
    path = tmp_path / "guilds.json"
    shutil.copy(FIXTURES / "legacy_catalog.json", path)
    store = CatalogStore(str(path), retry=no_sleep_retry())
    loaded = store.load()
    assert [e.id for e in loaded] == ["alpha", "zeta"]
    assert loaded[1].observed_at == 1600000500
    assert loaded[0].payload["guild"]["name"] == "Alpha"

    store.save(loaded)
    doc = json.loads(path.read_text(encoding="utf-8"))
    assert doc["version"] == 2
    assert store.load() == loaded


def test_legacy_codec_encode_matches_first_release_layout():
    data = LegacyListCodec().encode(sample_entries())
    rows = json.loads(data)
    assert rows[0] == {"update_timestamp": 20, "entry_id": "beta", "invite": sample_entries()[0].payload}


def test_json_codec_rejects_other_versions():
    data = json.dumps({"format": "invite-catalog", "version": 99, "entries": []}).encode()
    with pytest.raises(ValueError):
        JsonCatalogCodec().decode(data)


def test_save_retries_until_write_succeeds(tmp_path, monkeypatch):
    path = tmp_path / "guilds.json"
    real_replace = os.replace
    calls = {"n": 0}

    def flaky_replace(src, dst):
        calls["n"] += 1
        if calls["n"] < 3:
            raise OSError(28, "No space left on device")
        return real_replace(src, dst)

    monkeypatch.setattr(catalog_store_mod.os, "replace", flaky_replace)
    waits = []
    retry = BackoffRetry(sleep=waits.append, initial=1, factor=2)
    store = CatalogStore(str(path), retry=retry)

    attempts = store.save(sample_entries())
    assert attempts == 3
    assert waits == [1.0, 2.0]
    assert [e.id for e in store.load()] == ["alpha", "beta"]
    # Failed attempts leave no temp files behind
    assert os.listdir(tmp_path) == ["guilds.json"]


def test_failed_save_keeps_previous_catalog(tmp_path, monkeypatch):
    path = tmp_path / "guilds.json"
    store = CatalogStore(str(path), retry=no_sleep_retry(max_attempts=2))
    store.save(sample_entries()[:1])

    def broken_replace(src, dst):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(catalog_store_mod.os, "replace", broken_replace)
    with pytest.raises(CatalogSaveError):
        store.save(sample_entries())
    monkeypatch.undo()
    assert [e.id for e in store.load()] == ["beta"]


def test_save_keeps_existing_file_mode(tmp_path):
    path = tmp_path / "guilds.json"
    store = CatalogStore(str(path), retry=no_sleep_retry())
    store.save(sample_entries()[:1])
    os.chmod(path, 0o644)

    store.save(sample_entries())
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o644
    assert [e.id for e in store.load()] == ["alpha", "beta"]
