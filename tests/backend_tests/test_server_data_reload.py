import server


def _dataset(req_id):
    return {
        "requirements": {req_id: {"id": req_id}},
        "requirement_order": [req_id],
        "default_requirements_id": req_id,
        "course_type_master": [],
    }


def test_reload_skips_when_mtime_unchanged(monkeypatch):
    monkeypatch.setattr(server, "_data_mtime", 100.0, raising=False)
    monkeypatch.setattr(server, "_data_file_mtime", lambda _path: 100.0)

    called = {"count": 0}

    def fake_load(_path):
        called["count"] += 1
        return {}

    monkeypatch.setattr(server, "_load", fake_load)

    changed = server._reload_data_if_changed()
    assert changed is False
    assert called["count"] == 0


def test_reload_swaps_runtime_data_when_mtime_advances(monkeypatch):
    old_data = _dataset("old-2023")
    new_data = _dataset("new-2024")

    monkeypatch.setattr(server, "_data", old_data, raising=False)
    monkeypatch.setattr(server, "_data_mtime", 100.0, raising=False)
    monkeypatch.setattr(server, "_data_file_mtime", lambda _path: 200.0)
    monkeypatch.setattr(server, "_load", lambda _path: new_data)

    server._status_response_cache.set("status:stale", {"mode": "status"})
    changed = server._reload_data_if_changed()
    assert changed is True
    assert server._data is new_data
    assert server._data_mtime == 200.0
    assert server._status_response_cache.get("status:stale") is None


def test_reload_failure_keeps_previous_data(monkeypatch):
    old_data = _dataset("old-2023")

    monkeypatch.setattr(server, "_data", old_data, raising=False)
    monkeypatch.setattr(server, "_data_mtime", 100.0, raising=False)
    monkeypatch.setattr(server, "_data_file_mtime", lambda _path: 200.0)

    def boom(_path):
        raise RuntimeError("reload failed")

    monkeypatch.setattr(server, "_load", boom)

    changed = server._reload_data_if_changed()
    assert changed is False
    assert server._data is old_data
    assert server._data_mtime == 100.0


def test_forced_reload_ignores_mtime(monkeypatch):
    new_data = _dataset("forced-2024")
    monkeypatch.setattr(server, "_data", _dataset("old-2023"), raising=False)
    monkeypatch.setattr(server, "_data_mtime", 100.0, raising=False)
    monkeypatch.setattr(server, "_data_file_mtime", lambda _path: 100.0)
    monkeypatch.setattr(server, "_load", lambda _path: new_data)

    assert server._reload_data_if_changed(force=True) is True
    assert server._data is new_data


def test_data_file_mtime_tracks_nested_json(tmp_path):
    req_dir = tmp_path / "requirements"
    req_dir.mkdir()
    (req_dir / "index.json").write_text("{}", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
    assert server._data_file_mtime(str(tmp_path)) == (req_dir / "index.json").stat().st_mtime


def test_data_file_mtime_missing_path(tmp_path):
    assert server._data_file_mtime(str(tmp_path / "nope")) is None


class TestLruResponseCache:
    def test_evicts_least_recently_used(self):
        cache = server._LruResponseCache(2)
        cache.set("a", {"v": 1})
        cache.set("b", {"v": 2})
        cache.get("a")
        cache.set("c", {"v": 3})
        assert cache.get("b") is None
        assert cache.get("a") == {"v": 1}
        assert cache.get("c") == {"v": 3}

    def test_payload_hash_ignores_key_order(self):
        assert server._stable_payload_hash({"a": 1, "b": 2}) == server._stable_payload_hash({"b": 2, "a": 1})
