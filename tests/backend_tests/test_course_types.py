"""
Tests for course-type master lookups and the cache/fetch fallback chain.
No network access: requests.get is monkeypatched.
"""

import json
import os
import time

import pytest
import requests

import course_types
from course_types import (
    get_major_categories,
    get_middle_categories,
    get_minor_categories,
    load_course_type_master,
    resolve_category_prefixes,
)

MASTER = [
    {"name": "専門基礎科目", "children": [
        {"name": "工学システム学類", "children": [
            {"name": "数学", "children": ["FG10", "FG20"]},
            {"name": "情報", "children": ["FG16"]},
        ]},
    ]},
    {"name": "基礎科目", "children": [
        {"name": "関連科目", "children": ["GE", "GC"]},
    ]},
]


class TestResolveCategoryPrefixes:
    def test_full_path(self):
        assert resolve_category_prefixes(MASTER, "専門基礎科目", "工学システム学類", "数学") == ["FG10", "FG20"]

    def test_major_only_collects_every_leaf(self):
        assert resolve_category_prefixes(MASTER, "専門基礎科目") == ["FG10", "FG20", "FG16"]

    def test_leaf_strings_directly_under_middle(self):
        assert resolve_category_prefixes(MASTER, "基礎科目", "関連科目") == ["GE", "GC"]

    def test_minor_without_middle_is_ignored(self):
        assert resolve_category_prefixes(MASTER, "基礎科目", None, "数学") == ["GE", "GC"]

    @pytest.mark.parametrize("path", [
        ("存在しない",),
        ("専門基礎科目", "存在しない"),
        ("専門基礎科目", "工学システム学類", "存在しない"),
        ("",),
    ])
    def test_unknown_path_resolves_to_nothing(self, path):
        assert resolve_category_prefixes(MASTER, *path) == []

    def test_empty_master(self):
        assert resolve_category_prefixes([], "専門基礎科目") == []


class TestCategoryListings:
    def test_levels(self):
        assert get_major_categories(MASTER) == ["専門基礎科目", "基礎科目"]
        assert get_middle_categories(MASTER, "専門基礎科目") == ["工学システム学類"]
        assert get_minor_categories(MASTER, "専門基礎科目", "工学システム学類") == ["数学", "情報"]

    def test_leaf_strings_are_not_listed_as_categories(self):
        assert get_minor_categories(MASTER, "基礎科目", "関連科目") == []

    def test_unknown_names(self):
        assert get_middle_categories(MASTER, "x") == []
        assert get_minor_categories(MASTER, "専門基礎科目", "x") == []


class _FakeResponse:
    def __init__(self, payload, status=200):
        self._payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


def _write_cache(path, payload, age_hours=0.0):
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    stamp = time.time() - age_hours * 3600
    os.utime(path, (stamp, stamp))


class TestLoadCourseTypeMaster:
    def test_fresh_cache_skips_network(self, tmp_path, monkeypatch):
        cache = tmp_path / "course_types.json"
        _write_cache(cache, MASTER, age_hours=1)

        def fail(*_args, **_kwargs):
            raise AssertionError("network should not be used")

        monkeypatch.setattr(course_types.requests, "get", fail)
        assert load_course_type_master(str(cache), url="https://example.test/master.json") == MASTER

    def test_no_url_uses_cache_regardless_of_age(self, tmp_path):
        cache = tmp_path / "course_types.json"
        _write_cache(cache, MASTER, age_hours=500)
        assert load_course_type_master(str(cache)) == MASTER

    def test_stale_cache_is_refreshed_and_rewritten(self, tmp_path, monkeypatch):
        cache = tmp_path / "course_types.json"
        _write_cache(cache, [{"name": "old", "children": []}], age_hours=48)
        monkeypatch.setattr(course_types.requests, "get", lambda url, timeout: _FakeResponse(MASTER))

        assert load_course_type_master(str(cache), url="https://example.test/master.json") == MASTER
        assert json.loads(cache.read_text(encoding="utf-8")) == MASTER

    def test_fetch_failure_falls_back_to_stale_cache(self, tmp_path, monkeypatch):
        cache = tmp_path / "course_types.json"
        _write_cache(cache, MASTER, age_hours=48)
        monkeypatch.setattr(course_types.requests, "get", lambda url, timeout: _FakeResponse(None, 503))

        assert load_course_type_master(str(cache), url="https://example.test/master.json") == MASTER

    def test_connection_error_without_cache_returns_empty(self, tmp_path, monkeypatch):
        def boom(url, timeout):
            raise requests.ConnectionError("offline")

        monkeypatch.setattr(course_types.requests, "get", boom)
        assert load_course_type_master(str(tmp_path / "missing.json"), url="https://example.test/x") == []

    def test_non_list_payload_is_rejected(self, tmp_path, monkeypatch):
        monkeypatch.setattr(course_types.requests, "get", lambda url, timeout: _FakeResponse({"name": "x"}))
        assert load_course_type_master(str(tmp_path / "missing.json"), url="https://example.test/x") == []

    def test_corrupt_cache_is_ignored(self, tmp_path):
        cache = tmp_path / "course_types.json"
        cache.write_text("{not json", encoding="utf-8")
        assert load_course_type_master(str(cache)) == []
