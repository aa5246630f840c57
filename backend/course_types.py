"""
Course-type master (科目区分) lookups.

The master is an ordered tree of nodes:
    [{"name": "専門科目", "children": [{"name": "...", "children": ["FG1", ...]}, ...]}]
Leaf strings are course-id prefixes. Category rules resolve a
major / middle / minor path against this tree to a list of prefixes.

Fetching and caching the master is done here too, but the requirement
engine only ever sees an already-loaded list.
"""

import json
import os
import sys
import time

import requests

DEFAULT_MAX_AGE_HOURS = 24
FETCH_TIMEOUT_SECONDS = 10


def _find_child_node(children, name: str) -> dict | None:
    for child in children or []:
        if isinstance(child, dict) and child.get("name") == name:
            return child
    return None


def _collect_leaf_prefixes(children, out: list[str]) -> None:
    for child in children or []:
        if isinstance(child, str):
            out.append(child)
        elif isinstance(child, dict):
            _collect_leaf_prefixes(child.get("children"), out)


def resolve_category_prefixes(
    master: list,
    major_category: str,
    middle_category: str | None = None,
    minor_category: str | None = None,
) -> list[str]:
    """
    Return the course-id prefixes under a major/middle/minor category path.

    When a deeper level is omitted, every leaf below the shallower node is
    included. An unknown name at any level, or an empty master, yields [].
    """
    if not master or not major_category:
        return []

    node = _find_child_node(master, major_category)
    if node is None:
        return []

    for level_name in (middle_category, minor_category):
        if not level_name:
            break
        node = _find_child_node(node.get("children"), level_name)
        if node is None:
            return []

    prefixes: list[str] = []
    _collect_leaf_prefixes(node.get("children"), prefixes)
    return prefixes


def get_major_categories(master: list) -> list[str]:
    return [node.get("name", "") for node in master or [] if isinstance(node, dict)]


def get_middle_categories(master: list, major_category: str) -> list[str]:
    node = _find_child_node(master, major_category)
    if node is None:
        return []
    return [c.get("name", "") for c in node.get("children") or [] if isinstance(c, dict)]


def get_minor_categories(master: list, major_category: str, middle_category: str) -> list[str]:
    major = _find_child_node(master, major_category)
    if major is None:
        return []
    middle = _find_child_node(major.get("children"), middle_category)
    if middle is None:
        return []
    return [c.get("name", "") for c in middle.get("children") or [] if isinstance(c, dict)]


def _read_cache(cache_path: str) -> list | None:
    try:
        with open(cache_path, encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        print(f"[WARN] Unreadable course type cache {cache_path}: {exc}", file=sys.stderr)
        return None
    if not isinstance(data, list):
        print(f"[WARN] Course type cache {cache_path} is not a list; ignoring.", file=sys.stderr)
        return None
    return data


def _cache_age_hours(cache_path: str) -> float | None:
    try:
        return (time.time() - os.path.getmtime(cache_path)) / 3600.0
    except OSError:
        return None


def fetch_course_type_master(url: str, timeout: float = FETCH_TIMEOUT_SECONDS) -> list:
    """Download the master JSON. Raises on HTTP or decode errors."""
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    data = response.json()
    if not isinstance(data, list):
        raise ValueError("course type master payload is not a list")
    return data


def load_course_type_master(
    cache_path: str,
    url: str | None = None,
    max_age_hours: float = DEFAULT_MAX_AGE_HOURS,
) -> list:
    """
    Return the course-type master, refreshing the on-disk cache if stale.

    Order of preference:
      1) fresh cache file
      2) network fetch (only when url is set), written back to the cache
      3) stale cache file
      4) [] (category rules will then match nothing)
    """
    cached = _read_cache(cache_path)
    age = _cache_age_hours(cache_path)
    if cached is not None and (not url or (age is not None and age < max_age_hours)):
        return cached

    if url:
        try:
            data = fetch_course_type_master(url)
        except (requests.RequestException, ValueError) as exc:
            print(f"[WARN] Course type master fetch failed: {exc}", file=sys.stderr)
        else:
            try:
                os.makedirs(os.path.dirname(os.path.abspath(cache_path)), exist_ok=True)
                with open(cache_path, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, ensure_ascii=False)
            except OSError as exc:
                print(f"[WARN] Could not write course type cache {cache_path}: {exc}", file=sys.stderr)
            print(f"[OK] Fetched course type master ({len(data)} top-level categories)")
            return data

    if cached is not None:
        print("[WARN] Using stale course type master cache.", file=sys.stderr)
        return cached

    print(
        "[WARN] No course type master available; category rules will match nothing.",
        file=sys.stderr,
    )
    return []
