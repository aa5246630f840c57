import os
import sys
import time
import threading
import hashlib
import json
from collections import OrderedDict
from datetime import datetime, timezone

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from allocator import calculate_requirement_status
from course_types import (
    DEFAULT_MAX_AGE_HOURS,
    get_major_categories,
    get_middle_categories,
    get_minor_categories,
    resolve_category_prefixes,
)
from data_loader import load_data
from requirement_catalog import (
    get_available_departments,
    get_available_majors,
    get_available_years,
    requirement_label,
    requirement_summary,
)
from requirements import export_requirements
from validators import validate_requirements

load_dotenv()

app = Flask(__name__)

APP_VERSION = "1.0.0"

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)
_DEFAULT_DATA_PATH = os.path.join(PROJECT_ROOT, "data")
_env_data_path = os.environ.get("DATA_PATH")
if not _env_data_path:
    DATA_PATH = _DEFAULT_DATA_PATH
elif not os.path.isabs(_env_data_path):
    DATA_PATH = os.path.join(PROJECT_ROOT, _env_data_path)
else:
    DATA_PATH = _env_data_path
_data_lock = threading.Lock()
_data_mtime = None


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


_SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)
_REQUEST_CACHE_SIZE = _env_int("REQUEST_CACHE_SIZE", 128, minimum=1)
_COURSE_TYPES_URL = os.environ.get("COURSE_TYPES_URL") or None
_COURSE_TYPES_MAX_AGE_HOURS = _env_float(
    "COURSE_TYPES_MAX_AGE_HOURS", float(DEFAULT_MAX_AGE_HOURS), minimum=0.0
)


class _LruResponseCache:
    """Thread-safe bounded in-memory cache for JSON-serializable responses."""

    def __init__(self, max_size: int):
        self.max_size = max(1, int(max_size))
        self._lock = threading.Lock()
        self._items: OrderedDict[str, dict] = OrderedDict()

    def get(self, key: str):
        with self._lock:
            if key not in self._items:
                return None
            value = self._items.pop(key)
            self._items[key] = value
            return value

    def set(self, key: str, value: dict) -> None:
        with self._lock:
            if key in self._items:
                self._items.pop(key)
            self._items[key] = value
            while len(self._items) > self.max_size:
                self._items.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


_status_response_cache = _LruResponseCache(_REQUEST_CACHE_SIZE)


def _cache_enabled() -> bool:
    return not app.config.get("TESTING", False)


def _stable_payload_hash(payload) -> str:
    normalized = payload if payload is not None else {}
    encoded = json.dumps(
        normalized,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
    ).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def _data_version_tag() -> str:
    return "none" if _data_mtime is None else str(_data_mtime)


def _request_cache_key(prefix: str, payload) -> str:
    return f"{prefix}:{_data_version_tag()}:{_stable_payload_hash(payload)}"


def _data_file_mtime(path: str):
    try:
        if os.path.isdir(path):
            mtimes = []
            for root, _dirs, files in os.walk(path):
                for f in files:
                    if f.endswith(".json"):
                        mtimes.append(os.path.getmtime(os.path.join(root, f)))
            return max(mtimes) if mtimes else None
        return os.path.getmtime(path)
    except OSError:
        return None


def _load(path: str) -> dict:
    return load_data(
        path,
        course_types_url=_COURSE_TYPES_URL,
        course_types_max_age_hours=_COURSE_TYPES_MAX_AGE_HOURS,
    )


# ── Startup data load ──────────────────────────────────────────────────────────
try:
    _data = _load(DATA_PATH)
    _data_mtime = _data_file_mtime(DATA_PATH)
    print(f"[OK] Loaded {len(_data['requirements'])} requirement definition(s) from {DATA_PATH}")
except FileNotFoundError:
    # If DATA_PATH env var is stale, fall back to the repo data directory.
    if DATA_PATH != _DEFAULT_DATA_PATH and os.path.exists(_DEFAULT_DATA_PATH):
        print(
            f"[WARN] DATA_PATH not found ({DATA_PATH}); "
            f"falling back to default data directory ({_DEFAULT_DATA_PATH}).",
            file=sys.stderr,
        )
        DATA_PATH = _DEFAULT_DATA_PATH
        _data = _load(DATA_PATH)
        _data_mtime = _data_file_mtime(DATA_PATH)
        print(f"[OK] Loaded {len(_data['requirements'])} requirement definition(s) from {DATA_PATH}")
    else:
        print(f"[FATAL] Data directory not found: {DATA_PATH}", file=sys.stderr)
        sys.exit(1)
except Exception as exc:
    print(f"[FATAL] Failed to load data: {exc}", file=sys.stderr)
    sys.exit(1)


def _reload_data_if_changed(force: bool = False) -> bool:
    """
    Hot-reload requirement definitions when DATA_PATH changes on disk.

    Returns True when a reload occurred, else False.
    """
    global _data, _data_mtime

    candidate_mtime = _data_file_mtime(DATA_PATH)
    if not force:
        if candidate_mtime is None:
            return False
        if _data_mtime is not None and candidate_mtime <= _data_mtime:
            return False

    with _data_lock:
        latest_mtime = _data_file_mtime(DATA_PATH)
        if not force:
            if latest_mtime is None:
                return False
            if _data_mtime is not None and latest_mtime <= _data_mtime:
                return False

        try:
            new_data = _load(DATA_PATH)
        except Exception as exc:
            print(f"[WARN] Data reload failed; keeping previous dataset: {exc}", file=sys.stderr)
            return False

        _data = new_data
        _data_mtime = latest_mtime if latest_mtime is not None else candidate_mtime
        _status_response_cache.clear()
        print(f"[OK] Reloaded {len(new_data['requirements'])} requirement definition(s) from {DATA_PATH}")
        return True


def _refresh_data_if_needed() -> None:
    try:
        _reload_data_if_changed()
    except Exception as exc:
        print(f"[WARN] Data reload check failed: {exc}", file=sys.stderr)


def _error_response(error_code: str, message: str, status: int, **extra):
    payload = {"mode": "error", "error": {"error_code": error_code, "message": message}}
    payload["error"].update(extra)
    return jsonify(payload), status


# -- Security headers ------------------------------------------------------
@app.before_request
def _start_request_timer():
    g._request_start_time = time.perf_counter()


@app.after_request
def _add_security_headers(response):
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "same-origin"

    started = getattr(g, "_request_start_time", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= _SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


# -- Health endpoint --------------------------------------------------------
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "version": APP_VERSION,
        "requirements_loaded": len(_data["requirements"]),
    })


# -- Input validation ------------------------------------------------------
def _validate_status_body(body):
    """Returns (error_code, message) on invalid input, (None, None) on success."""
    if not isinstance(body, dict):
        return "INVALID_INPUT", "Request body must be a JSON object."
    courses = body.get("courses", [])
    if not isinstance(courses, list):
        return "INVALID_INPUT", "courses must be a list of course records."
    for index, course in enumerate(courses):
        if not isinstance(course, dict):
            return "INVALID_INPUT", f"courses[{index}] must be an object."
    if "requirements" in body and not isinstance(body["requirements"], dict):
        return "INVALID_INPUT", "requirements must be an object."
    req_id = body.get("requirements_id")
    if req_id is not None and not isinstance(req_id, str):
        return "INVALID_INPUT", "requirements_id must be a string."
    return None, None


def _parse_year_arg(raw):
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


# ── 500 handler ────────────────────────────────────────────────────────────────
@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return e
    print(f"[WARN] Unhandled error on {request.method} {request.path}: {e!r}", file=sys.stderr)
    return _error_response("SERVER_ERROR", "An unexpected server error occurred.", 500)


# ── Routes ─────────────────────────────────────────────────────────────────────
def list_requirements():
    """Summaries of every loaded definition, in manifest order."""
    _refresh_data_if_needed()
    data = _data
    return jsonify({
        "default_requirements_id": data["default_requirements_id"],
        "requirements": [
            requirement_summary(data["requirements"][req_id])
            for req_id in data["requirement_order"]
        ],
    })


def get_requirement(requirements_id):
    _refresh_data_if_needed()
    requirements = _data["requirements"].get(requirements_id)
    if requirements is None:
        return _error_response(
            "UNKNOWN_REQUIREMENTS", f"No requirement definition '{requirements_id}'.", 404
        )
    return jsonify({
        "label": requirement_label(requirements),
        "requirements": export_requirements(requirements),
    })


def requirement_options():
    """Selector options: years, then departments for a year, then majors."""
    _refresh_data_if_needed()
    requirements_list = [_data["requirements"][r] for r in _data["requirement_order"]]
    year = _parse_year_arg(request.args.get("year"))
    department = (request.args.get("department") or "").strip()

    payload = {"years": get_available_years(requirements_list)}
    if year is not None:
        payload["departments"] = get_available_departments(requirements_list, year)
        if department:
            payload["majors"] = get_available_majors(requirements_list, year, department)
    return jsonify(payload)


def validate_requirements_endpoint():
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict):
        return _error_response("INVALID_INPUT", "Request body must be a JSON object.", 400)
    raw = body.get("requirements", body)
    _, errors, warnings = validate_requirements(raw)
    return jsonify({"valid": not errors, "errors": errors, "warnings": warnings})


def status_endpoint():
    """
    Evaluate a requirement definition against the posted course records.

    Cached responses are served with a fresh status.calculated_at.
    """
    _refresh_data_if_needed()
    data = _data

    body = request.get_json(force=True, silent=True)
    error_code, message = _validate_status_body(body)
    if error_code:
        return _error_response(error_code, message, 400)

    cache_key = _request_cache_key("status", body)
    if _cache_enabled():
        cached = _status_response_cache.get(cache_key)
        if cached is not None:
            refreshed = {**cached["status"], "calculated_at": datetime.now(timezone.utc).isoformat()}
            return jsonify({**cached, "status": refreshed})

    if "requirements" in body:
        requirements, errors, _ = validate_requirements(body["requirements"])
        if errors:
            return _error_response(
                "INVALID_REQUIREMENTS", "Requirement definition failed validation.", 400,
                details=errors,
            )
    else:
        requirements_id = body.get("requirements_id") or data["default_requirements_id"]
        requirements = data["requirements"].get(requirements_id) if requirements_id else None
        if requirements is None:
            return _error_response(
                "UNKNOWN_REQUIREMENTS", f"No requirement definition '{requirements_id}'.", 404
            )

    status = calculate_requirement_status(
        requirements,
        body.get("courses", []),
        data["course_type_master"],
    )
    for note in status["notes"]:
        print(f"[WARN] {requirements.get('id')}: {note}", file=sys.stderr)
    response_payload = {
        "mode": "status",
        "label": requirement_label(requirements),
        "status": status,
    }
    if _cache_enabled():
        _status_response_cache.set(cache_key, response_payload)
    return jsonify(response_payload)


def course_types_endpoint():
    """Category names one level below the given path, plus the resolved prefix count."""
    _refresh_data_if_needed()
    master = _data["course_type_master"]
    major = (request.args.get("major") or "").strip()
    middle = (request.args.get("middle") or "").strip()
    minor = (request.args.get("minor") or "").strip()

    if not major:
        return jsonify({"level": "major", "names": get_major_categories(master), "available": bool(master)})

    prefixes = resolve_category_prefixes(master, major, middle or None, minor or None)
    if not middle:
        level, names = "middle", get_middle_categories(master, major)
    elif not minor:
        level, names = "minor", get_minor_categories(master, major, middle)
    else:
        level, names = "leaf", []
    return jsonify({
        "level": level,
        "names": names,
        "prefix_count": len(prefixes),
        "available": bool(master),
    })


app.add_url_rule("/api/health", endpoint="api_health", view_func=health_endpoint, methods=["GET"])
app.add_url_rule("/api/requirements", endpoint="api_requirements", view_func=list_requirements, methods=["GET"])
app.add_url_rule(
    "/api/requirements/options", endpoint="api_requirement_options",
    view_func=requirement_options, methods=["GET"],
)
app.add_url_rule(
    "/api/requirements/validate", endpoint="api_validate_requirements",
    view_func=validate_requirements_endpoint, methods=["POST"],
)
app.add_url_rule(
    "/api/requirements/<requirements_id>", endpoint="api_requirement",
    view_func=get_requirement, methods=["GET"],
)
app.add_url_rule("/api/status", endpoint="api_status", view_func=status_endpoint, methods=["POST"])
app.add_url_rule("/api/course-types", endpoint="api_course_types", view_func=course_types_endpoint, methods=["GET"])


# -- API catch-all (404 for unknown /api/* routes) -------------------
@app.route("/api/<path:rest>", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
def api_catch_all(rest):
    return jsonify({"error": f"/api/{rest} not found"}), 404


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
