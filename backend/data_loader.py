import json
import os
import sys

import pandas as pd

from course_types import DEFAULT_MAX_AGE_HOURS, load_course_type_master
from normalizer import normalize_course_records
from validators import validate_requirements

_BOOL_TRUTHY = {"true", "1", "yes", "y"}

REQUIREMENTS_DIRNAME = "requirements"
MANIFEST_FILENAME = "index.json"
COURSE_TYPES_FILENAME = "course_types.json"

# Column aliases accepted in course tables (exported sheets use camelCase).
_COURSE_COLUMN_ALIASES = {
    "courseId": "course_id",
    "courseName": "course_name",
    "isPassed": "is_passed",
    "isInProgress": "is_in_progress",
}


def _safe_bool_col(df: pd.DataFrame, col: str) -> pd.DataFrame:
    """Normalize a boolean column to Python bool regardless of sheet format.

    Handles: Python bool, int/float (1/0), and string variants
    (TRUE/FALSE, true/false, 1/0, yes/no, y/n). NaN or blank -> None so the record
    normalizer can fall back to the grade.
    """
    def _coerce(x):
        if pd.isna(x):
            return None
        if isinstance(x, bool):
            return x
        if isinstance(x, (int, float)):
            return bool(x)
        text = str(x).strip().lower()
        if not text:
            return None
        return text in _BOOL_TRUTHY

    if col in df.columns:
        df[col] = df[col].apply(_coerce).astype(object)
    return df


def load_course_records(path: str) -> list[dict]:
    """
    Load an already-normalized course table (.csv or .xlsx).

    Expected columns (either naming): id, course_id/courseId,
    course_name/courseName, credits, grade, is_passed/isPassed,
    is_in_progress/isInProgress, year, semester, category.
    Raises FileNotFoundError if the file does not exist.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(path)

    if path.lower().endswith((".xlsx", ".xls")):
        df = pd.read_excel(path, dtype=str)
    else:
        df = pd.read_csv(path, dtype=str, encoding="utf-8-sig")

    df = df.rename(columns={k: v for k, v in _COURSE_COLUMN_ALIASES.items() if k in df.columns})
    df.columns = [str(c).strip() for c in df.columns]
    for col in ("is_passed", "is_in_progress"):
        df = _safe_bool_col(df, col)

    # Convert to object dtype so None survives instead of being re-coerced to NaN.
    df = df.astype(object).where(pd.notna(df), None)
    records = normalize_course_records(df.to_dict(orient="records"))
    print(f"[INFO] Loaded {len(records)} course record(s) from {path}")
    return records


def _read_json(path: str):
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def load_requirement_manifest(requirements_dir: str) -> list[dict]:
    """Read requirements/index.json. Raises on a missing or malformed manifest."""
    manifest_path = os.path.join(requirements_dir, MANIFEST_FILENAME)
    manifest = _read_json(manifest_path)
    items = manifest.get("requirements") if isinstance(manifest, dict) else None
    if not isinstance(items, list):
        raise ValueError(f"{manifest_path}: 'requirements' must be a list.")
    return items


def load_requirement_file(path: str) -> tuple[dict | None, list[str], list[str]]:
    """Read, canonicalize and validate one definition file."""
    try:
        raw = _read_json(path)
    except (OSError, ValueError) as exc:
        return None, [f"unreadable: {exc}"], []
    return validate_requirements(raw)


def load_data(
    data_path: str,
    course_types_url: str | None = None,
    course_types_max_age_hours: float = DEFAULT_MAX_AGE_HOURS,
) -> dict:
    """Load requirement definitions and the course-type master. Raises on a missing manifest."""
    requirements_dir = os.path.join(data_path, REQUIREMENTS_DIRNAME)
    manifest = load_requirement_manifest(requirements_dir)

    requirements: dict[str, dict] = {}
    requirement_order: list[str] = []
    default_id = None
    for item in manifest:
        file_name = str(item.get("file") or "").strip()
        if not file_name:
            print(f"[WARN] Manifest entry without a file: {item}", file=sys.stderr)
            continue
        canonical, errors, warnings = load_requirement_file(os.path.join(requirements_dir, file_name))
        if errors:
            print(
                f"[WARN] Skipping {file_name}: {len(errors)} error(s): {errors[:3]}",
                file=sys.stderr,
            )
            continue
        for warning in warnings:
            print(f"[WARN] {file_name}: {warning}")

        req_id = canonical["id"]
        manifest_id = item.get("id")
        if manifest_id and manifest_id != req_id:
            print(f"[WARN] Manifest id '{manifest_id}' does not match file id '{req_id}' in {file_name}.")
        if req_id in requirements:
            print(f"[WARN] Duplicate requirement id '{req_id}' in {file_name}; keeping the first.")
            continue
        requirements[req_id] = canonical
        requirement_order.append(req_id)
        if default_id is None and (item.get("isDefault") or canonical.get("is_default")):
            default_id = req_id

    if default_id is None and requirement_order:
        default_id = requirement_order[0]

    course_type_master = load_course_type_master(
        os.path.join(data_path, COURSE_TYPES_FILENAME),
        url=course_types_url,
        max_age_hours=course_types_max_age_hours,
    )

    print(f"[INFO] Loaded {len(requirements)} requirement definition(s) from {requirements_dir}")
    return {
        "requirements": requirements,
        "requirement_order": requirement_order,
        "default_requirements_id": default_id,
        "course_type_master": course_type_master,
    }
