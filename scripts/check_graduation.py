"""
Check a student's course table against a requirement definition.

Usage:
    python scripts/check_graduation.py --courses my_courses.csv
    python scripts/check_graduation.py --requirements esys-2024 --courses my_courses.xlsx
    python scripts/check_graduation.py --courses my_courses.csv --out report.xlsx
"""

import argparse
import os
import sys

import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

from allocator import calculate_requirement_status  # noqa: E402
from data_loader import load_course_records, load_data  # noqa: E402
from report import status_to_frame, summarize_status  # noqa: E402
from report_io import resolve_default_path, write_report  # noqa: E402
from requirement_catalog import requirement_label  # noqa: E402

DEFAULT_DATA_PATH = resolve_default_path("..", "data")


def unmatched_frame(status: dict) -> pd.DataFrame:
    columns = ["record_id", "course_id", "course_name", "credits", "grade"]
    return pd.DataFrame(
        [{c: m.get(c) for c in columns} for m in status.get("unmatched_courses") or []],
        columns=columns,
    )


def main(args=None):
    parser = argparse.ArgumentParser(description="Compute graduation requirement status for a course table.")
    parser.add_argument("--requirements", type=str, help="Requirement definition id (default: manifest default).")
    parser.add_argument("--courses", required=True, help="Course table (.csv or .xlsx).")
    parser.add_argument("--path", default=DEFAULT_DATA_PATH, help="Path to the data directory.")
    parser.add_argument("--out", type=str, help="Write a flattened report (.csv or .xlsx).")
    opts = parser.parse_args(args)

    try:
        data = load_data(opts.path)
    except (OSError, ValueError) as exc:
        sys.exit(f"[ERROR] Cannot load data from {opts.path}: {exc}")

    requirements_id = opts.requirements or data["default_requirements_id"]
    requirements = data["requirements"].get(requirements_id) if requirements_id else None
    if requirements is None:
        known = ", ".join(data["requirement_order"]) or "none"
        sys.exit(f"[ERROR] Unknown requirements '{requirements_id}'. Known: {known}")

    try:
        courses = load_course_records(opts.courses)
    except FileNotFoundError:
        sys.exit(f"[ERROR] Course table not found: {opts.courses}")

    status = calculate_requirement_status(requirements, courses, data["course_type_master"])
    for line in summarize_status(status, requirement_label(requirements)):
        print(line)

    if opts.out:
        write_report(opts.out, {
            "status": status_to_frame(status),
            "unmatched": unmatched_frame(status),
        })
        print(f"[OK] Report written: {opts.out}")

    return 0 if status["is_graduation_eligible"] else 1


if __name__ == "__main__":
    sys.exit(main())
