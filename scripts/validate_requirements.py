"""
Publish gate validator for requirement definitions.

Checks data-quality rules that must pass before a definition is listed in
data/requirements/index.json. Designed to be importable for tests and
runnable as a standalone CLI.

Usage:
    python scripts/validate_requirements.py --id esys-2024
    python scripts/validate_requirements.py --id esys-2024 --path path/to/data
    python scripts/validate_requirements.py --all
"""

import argparse
import json
import os
import sys

# Import backend modules (add backend/ to path)
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

from course_types import load_course_type_master, resolve_category_prefixes  # noqa: E402
from data_loader import (  # noqa: E402
    COURSE_TYPES_FILENAME,
    MANIFEST_FILENAME,
    REQUIREMENTS_DIRNAME,
    load_requirement_manifest,
)
from requirements import SUBCATEGORY_REQUIRED, iter_groups  # noqa: E402
from rule_matcher import RULE_TYPE_CATEGORY, category_key  # noqa: E402
from validators import validate_requirements  # noqa: E402

DEFAULT_DATA_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "data")


# ── Validation result ─────────────────────────────────────────────────────────

class ValidationResult:
    """Collects errors and warnings for a single definition validation run."""

    def __init__(self, requirements_id: str):
        self.requirements_id = requirements_id
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def error(self, msg: str) -> None:
        self.errors.append(msg)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        lines = [f"[{status}] Requirements '{self.requirements_id}'"]
        for e in self.errors:
            lines.append(f"  [ERROR] {e}")
        for w in self.warnings:
            lines.append(f"  [WARN]  {w}")
        if self.passed and not self.warnings:
            lines.append("  All checks passed.")
        return "\n".join(lines)


# ── Individual checks ─────────────────────────────────────────────────────────

def check_schema(raw: dict, result: ValidationResult) -> dict | None:
    """Definition must canonicalize and pass field/range/tag validation."""
    canonical, errors, warnings = validate_requirements(raw)
    for e in errors:
        result.error(e)
    for w in warnings:
        result.warn(w)
    return canonical if not errors else None


def check_manifest_entry(entry: dict, canonical: dict, result: ValidationResult) -> None:
    """Manifest id must match the id inside the file."""
    manifest_id = entry.get("id")
    if manifest_id and manifest_id != canonical.get("id"):
        result.error(
            f"Manifest id '{manifest_id}' does not match file id '{canonical.get('id')}'."
        )


def check_category_rules_resolve(canonical: dict, master: list, result: ValidationResult) -> None:
    """Warn when a category rule resolves to no course-id prefixes."""
    if not master:
        result.warn("No course type master available; category rules were not checked.")
        return
    for category, sub, group in iter_groups(canonical):
        for rule in group.get("include_rules") or []:
            if rule.get("type") != RULE_TYPE_CATEGORY:
                continue
            if not resolve_category_prefixes(master, *category_key(rule)):
                path = " / ".join(p for p in category_key(rule) if p)
                result.warn(
                    f"Group '{group.get('id')}' in '{sub.get('id')}': "
                    f"category '{path}' resolves to no courses."
                )


def check_group_minimums(canonical: dict, result: ValidationResult) -> None:
    """Warn when a subcategory's group minimums together exceed its maxCredits."""
    for category in canonical.get("categories") or []:
        for sub in category.get("subcategories") or []:
            sub_max = sub.get("max_credits")
            if sub.get("type") == SUBCATEGORY_REQUIRED or sub_max is None:
                continue
            group_floor = sum(g.get("min_credits") or 0 for g in sub.get("groups") or [])
            if group_floor > sub_max:
                result.warn(
                    f"Subcategory '{sub.get('id')}': group minimums ({group_floor}) "
                    f"exceed maxCredits ({sub_max})."
                )


# ── Main validate function ────────────────────────────────────────────────────

def validate_definition(
    requirements_id: str,
    raw: dict,
    manifest_entry: dict | None = None,
    course_type_master: list | None = None,
) -> ValidationResult:
    """Run all publish gate checks for one definition. Returns a ValidationResult."""
    result = ValidationResult(requirements_id)

    canonical = check_schema(raw, result)
    if canonical is None:
        return result
    if manifest_entry is not None:
        check_manifest_entry(manifest_entry, canonical, result)
    check_category_rules_resolve(canonical, course_type_master or [], result)
    check_group_minimums(canonical, result)
    return result


def _read_definition(requirements_dir: str, entry: dict) -> tuple[dict | None, str | None]:
    path = os.path.join(requirements_dir, str(entry.get("file") or ""))
    try:
        with open(path, encoding="utf-8") as fh:
            return json.load(fh), None
    except (OSError, ValueError) as exc:
        return None, f"Cannot read {path}: {exc}"


# ── CLI entry point ───────────────────────────────────────────────────────────

def main(args=None):
    parser = argparse.ArgumentParser(
        description="Validate requirement definitions before publishing.",
    )
    parser.add_argument("--id", type=str, help="Requirement definition id to validate.")
    parser.add_argument("--all", action="store_true", help="Validate every definition in the manifest.")
    parser.add_argument(
        "--path", type=str,
        default=DEFAULT_DATA_PATH,
        help="Path to the data directory.",
    )
    opts = parser.parse_args(args)

    if not opts.id and not opts.all:
        parser.error("Provide --id REQUIREMENTS_ID or --all.")

    requirements_dir = os.path.join(opts.path, REQUIREMENTS_DIRNAME)
    try:
        manifest = load_requirement_manifest(requirements_dir)
    except (OSError, ValueError) as exc:
        print(f"[ERROR] Cannot read {MANIFEST_FILENAME}: {exc}", file=sys.stderr)
        return 1

    master = load_course_type_master(os.path.join(opts.path, COURSE_TYPES_FILENAME))

    if opts.all:
        entries = manifest
        if not entries:
            print("[INFO] No requirement definitions found in manifest.")
            return 0
    else:
        entries = [e for e in manifest if e.get("id") == opts.id.strip()]
        if not entries:
            result = ValidationResult(opts.id.strip())
            result.error(f"Requirements '{opts.id.strip()}' not found in {MANIFEST_FILENAME}.")
            print(result.summary())
            return 1

    all_passed = True
    for entry in entries:
        req_id = str(entry.get("id") or entry.get("file") or "?")
        raw, read_error = _read_definition(requirements_dir, entry)
        if read_error:
            result = ValidationResult(req_id)
            result.error(read_error)
        else:
            result = validate_definition(req_id, raw, entry, master)
        print(result.summary())
        if not result.passed:
            all_passed = False

    return 0 if all_passed else 1


if __name__ == "__main__":
    sys.exit(main())
