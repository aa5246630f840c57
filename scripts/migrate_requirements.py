"""
Rewrite a requirement definition file into the current format.

Older files use the flat group `rules` list (prefix / specific / pattern /
exclude) or object-form includeRules; the current format is tagged
includeRules / excludeRules lists with camelCase keys. The file is
canonicalized, validated, and written back in the current format. A
`<file>.bak` copy of the original is left next to it.

Usage:
    python scripts/migrate_requirements.py --path data/requirements/esys-2023.json
    python scripts/migrate_requirements.py --path data/requirements/esys-2023.json --dry-run
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

from report_io import backup_sibling, read_json, write_json  # noqa: E402
from requirements import export_requirements  # noqa: E402
from validators import validate_requirements  # noqa: E402

_LEGACY_GROUP_KEYS = ("rules",)


def count_legacy_groups(raw: dict) -> int:
    """Number of groups still using the flat rules list or object-form rule sets."""
    count = 0
    for category in raw.get("categories") or []:
        for sub in category.get("subcategories") or []:
            for group in sub.get("groups") or []:
                if not isinstance(group, dict):
                    continue
                if any(k in group for k in _LEGACY_GROUP_KEYS):
                    count += 1
                elif isinstance(group.get("includeRules"), dict) or isinstance(group.get("excludeRules"), dict):
                    count += 1
    return count


def migrate_definition(raw: dict) -> tuple[dict | None, list[str]]:
    """Return (current-format definition, errors). Definition is None on errors."""
    canonical, errors, warnings = validate_requirements(raw)
    for w in warnings:
        print(f"[WARN] {w}")
    if errors:
        return None, errors
    return export_requirements(canonical), []


def main(args=None):
    parser = argparse.ArgumentParser(description="Migrate a requirement definition to the current format.")
    parser.add_argument("--path", required=True, help="Path to the definition JSON file")
    parser.add_argument("--dry-run", action="store_true", help="Preview without saving")
    opts = parser.parse_args(args)

    path = os.path.abspath(opts.path)
    if not os.path.exists(path):
        sys.exit(f"[ERROR] Definition not found: {path}")

    print(f"[INFO] Opening: {path}")
    try:
        raw = read_json(path)
    except ValueError as exc:
        sys.exit(f"[ERROR] Invalid JSON in {path}: {exc}")

    legacy_groups = count_legacy_groups(raw)
    print(f"[INFO] Groups in an older rule format: {legacy_groups}")

    migrated, errors = migrate_definition(raw)
    if errors:
        for e in errors:
            print(f"  [ERROR] {e}")
        sys.exit(f"[ERROR] {len(errors)} validation error(s); nothing written.")

    if opts.dry_run:
        print(f"\n[DRY RUN] Would rewrite {path} ({legacy_groups} group(s) converted). No file saved.")
        return 0

    backup_path = backup_sibling(path)
    print(f"[INFO] Backup: {backup_path}")
    write_json(path, migrated)
    print(f"\n[DONE] Saved: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
