"""Shared file I/O helpers for the migration and report scripts."""

from __future__ import annotations

import json
import os
import shutil

import pandas as pd


def read_json(path: str):
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def write_json(path: str, payload) -> None:
    """Write JSON the way definition files are stored (UTF-8, 2-space indent)."""
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, ensure_ascii=False, indent=2)
        fh.write("\n")


def write_report(path: str, sheets: dict[str, pd.DataFrame]) -> None:
    """
    Write report frames to .xlsx (one sheet per frame, in dict order)
    or .csv (first frame only).
    """
    if path.lower().endswith(".xlsx"):
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            for sheet_name, frame in sheets.items():
                frame.to_excel(writer, sheet_name=sheet_name, index=False)
        return
    first = next(iter(sheets.values()), pd.DataFrame())
    first.to_csv(path, index=False, encoding="utf-8-sig")


def backup_sibling(path: str, suffix: str = ".bak") -> str:
    """Create a sibling backup file (default: `<path>.bak`)."""
    backup_path = f"{path}{suffix}"
    shutil.copy2(path, backup_path)
    return backup_path


def resolve_default_path(*relative_parts: str) -> str:
    """Build an absolute path relative to scripts/."""
    return os.path.abspath(os.path.join(os.path.dirname(__file__), *relative_parts))
