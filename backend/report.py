import pandas as pd

from requirement_catalog import subcategory_label

REPORT_COLUMNS = [
    "category_id",
    "category_name",
    "subcategory_id",
    "subcategory_type",
    "group_id",
    "earned_credits",
    "in_progress_credits",
    "required_credits",
    "max_credits",
    "remaining_credits",
    "is_satisfied",
    "matched_course_ids",
    "missing_courses",
]


def _row(category: dict, sub: dict, node: dict, group_id) -> dict:
    return {
        "category_id": category["category_id"],
        "category_name": category["category_name"],
        "subcategory_id": sub["subcategory_id"],
        "subcategory_type": sub["subcategory_type"],
        "group_id": group_id,
        "earned_credits": node["earned_credits"],
        "in_progress_credits": node["in_progress_credits"],
        "required_credits": node["required_credits"],
        "max_credits": node.get("max_credits"),
        "remaining_credits": node["remaining_credits"],
        "is_satisfied": node["is_satisfied"],
        "matched_course_ids": ", ".join(m["course_id"] for m in node["matched_courses"]),
        "missing_courses": ", ".join(node.get("missing_courses") or []),
    }


def status_to_frame(status: dict) -> pd.DataFrame:
    """
    Flatten a status tree to one row per subcategory plus one row per group.

    Subcategory rows have group_id = None; their credits are the rolled-up
    (capped) values.
    """
    rows = []
    for category in status.get("category_statuses", []):
        for sub in category.get("subcategory_statuses", []):
            rows.append(_row(category, sub, sub, None))
            for group in sub.get("group_statuses", []):
                rows.append(_row(category, sub, group, group["group_id"]))
    if not rows:
        return pd.DataFrame(columns=REPORT_COLUMNS)
    frame = pd.DataFrame(rows, columns=REPORT_COLUMNS)
    # object dtype so subcategory rows keep None instead of NaN.
    frame["group_id"] = pd.Series([row["group_id"] for row in rows], index=frame.index, dtype=object)
    return frame


def summarize_status(status: dict, label: str = "") -> list[str]:
    """Human-readable summary lines for CLI output."""
    verdict = "ELIGIBLE" if status["is_graduation_eligible"] else "NOT YET"
    header = f"[{verdict}] {label or status.get('requirements_id')}"
    lines = [
        header,
        f"  Earned {status['total_earned_credits']} / {status['total_required_credits']} "
        f"(+{status['total_in_progress_credits']} in progress)",
    ]
    for category in status.get("category_statuses", []):
        mark = "OK" if category["is_satisfied"] else "--"
        lines.append(
            f"  [{mark}] {category['category_name']}: "
            f"{category['earned_credits']} / {category['required_credits']}"
        )
        for sub in category.get("subcategory_statuses", []):
            sub_mark = "OK" if sub["is_satisfied"] else "--"
            line = (
                f"      [{sub_mark}] {sub['subcategory_id']} ({subcategory_label(sub['subcategory_type'])}): "
                f"{sub['earned_credits']} / {sub['required_credits']}"
            )
            if sub.get("missing_courses"):
                line += f"  missing: {', '.join(sub['missing_courses'])}"
            lines.append(line)
    unmatched = status.get("unmatched_courses") or []
    if unmatched:
        lines.append(f"  Unmatched: {len(unmatched)} course(s)")
    for note in status.get("notes") or []:
        lines.append(f"  [NOTE] {note}")
    return lines
