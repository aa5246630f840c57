"""
Pure validation helpers for requirement definitions.
No Flask or data-loader imports.

Errors make a definition unusable (the loader skips it, the API rejects it).
Warnings are surfaced but do not block evaluation.
"""

from typing import Dict, List, Optional, Tuple

from requirements import (
    RULE_TYPES,
    SUBCATEGORY_REQUIRED,
    SUBCATEGORY_TYPES,
    canonicalize_requirements,
)
from rule_matcher import (
    RULE_TYPE_CATEGORY,
    RULE_TYPE_COURSES,
    RULE_TYPE_PATTERN,
    RULE_TYPE_PREFIX,
    compile_pattern,
)

YEAR_MIN = 1900
YEAR_MAX = 2100


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_nonempty_str(value) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _check_credit_bounds(
    path: str,
    min_credits,
    max_credits,
    errors: List[str],
    min_required: bool = True,
) -> None:
    if min_credits is None:
        if min_required:
            errors.append(f"{path}: minCredits is required.")
    elif not _is_number(min_credits) or min_credits < 0:
        errors.append(f"{path}: minCredits must be a number >= 0 (got {min_credits!r}).")
    if max_credits is not None:
        if not _is_number(max_credits) or max_credits < 0:
            errors.append(f"{path}: maxCredits must be a number >= 0 (got {max_credits!r}).")
        elif _is_number(min_credits) and min_credits > max_credits:
            errors.append(f"{path}: minCredits ({min_credits}) exceeds maxCredits ({max_credits}).")


def _check_unique_ids(path: str, items: list, label: str, errors: List[str], required: bool = True) -> None:
    seen: set = set()
    for index, item in enumerate(items):
        item_id = item.get("id")
        if item_id is None:
            if required:
                errors.append(f"{path}: {label} #{index + 1} has no id.")
            continue
        if not _is_nonempty_str(item_id):
            errors.append(f"{path}: {label} #{index + 1} has an invalid id {item_id!r}.")
            continue
        if item_id in seen:
            errors.append(f"{path}: duplicate {label} id '{item_id}'.")
        seen.add(item_id)


def _check_rule(path: str, rule: dict, errors: List[str]) -> None:
    rule_type = rule.get("type")
    if rule_type not in RULE_TYPES:
        errors.append(f"{path}: unknown rule type {rule_type!r}.")
        return
    if rule_type == RULE_TYPE_COURSES:
        names = rule.get("course_names")
        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            errors.append(f"{path}: courseNames must be a list of strings.")
    elif rule_type == RULE_TYPE_PREFIX:
        prefixes = rule.get("prefixes")
        if not isinstance(prefixes, list) or not all(isinstance(p, str) for p in prefixes):
            errors.append(f"{path}: prefixes must be a list of strings.")
    elif rule_type == RULE_TYPE_CATEGORY:
        if not _is_nonempty_str(rule.get("major_category")):
            errors.append(f"{path}: category rule needs a majorCategory.")
        if rule.get("minor_category") and not rule.get("middle_category"):
            errors.append(f"{path}: minorCategory given without middleCategory.")
    elif rule_type == RULE_TYPE_PATTERN:
        if not isinstance(rule.get("pattern"), str):
            errors.append(f"{path}: pattern must be a string.")


def _check_group(path: str, group: dict, errors: List[str]) -> None:
    _check_credit_bounds(path, group.get("min_credits"), group.get("max_credits"), errors)
    for key in ("include_rules", "exclude_rules"):
        rules = group.get(key) or []
        _check_unique_ids(path, rules, "rule", errors, required=False)
        for index, rule in enumerate(rules):
            _check_rule(f"{path}.{key}[{index}]", rule, errors)


def find_requirement_errors(requirements: dict) -> List[str]:
    """
    Validate a canonical requirement definition.

    Checks field types, value ranges, enumerated tags and id uniqueness
    within each nesting scope. Returns a list of human-readable errors
    (empty when valid).
    """
    errors: List[str] = []
    if not isinstance(requirements, dict):
        return ["Requirement definition must be an object."]

    if not _is_nonempty_str(requirements.get("id")):
        errors.append("id must be a non-empty string.")
    year = requirements.get("year")
    if not isinstance(year, int) or isinstance(year, bool) or not (YEAR_MIN <= year <= YEAR_MAX):
        errors.append(f"year must be an integer between {YEAR_MIN} and {YEAR_MAX} (got {year!r}).")
    if not _is_nonempty_str(requirements.get("department")):
        errors.append("department must be a non-empty string.")
    major = requirements.get("major")
    if major is not None and not isinstance(major, str):
        errors.append("major must be a string when present.")
    total = requirements.get("total_credits")
    if not _is_number(total) or total < 0:
        errors.append(f"totalCredits must be a number >= 0 (got {total!r}).")
    if not _is_nonempty_str(requirements.get("version")):
        errors.append("version must be a non-empty string.")

    categories = requirements.get("categories") or []
    _check_unique_ids("categories", categories, "category", errors)
    for category in categories:
        cpath = f"category '{category.get('id')}'"
        if not _is_nonempty_str(category.get("name")):
            errors.append(f"{cpath}: name must be a non-empty string.")
        if category.get("min_credits") is not None:
            _check_credit_bounds(cpath, category.get("min_credits"), None, errors)

        subcategories = category.get("subcategories") or []
        _check_unique_ids(cpath, subcategories, "subcategory", errors)
        for sub in subcategories:
            spath = f"{cpath} > subcategory '{sub.get('id')}'"
            sub_type = sub.get("type")
            if sub_type not in SUBCATEGORY_TYPES:
                errors.append(f"{spath}: type must be one of {list(SUBCATEGORY_TYPES)} (got {sub_type!r}).")
                continue
            if sub_type == SUBCATEGORY_REQUIRED:
                names = sub.get("course_names")
                if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
                    errors.append(f"{spath}: courseNames must be a list of strings.")
            else:
                _check_credit_bounds(spath, sub.get("min_credits"), sub.get("max_credits"), errors)

            groups = sub.get("groups") or []
            _check_unique_ids(spath, groups, "group", errors)
            for group in groups:
                _check_group(f"{spath} > group '{group.get('id')}'", group, errors)
    return errors


def find_requirement_warnings(requirements: dict) -> List[str]:
    """
    Non-blocking findings: empty groups, regex patterns that do not compile,
    and required entries repeated within one subcategory.
    """
    warnings: List[str] = []
    for category in requirements.get("categories") or []:
        for sub in category.get("subcategories") or []:
            spath = f"category '{category.get('id')}' > subcategory '{sub.get('id')}'"
            if sub.get("type") == SUBCATEGORY_REQUIRED:
                seen: set = set()
                for entry in sub.get("course_names") or []:
                    if entry in seen:
                        warnings.append(f"{spath}: required course '{entry}' is listed more than once.")
                    seen.add(entry)
            elif not sub.get("groups"):
                warnings.append(f"{spath}: no groups defined; nothing can count toward it.")

            for group in sub.get("groups") or []:
                gpath = f"{spath} > group '{group.get('id')}'"
                if not group.get("include_rules"):
                    warnings.append(f"{gpath}: no include rules; the group matches nothing.")
                for rule in (group.get("include_rules") or []) + (group.get("exclude_rules") or []):
                    if rule.get("type") == RULE_TYPE_PATTERN and compile_pattern(rule.get("pattern")) is None:
                        warnings.append(f"{gpath}: pattern {rule.get('pattern')!r} does not compile and matches nothing.")
    return warnings


def validate_requirements(raw: dict) -> Tuple[Optional[dict], List[str], List[str]]:
    """
    Canonicalize then validate an authored definition.

    Returns:
      (canonical_or_None, errors, warnings)
    canonical is None when raw is not an object.
    """
    if not isinstance(raw, dict):
        return None, ["Requirement definition must be an object."], []
    canonical = canonicalize_requirements(raw)
    errors = find_requirement_errors(canonical)
    warnings = find_requirement_warnings(canonical) if not errors else []
    return canonical, errors, warnings


def summarize_issue_counts(results: Dict[str, Tuple[List[str], List[str]]]) -> Dict[str, int]:
    """Count definitions with errors / warnings from {id: (errors, warnings)}."""
    return {
        "total": len(results),
        "with_errors": sum(1 for errors, _ in results.values() if errors),
        "with_warnings": sum(1 for _, warnings in results.values() if warnings),
    }
