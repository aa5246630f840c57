from datetime import datetime, timezone

from course_types import resolve_category_prefixes
from normalizer import normalize_course_records
from requirements import (
    REQUIRED_ALTERNATIVE_SEP,
    SUBCATEGORY_ELECTIVE,
    SUBCATEGORY_FREE,
    SUBCATEGORY_REQUIRED,
    canonicalize_requirements,
    iter_groups,
)
from rule_matcher import (
    KNOWN_RULE_TYPES,
    RULE_TYPE_CATEGORY,
    RULE_TYPE_PATTERN,
    category_key,
    compile_pattern,
    matches_any,
)


def make_category_resolver(course_type_master: list | None):
    """
    Build a rule -> prefixes resolver over an already-loaded master.

    Resolutions are memoized in a dict owned by the returned closure, so each
    calculation gets its own cache and nothing is shared between calls.
    """
    master = course_type_master or []
    cache: dict[tuple[str, str, str], list[str]] = {}

    def resolve(rule: dict) -> list[str]:
        key = category_key(rule)
        if key not in cache:
            cache[key] = resolve_category_prefixes(master, *key)
        return cache[key]

    return resolve


def _matched_entry(course: dict) -> dict:
    return {
        "record_id": course["record_id"],
        "course_id": course["course_id"],
        "course_name": course["name"],
        "credits": course["credits"],
        "grade": course["grade"],
        "is_passed": course["is_passed"],
        "is_in_progress": course["is_in_progress"],
    }


def _is_countable(course: dict) -> bool:
    return bool(course["is_passed"] or course["is_in_progress"])


def _passed_credits(matched: list[dict]):
    return sum(m["credits"] for m in matched if m["is_passed"])


def _in_progress_credits(matched: list[dict]):
    return sum(m["credits"] for m in matched if m["is_in_progress"])


def _cap(value, cap):
    if cap is None:
        return value
    return min(value, cap)


def _remaining(required, earned):
    return max(0, required - earned)


def _has_pending_lookup(group: dict, resolve_category) -> bool:
    for rule in (group.get("include_rules") or []) + (group.get("exclude_rules") or []):
        if rule.get("type") != RULE_TYPE_CATEGORY:
            continue
        if resolve_category is None or not resolve_category(rule):
            return True
    return False


def evaluate_group(
    group: dict,
    courses: list[dict],
    used_ids: set[str],
    resolve_category=None,
) -> dict:
    """
    Collect the credits of one group from the courses not yet used.

    A course is a member when it matches at least one include rule and no
    exclude rule, and it is passed or in progress. Every member's record_id
    is added to used_ids (mutated in place) so later groups cannot reuse it.

    earned_credits is capped at max_credits; the overflow is reported as
    excess_credits and does not affect is_satisfied.
    """
    include_rules = group.get("include_rules") or []
    exclude_rules = group.get("exclude_rules") or []

    matched: list[dict] = []
    for course in courses:
        if course["record_id"] in used_ids or not _is_countable(course):
            continue
        if not matches_any(include_rules, course, resolve_category):
            continue
        if matches_any(exclude_rules, course, resolve_category):
            continue
        used_ids.add(course["record_id"])
        matched.append(_matched_entry(course))

    min_credits = group.get("min_credits") or 0
    max_credits = group.get("max_credits")
    uncapped = _passed_credits(matched)
    earned = _cap(uncapped, max_credits)

    return {
        "group_id": group.get("id"),
        "is_satisfied": earned >= min_credits,
        "earned_credits": earned,
        "in_progress_credits": _in_progress_credits(matched),
        "required_credits": min_credits,
        "max_credits": max_credits,
        "remaining_credits": _remaining(min_credits, earned),
        "excess_credits": uncapped - earned,
        "lookup_pending": _has_pending_lookup(group, resolve_category),
        "matched_courses": matched,
    }


def _find_required_course(name: str, courses: list[dict], used_ids: set[str]) -> dict | None:
    for course in courses:
        if course["name"] != name:
            continue
        if course["record_id"] in used_ids or not _is_countable(course):
            continue
        return course
    return None


def _evaluate_required(
    subcategory: dict,
    courses: list[dict],
    used_ids: set[str],
    resolve_category,
) -> dict:
    named_matches: list[dict] = []
    missing: list[str] = []

    for entry in subcategory.get("course_names") or []:
        alternatives = [n.strip() for n in str(entry).split(REQUIRED_ALTERNATIVE_SEP) if n.strip()]
        if not alternatives:
            continue
        selected = None
        for name in alternatives:
            selected = _find_required_course(name, courses, used_ids)
            if selected is not None:
                break
        if selected is None:
            missing.append(alternatives[0])
            continue
        used_ids.add(selected["record_id"])
        named_matches.append(_matched_entry(selected))

    group_statuses = [
        evaluate_group(group, courses, used_ids, resolve_category)
        for group in subcategory.get("groups") or []
    ]

    earned = _passed_credits(named_matches) + sum(g["earned_credits"] for g in group_statuses)
    in_progress = _in_progress_credits(named_matches) + sum(
        g["in_progress_credits"] for g in group_statuses
    )
    required = sum(m["credits"] for m in named_matches) + sum(
        g["required_credits"] for g in group_statuses
    )
    matched_courses = named_matches + [m for g in group_statuses for m in g["matched_courses"]]

    return {
        "subcategory_id": subcategory.get("id"),
        "subcategory_type": SUBCATEGORY_REQUIRED,
        "is_satisfied": not missing and all(g["is_satisfied"] for g in group_statuses),
        "earned_credits": earned,
        "in_progress_credits": in_progress,
        "required_credits": required,
        "max_credits": None,
        "remaining_credits": _remaining(required, earned),
        "missing_courses": missing,
        "group_statuses": group_statuses,
        "matched_courses": matched_courses,
    }


def _evaluate_credit_subcategory(
    subcategory: dict,
    courses: list[dict],
    used_ids: set[str],
    resolve_category,
) -> dict:
    # Groups share one shrinking pool: earlier groups claim ambiguous courses first.
    group_statuses = [
        evaluate_group(group, courses, used_ids, resolve_category)
        for group in subcategory.get("groups") or []
    ]

    min_credits = subcategory.get("min_credits") or 0
    max_credits = subcategory.get("max_credits")
    uncapped = sum(g["earned_credits"] for g in group_statuses)
    earned = _cap(uncapped, max_credits)

    return {
        "subcategory_id": subcategory.get("id"),
        "subcategory_type": subcategory.get("type"),
        "is_satisfied": earned >= min_credits,
        "earned_credits": earned,
        "in_progress_credits": sum(g["in_progress_credits"] for g in group_statuses),
        "required_credits": min_credits,
        "max_credits": max_credits,
        "remaining_credits": _remaining(min_credits, earned),
        "excess_credits": uncapped - earned,
        "missing_courses": [],
        "group_statuses": group_statuses,
        "matched_courses": [m for g in group_statuses for m in g["matched_courses"]],
    }


def evaluate_subcategory(
    subcategory: dict,
    courses: list[dict],
    used_ids: set[str],
    resolve_category=None,
) -> dict:
    """
    Evaluate one subcategory against the unused courses.

    required:       every course_names entry must resolve to a passed or
                    in-progress course (first unused record with that name).
    elective/free:  groups in order, group sums capped at the subcategory
                    max_credits; satisfied when earned >= min_credits.
    Any other type consumes nothing and is never satisfied.
    """
    sub_type = subcategory.get("type")
    if sub_type == SUBCATEGORY_REQUIRED:
        return _evaluate_required(subcategory, courses, used_ids, resolve_category)
    if sub_type in (SUBCATEGORY_ELECTIVE, SUBCATEGORY_FREE):
        return _evaluate_credit_subcategory(subcategory, courses, used_ids, resolve_category)

    min_credits = subcategory.get("min_credits") or 0
    return {
        "subcategory_id": subcategory.get("id"),
        "subcategory_type": sub_type,
        "is_satisfied": False,
        "earned_credits": 0,
        "in_progress_credits": 0,
        "required_credits": min_credits,
        "max_credits": subcategory.get("max_credits"),
        "remaining_credits": min_credits,
        "missing_courses": [],
        "group_statuses": [],
        "matched_courses": [],
    }


def evaluate_category(
    category: dict,
    courses: list[dict],
    used_ids: set[str],
    resolve_category=None,
) -> dict:
    """Evaluate subcategories in order and roll their credits up."""
    subcategory_statuses = [
        evaluate_subcategory(sub, courses, used_ids, resolve_category)
        for sub in category.get("subcategories") or []
    ]

    earned = sum(s["earned_credits"] for s in subcategory_statuses)
    in_progress = sum(s["in_progress_credits"] for s in subcategory_statuses)
    required = sum(s["required_credits"] for s in subcategory_statuses)
    is_satisfied = all(s["is_satisfied"] for s in subcategory_statuses)

    # Optional category-level minimum, layered over the subcategory roll-up.
    min_credits = category.get("min_credits")
    if min_credits is not None:
        required = max(required, min_credits)
        is_satisfied = is_satisfied and earned >= min_credits

    return {
        "category_id": category.get("id"),
        "category_name": category.get("name", ""),
        "is_satisfied": is_satisfied,
        "earned_credits": earned,
        "in_progress_credits": in_progress,
        "required_credits": required,
        "remaining_credits": _remaining(required, earned),
        "subcategory_statuses": subcategory_statuses,
    }


def _collect_rule_notes(requirements: dict, resolve_category) -> list[str]:
    notes: list[str] = []
    for category, sub, group in iter_groups(requirements):
        where = f"{category.get('id')} > {sub.get('id')} > {group.get('id')}"
        for rule in (group.get("include_rules") or []) + (group.get("exclude_rules") or []):
            rule_type = rule.get("type")
            if rule_type not in KNOWN_RULE_TYPES:
                notes.append(f"Rule type {rule_type!r} in {where} is not supported and matches nothing.")
            elif rule_type == RULE_TYPE_PATTERN and compile_pattern(rule.get("pattern")) is None:
                notes.append(f"Pattern {rule.get('pattern')!r} in {where} is invalid and matches nothing.")
            elif rule_type == RULE_TYPE_CATEGORY and not resolve_category(rule):
                path = " / ".join(p for p in category_key(rule) if p)
                notes.append(
                    f"Category '{path}' in {where} resolved to no courses "
                    "(course type lookup pending)."
                )
    return notes


def calculate_requirement_status(
    requirements: dict,
    courses: list[dict],
    course_type_master: list | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Evaluate a requirement tree against a student's courses.

    Categories, subcategories and groups are evaluated in declaration order
    over one shrinking pool of courses; a course counted anywhere is never
    counted again. Inputs are not mutated and every call starts from a fresh
    used set, so repeated calls with equal inputs give equal results (apart
    from calculated_at).

    requirements may be canonical or authored (camelCase, legacy rules);
    it is canonicalized first. courses may be raw records in any supported
    field naming; they are normalized first. course_type_master must already be loaded; without it,
    category rules match nothing and a note is added.
    """
    requirements = canonicalize_requirements(requirements)
    records = normalize_course_records(courses)
    used_ids: set[str] = set()
    resolve_category = make_category_resolver(course_type_master)

    notes = _collect_rule_notes(requirements, resolve_category)

    category_statuses = [
        evaluate_category(category, records, used_ids, resolve_category)
        for category in requirements.get("categories") or []
    ]

    unmatched = [_matched_entry(c) for c in records if c["record_id"] not in used_ids]

    total_required = requirements.get("total_credits") or 0
    total_earned = sum(c["earned_credits"] for c in category_statuses)
    total_in_progress = sum(c["in_progress_credits"] for c in category_statuses)
    calculated_at = (now or datetime.now(timezone.utc)).isoformat()

    return {
        "requirements_id": requirements.get("id"),
        "total_earned_credits": total_earned,
        "total_in_progress_credits": total_in_progress,
        "total_required_credits": total_required,
        "remaining_credits": _remaining(total_required, total_earned),
        "is_graduation_eligible": total_earned >= total_required,
        "category_statuses": category_statuses,
        "unmatched_courses": unmatched,
        "notes": notes,
        "calculated_at": calculated_at,
    }
