import re

# Rule kinds the matcher understands. Anything else matches nothing.
RULE_TYPE_COURSES = "courses"
RULE_TYPE_PREFIX = "prefix"
RULE_TYPE_CATEGORY = "category"
RULE_TYPE_PATTERN = "pattern"

KNOWN_RULE_TYPES = {
    RULE_TYPE_COURSES,
    RULE_TYPE_PREFIX,
    RULE_TYPE_CATEGORY,
    RULE_TYPE_PATTERN,
}


def category_key(rule: dict) -> tuple[str, str, str]:
    """Hashable (major, middle, minor) path of a category rule."""
    return (
        str(rule.get("major_category") or ""),
        str(rule.get("middle_category") or ""),
        str(rule.get("minor_category") or ""),
    )


def compile_pattern(pattern) -> re.Pattern | None:
    """Compile a legacy pattern rule; None when the regex is invalid."""
    try:
        return re.compile(str(pattern or ""))
    except re.error:
        return None


def _matches_courses(rule: dict, course: dict) -> bool:
    return course.get("name", "") in (rule.get("course_names") or [])


def _matches_prefix(rule: dict, course: dict) -> bool:
    course_id = course.get("course_id", "")
    return any(course_id.startswith(str(p)) for p in rule.get("prefixes") or [])


def _matches_category(rule: dict, course: dict, resolve_category) -> bool:
    if resolve_category is None:
        return False
    course_id = course.get("course_id", "")
    return any(course_id.startswith(p) for p in resolve_category(rule))


def _matches_pattern(rule: dict, course: dict) -> bool:
    compiled = compile_pattern(rule.get("pattern"))
    if compiled is None:
        return False
    return compiled.search(course.get("course_id", "")) is not None


def matches(rule: dict, course: dict, resolve_category=None) -> bool:
    """
    Return True if one rule accepts one normalized course record.

    rule shapes:
      {"type": "courses",  "course_names": [...]}     exact name equality
      {"type": "prefix",   "prefixes": [...]}         course_id prefix
      {"type": "category", "major_category": ..., "middle_category": ..., "minor_category": ...}
      {"type": "pattern",  "pattern": "^FG1"}         legacy regex on course_id

    resolve_category(rule) -> list[str] maps a category rule to id prefixes;
    without it category rules match nothing. Unknown types and broken
    patterns fail closed (False) instead of raising.
    """
    if not isinstance(rule, dict):
        return False
    rule_type = rule.get("type")
    if rule_type == RULE_TYPE_COURSES:
        return _matches_courses(rule, course)
    if rule_type == RULE_TYPE_PREFIX:
        return _matches_prefix(rule, course)
    if rule_type == RULE_TYPE_CATEGORY:
        return _matches_category(rule, course, resolve_category)
    if rule_type == RULE_TYPE_PATTERN:
        return _matches_pattern(rule, course)
    return False


def matches_any(rules, course: dict, resolve_category=None) -> bool:
    return any(matches(rule, course, resolve_category) for rule in rules or [])
