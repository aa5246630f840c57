"""
Requirement-definition schema adapter.

Definitions arrive in the authored (camelCase, JSON) form and in three
generations of rule shape. Everything is converted here into one canonical
snake_case dict model before it reaches the allocator; export_requirements()
converts back for persistence.

Supported inputs on a group:
  1) legacy flat list:   "rules": [{"type": "specific", "courseIds": [...]},
                                   {"type": "prefix", "prefix": "FG11"},
                                   {"type": "pattern", "courseIdPattern": "^FG"},
                                   {"type": "exclude", "courseIds": [...]}]
  2) object form:        "includeRules": {"courseNames": [...], "prefixes": [...],
                                          "categories": [{...}]}
                         "excludeRules": {...same keys...}
  3) tagged list form:   "includeRules": [{"type": "prefix", "prefixes": [...]}, ...]
                         "excludeRules": [...]
"""

from rule_matcher import (
    RULE_TYPE_CATEGORY,
    RULE_TYPE_COURSES,
    RULE_TYPE_PATTERN,
    RULE_TYPE_PREFIX,
)

SUBCATEGORY_REQUIRED = "required"
SUBCATEGORY_ELECTIVE = "elective"
SUBCATEGORY_FREE = "free"
SUBCATEGORY_TYPES = (SUBCATEGORY_REQUIRED, SUBCATEGORY_ELECTIVE, SUBCATEGORY_FREE)

RULE_TYPES = (RULE_TYPE_COURSES, RULE_TYPE_PREFIX, RULE_TYPE_CATEGORY, RULE_TYPE_PATTERN)

# Legacy rule tags that only appear in the flat `rules` list.
LEGACY_SPECIFIC = "specific"
LEGACY_EXCLUDE = "exclude"

# Separator for alternatives inside one required entry: "線形代数A,線形代数B".
REQUIRED_ALTERNATIVE_SEP = ","


def _get(raw: dict, *keys, default=None):
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _clean_strings(values) -> list[str]:
    return [str(v) for v in _as_list(values) if str(v).strip()]


def _with_id(out: dict, raw: dict) -> dict:
    if raw.get("id") is not None:
        out["id"] = raw["id"]
    return out


def _canonical_category_rule(raw: dict) -> dict:
    return {
        "type": RULE_TYPE_CATEGORY,
        "major_category": _get(raw, "major_category", "majorCategory"),
        "middle_category": _get(raw, "middle_category", "middleCategory") or None,
        "minor_category": _get(raw, "minor_category", "minorCategory") or None,
    }


def _canonical_rule(raw) -> dict:
    """Canonicalize one tagged rule. Unknown tags pass through untouched."""
    if not isinstance(raw, dict):
        return {"type": None, "value": raw}
    rule_type = raw.get("type")

    if rule_type in (RULE_TYPE_COURSES, LEGACY_SPECIFIC):
        out = {
            "type": RULE_TYPE_COURSES,
            "course_names": _clean_strings(_get(raw, "course_names", "courseNames", "courseIds")),
        }
    elif rule_type == RULE_TYPE_PREFIX:
        out = {
            "type": RULE_TYPE_PREFIX,
            "prefixes": [str(p) for p in _as_list(_get(raw, "prefixes", "prefix"))],
        }
    elif rule_type == RULE_TYPE_CATEGORY:
        out = _canonical_category_rule(raw)
    elif rule_type == RULE_TYPE_PATTERN:
        out = {
            "type": RULE_TYPE_PATTERN,
            "pattern": str(_get(raw, "pattern", "courseIdPattern", default="")),
        }
    else:
        return dict(raw)
    return _with_id(out, raw)


def _rules_from_object(raw: dict, empty_means_any: bool) -> list[dict]:
    """
    Expand an object-form rule set into tagged rules.

    An include object with no names, prefixes or categories means "any
    course"; it becomes a prefix rule on "" so that meaning survives.
    """
    rules: list[dict] = []
    names = _clean_strings(_get(raw, "course_names", "courseNames"))
    if names:
        rules.append({"type": RULE_TYPE_COURSES, "course_names": names})
    prefixes = [str(p) for p in _as_list(_get(raw, "prefixes")) if str(p)]
    if prefixes:
        rules.append({"type": RULE_TYPE_PREFIX, "prefixes": prefixes})
    for entry in _as_list(_get(raw, "categories")):
        if isinstance(entry, dict) and _get(entry, "major_category", "majorCategory"):
            rules.append(_canonical_category_rule(entry))
    if not rules and empty_means_any:
        rules.append({"type": RULE_TYPE_PREFIX, "prefixes": [""]})
    return rules


def _canonical_rule_set(raw, empty_means_any: bool) -> list[dict]:
    if raw is None:
        return []
    if isinstance(raw, dict):
        return _rules_from_object(raw, empty_means_any)
    return [_canonical_rule(r) for r in _as_list(raw)]


def _split_legacy_rules(raw_rules) -> tuple[list[dict], list[dict]]:
    include: list[dict] = []
    exclude: list[dict] = []
    for raw in _as_list(raw_rules):
        if isinstance(raw, dict) and raw.get("type") == LEGACY_EXCLUDE:
            names = _clean_strings(_get(raw, "course_names", "courseNames", "courseIds"))
            prefixes = [str(p) for p in _as_list(_get(raw, "prefixes", "prefix")) if str(p)]
            if names:
                exclude.append(_with_id({"type": RULE_TYPE_COURSES, "course_names": names}, raw))
            if prefixes:
                exclude.append({"type": RULE_TYPE_PREFIX, "prefixes": prefixes})
            continue
        include.append(_canonical_rule(raw))
    return include, exclude


def canonicalize_group(raw: dict) -> dict:
    include: list[dict] = []
    exclude: list[dict] = []

    legacy = _get(raw, "rules")
    if legacy is not None:
        legacy_include, legacy_exclude = _split_legacy_rules(legacy)
        include.extend(legacy_include)
        exclude.extend(legacy_exclude)

    include.extend(_canonical_rule_set(_get(raw, "include_rules", "includeRules"), True))
    exclude.extend(_canonical_rule_set(_get(raw, "exclude_rules", "excludeRules"), False))

    return {
        "id": _get(raw, "id"),
        "min_credits": _get(raw, "min_credits", "minCredits", "requiredCredits", default=0),
        "max_credits": _get(raw, "max_credits", "maxCredits"),
        "include_rules": include,
        "exclude_rules": exclude,
    }


def _canonicalize_required(raw: dict) -> dict:
    course_names = _clean_strings(_get(raw, "course_names", "courseNames", "courseIds"))
    groups: list[dict] = []
    for raw_group in _as_list(_get(raw, "groups")):
        if not isinstance(raw_group, dict):
            continue
        include_raw = _get(raw_group, "include_rules", "includeRules")
        if isinstance(include_raw, dict):
            # Object-form names inside a required group are mandatory entries,
            # not credit-counted group members.
            course_names.extend(_clean_strings(_get(include_raw, "course_names", "courseNames")))
            remainder = {k: v for k, v in include_raw.items() if k not in ("courseNames", "course_names")}
            if not _rules_from_object(remainder, False):
                continue
            raw_group = {**raw_group, "includeRules": remainder}
            raw_group.pop("include_rules", None)
        groups.append(canonicalize_group(raw_group))
    return {
        "id": _get(raw, "id"),
        "type": SUBCATEGORY_REQUIRED,
        "course_names": course_names,
        "groups": groups,
        "notes": _get(raw, "notes"),
    }


def canonicalize_subcategory(raw: dict) -> dict:
    sub_type = str(_get(raw, "type", default="")).strip().lower()
    if sub_type == SUBCATEGORY_REQUIRED:
        return _canonicalize_required(raw)
    return {
        "id": _get(raw, "id"),
        "type": sub_type,
        "min_credits": _get(raw, "min_credits", "minCredits", default=0),
        "max_credits": _get(raw, "max_credits", "maxCredits"),
        "groups": [canonicalize_group(g) for g in _as_list(_get(raw, "groups")) if isinstance(g, dict)],
        "notes": _get(raw, "notes"),
    }


def canonicalize_category(raw: dict) -> dict:
    return {
        "id": _get(raw, "id"),
        "name": _get(raw, "name", default=""),
        "subcategories": [
            canonicalize_subcategory(s)
            for s in _as_list(_get(raw, "subcategories"))
            if isinstance(s, dict)
        ],
        "min_credits": _get(raw, "min_credits", "minCredits"),
    }


def canonicalize_requirements(raw: dict) -> dict:
    """Convert an authored or legacy definition into the canonical model."""
    raw = raw or {}
    return {
        "id": _get(raw, "id"),
        "name": _get(raw, "name"),
        "year": _get(raw, "year"),
        "department": _get(raw, "department", default=""),
        "major": _get(raw, "major"),
        "total_credits": _get(raw, "total_credits", "totalCredits", default=0),
        "categories": [
            canonicalize_category(c)
            for c in _as_list(_get(raw, "categories"))
            if isinstance(c, dict)
        ],
        "version": _get(raw, "version", default="1.0.0"),
        "is_default": bool(_get(raw, "is_default", "isDefault", default=False)),
        "created_at": _get(raw, "created_at", "createdAt"),
        "updated_at": _get(raw, "updated_at", "updatedAt"),
    }


# ── Export (canonical -> authored camelCase) ──────────────────────────────────

def _drop_none(d: dict) -> dict:
    return {k: v for k, v in d.items() if v is not None}


def export_rule(rule: dict) -> dict:
    rule_type = rule.get("type")
    if rule_type == RULE_TYPE_COURSES:
        out = {"type": rule_type, "courseNames": list(rule.get("course_names") or [])}
    elif rule_type == RULE_TYPE_PREFIX:
        out = {"type": rule_type, "prefixes": list(rule.get("prefixes") or [])}
    elif rule_type == RULE_TYPE_CATEGORY:
        out = _drop_none({
            "type": rule_type,
            "majorCategory": rule.get("major_category"),
            "middleCategory": rule.get("middle_category"),
            "minorCategory": rule.get("minor_category"),
        })
    elif rule_type == RULE_TYPE_PATTERN:
        out = {"type": rule_type, "courseIdPattern": rule.get("pattern", "")}
    else:
        return dict(rule)
    return _with_id(out, rule)


def export_group(group: dict) -> dict:
    return _drop_none({
        "id": group.get("id"),
        "minCredits": group.get("min_credits"),
        "maxCredits": group.get("max_credits"),
        "includeRules": [export_rule(r) for r in group.get("include_rules") or []],
        "excludeRules": [export_rule(r) for r in group.get("exclude_rules") or []],
    })


def export_subcategory(sub: dict) -> dict:
    groups = [export_group(g) for g in sub.get("groups") or []]
    if sub.get("type") == SUBCATEGORY_REQUIRED:
        return _drop_none({
            "id": sub.get("id"),
            "type": SUBCATEGORY_REQUIRED,
            "courseNames": list(sub.get("course_names") or []),
            "groups": groups or None,
            "notes": sub.get("notes"),
        })
    return _drop_none({
        "id": sub.get("id"),
        "type": sub.get("type"),
        "minCredits": sub.get("min_credits"),
        "maxCredits": sub.get("max_credits"),
        "groups": groups,
        "notes": sub.get("notes"),
    })


def export_requirements(requirements: dict) -> dict:
    """Convert the canonical model back to the authored JSON form."""
    return _drop_none({
        "id": requirements.get("id"),
        "name": requirements.get("name"),
        "year": requirements.get("year"),
        "department": requirements.get("department"),
        "major": requirements.get("major"),
        "totalCredits": requirements.get("total_credits"),
        "categories": [
            _drop_none({
                "id": c.get("id"),
                "name": c.get("name"),
                "subcategories": [export_subcategory(s) for s in c.get("subcategories") or []],
                "minCredits": c.get("min_credits"),
            })
            for c in requirements.get("categories") or []
        ],
        "version": requirements.get("version"),
        "isDefault": requirements.get("is_default"),
        "createdAt": requirements.get("created_at"),
        "updatedAt": requirements.get("updated_at"),
    })


def iter_groups(requirements: dict):
    """Yield (category, subcategory, group) for every group in the tree."""
    for category in requirements.get("categories") or []:
        for sub in category.get("subcategories") or []:
            for group in sub.get("groups") or []:
                yield category, sub, group
