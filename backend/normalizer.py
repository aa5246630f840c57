import math

# Grades that count as a passed course (TWINS final-grade values).
PASSING_GRADES = {"A+", "A", "B", "C", "P", "認"}

# Grade shown for a course that is currently being taken.
IN_PROGRESS_GRADE = "履修中"

_BOOL_TRUTHY = {"true", "1", "yes", "y"}


def is_passed_grade(grade) -> bool:
    return str(grade or "").strip() in PASSING_GRADES


def is_in_progress_grade(grade) -> bool:
    return str(grade or "").strip() == IN_PROGRESS_GRADE


def normalize_credits(raw) -> float | int:
    """
    Coerce a credit value to a non-negative number.

    Handles: int/float, numeric strings ('2', '1.5'), None, NaN, negatives.
    Anything that is not a usable non-negative number becomes 0.
    """
    if raw is None or isinstance(raw, bool):
        return 0
    if isinstance(raw, (int, float)):
        value = raw
    else:
        try:
            value = float(str(raw).strip())
        except (TypeError, ValueError):
            return 0
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return 0
        if value.is_integer():
            value = int(value)
    return value if value > 0 else 0


def _coerce_flag(raw) -> bool | None:
    if raw is None:
        return None
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and math.isnan(raw):
            return None
        return bool(raw)
    text = str(raw).strip().lower()
    if not text:
        return None
    return text in _BOOL_TRUTHY


def _first_present(raw: dict, *keys):
    for key in keys:
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(value, float) and math.isnan(value):
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def normalize_course_record(raw: dict, index: int = 0) -> dict:
    """
    Normalize one course record to the shape the requirement engine reads.

    Input field names vary by call site ('id' vs 'courseId', 'name' vs
    'courseName', camelCase vs snake_case). The result always carries:
      {
        "record_id":      "uuid-or-code",   # de-duplication key
        "course_id":      "FG10101",        # used by prefix/category rules
        "name":           "微分積分学",       # used by name rules
        "credits":        2,
        "grade":          "A",
        "is_passed":      True,
        "is_in_progress": False,
        "year":           2024 | None,
        "semester":       "spring" | None,
        "category":       "A" | None,
      }
    """
    raw = raw or {}
    explicit_code = _first_present(raw, "course_id", "courseId", "code")
    raw_id = _first_present(raw, "record_id", "id")

    course_id = str(explicit_code if explicit_code is not None else (raw_id or "")).strip()
    if raw_id is not None:
        record_id = str(raw_id).strip()
    elif course_id:
        record_id = course_id
    else:
        record_id = f"record-{index}"

    grade = str(_first_present(raw, "grade", "final_grade", "finalGrade") or "").strip()

    is_passed = _coerce_flag(_first_present(raw, "is_passed", "isPassed"))
    if is_passed is None:
        is_passed = is_passed_grade(grade)
    is_in_progress = _coerce_flag(_first_present(raw, "is_in_progress", "isInProgress"))
    if is_in_progress is None:
        is_in_progress = is_in_progress_grade(grade)

    year = _first_present(raw, "year")
    try:
        year = int(year) if year is not None else None
    except (TypeError, ValueError):
        year = None

    return {
        "record_id": record_id,
        "course_id": course_id,
        "name": str(_first_present(raw, "name", "course_name", "courseName") or ""),
        "credits": normalize_credits(raw.get("credits")),
        "grade": grade,
        "is_passed": bool(is_passed),
        "is_in_progress": bool(is_in_progress) and not is_passed,
        "year": year,
        "semester": _first_present(raw, "semester"),
        "category": _first_present(raw, "category"),
    }


def normalize_course_records(raws) -> list[dict]:
    """
    Normalize a list of course records and guarantee unique record_ids.

    A record_id seen earlier in the list gets a positional suffix
    ('FG101' -> 'FG101#2'), so retaken courses sharing a course code stay
    distinct for de-duplication. Input order is preserved.
    """
    out: list[dict] = []
    seen: set[str] = set()
    for index, raw in enumerate(raws or []):
        record = normalize_course_record(raw, index)
        record_id = record["record_id"]
        if record_id in seen:
            record_id = f"{record_id}#{index}"
            while record_id in seen:
                record_id = f"{record_id}_"
            record["record_id"] = record_id
        seen.add(record_id)
        out.append(record)
    return out
