"""
Selector helpers over the loaded requirement definitions
(entry year -> department -> major).
"""

from requirements import SUBCATEGORY_ELECTIVE, SUBCATEGORY_FREE, SUBCATEGORY_REQUIRED

SUBCATEGORY_TYPE_LABELS = {
    SUBCATEGORY_REQUIRED: "必修科目",
    SUBCATEGORY_ELECTIVE: "選択科目",
    SUBCATEGORY_FREE: "自由科目",
}


def subcategory_label(sub_type: str) -> str:
    return SUBCATEGORY_TYPE_LABELS.get(sub_type, str(sub_type or ""))


def requirement_label(requirements: dict | None) -> str:
    """'2024年入学 工学システム学類' (major appended when present)."""
    if not requirements:
        return ""
    program = requirements.get("department") or ""
    major = requirements.get("major")
    if major:
        program = f"{program} {major}"
    return f"{requirements.get('year')}年入学 {program}"


def get_available_years(requirements_list: list[dict]) -> list[dict]:
    """Distinct entry years, newest first."""
    years = sorted({r.get("year") for r in requirements_list if r.get("year") is not None}, reverse=True)
    return [{"value": year, "label": f"{year}年入学"} for year in years]


def get_available_departments(requirements_list: list[dict], year: int) -> list[dict]:
    departments = list(dict.fromkeys(
        r.get("department") for r in requirements_list if r.get("year") == year
    ))
    return [{"value": d, "label": d} for d in departments]


def get_available_majors(requirements_list: list[dict], year: int, department: str) -> list[dict]:
    """Majors for a year/department; [] when the department has no majors."""
    majors = [
        r.get("major")
        for r in requirements_list
        if r.get("year") == year and r.get("department") == department and r.get("major")
    ]
    return [{"value": m, "label": m} for m in dict.fromkeys(majors)]


def find_requirement(
    requirements_list: list[dict],
    year: int,
    department: str,
    major: str | None = None,
) -> dict | None:
    for r in requirements_list:
        if r.get("year") != year or r.get("department") != department:
            continue
        if major is None:
            if not r.get("major"):
                return r
        elif r.get("major") == major:
            return r
    return None


def requirement_summary(requirements: dict) -> dict:
    return {
        "id": requirements.get("id"),
        "label": requirement_label(requirements),
        "year": requirements.get("year"),
        "department": requirements.get("department"),
        "major": requirements.get("major"),
        "total_credits": requirements.get("total_credits"),
        "is_default": bool(requirements.get("is_default")),
    }
