import math

import pytest
from normalizer import (
    is_in_progress_grade,
    is_passed_grade,
    normalize_course_record,
    normalize_course_records,
    normalize_credits,
)


class TestGrades:
    @pytest.mark.parametrize("grade", ["A+", "A", "B", "C", "P", "認", " A "])
    def test_passing(self, grade):
        assert is_passed_grade(grade)

    @pytest.mark.parametrize("grade", ["D", "F", "", None, "履修中"])
    def test_not_passing(self, grade):
        assert not is_passed_grade(grade)

    def test_in_progress(self):
        assert is_in_progress_grade("履修中")
        assert not is_in_progress_grade("A")


class TestNormalizeCredits:
    @pytest.mark.parametrize("raw,expected", [
        (2, 2),
        (1.5, 1.5),
        (2.0, 2),
        ("2", 2),
        (" 1.5 ", 1.5),
        (None, 0),
        ("", 0),
        ("abc", 0),
        (-3, 0),
        (float("nan"), 0),
        (math.inf, 0),
        (True, 0),
    ])
    def test_values(self, raw, expected):
        assert normalize_credits(raw) == expected

    def test_integral_float_becomes_int(self):
        assert isinstance(normalize_credits("4.0"), int)


class TestNormalizeCourseRecord:
    def test_camel_case_with_course_id(self):
        record = normalize_course_record({
            "id": "uuid-1",
            "courseId": "FG10101",
            "courseName": "微分積分A",
            "credits": "2",
            "grade": "A",
            "isPassed": True,
            "isInProgress": False,
            "year": "2024",
            "semester": "spring",
            "category": "A",
        })
        assert record == {
            "record_id": "uuid-1",
            "course_id": "FG10101",
            "name": "微分積分A",
            "credits": 2,
            "grade": "A",
            "is_passed": True,
            "is_in_progress": False,
            "year": 2024,
            "semester": "spring",
            "category": "A",
        }

    def test_id_only_record_uses_id_as_course_code(self):
        record = normalize_course_record({"id": "FG101", "credits": 4, "isPassed": True})
        assert record["record_id"] == "FG101"
        assert record["course_id"] == "FG101"

    def test_snake_case_fields(self):
        record = normalize_course_record({"course_id": "GA101", "course_name": "総合", "is_passed": "TRUE"})
        assert record["record_id"] == "GA101"
        assert record["name"] == "総合"
        assert record["is_passed"] is True

    def test_flags_fall_back_to_grade(self):
        assert normalize_course_record({"courseId": "X", "grade": "B"})["is_passed"] is True
        in_progress = normalize_course_record({"courseId": "X", "grade": "履修中"})
        assert in_progress["is_passed"] is False
        assert in_progress["is_in_progress"] is True

    def test_passed_wins_over_in_progress(self):
        record = normalize_course_record({"courseId": "X", "isPassed": True, "isInProgress": True})
        assert record["is_in_progress"] is False

    def test_missing_identifiers_get_positional_id(self):
        record = normalize_course_record({"name": "謎の科目"}, index=7)
        assert record["record_id"] == "record-7"
        assert record["course_id"] == ""

    def test_bad_year_becomes_none(self):
        assert normalize_course_record({"courseId": "X", "year": "spring"})["year"] is None


class TestNormalizeCourseRecords:
    def test_duplicate_ids_get_suffixed(self):
        records = normalize_course_records([
            {"id": "FG101", "isPassed": True},
            {"id": "FG101", "isPassed": True},
            {"id": "FG102", "isPassed": True},
        ])
        assert [r["record_id"] for r in records] == ["FG101", "FG101#1", "FG102"]
        assert [r["course_id"] for r in records] == ["FG101", "FG101", "FG102"]

    def test_order_is_preserved(self):
        records = normalize_course_records([{"id": c} for c in ("C", "A", "B")])
        assert [r["record_id"] for r in records] == ["C", "A", "B"]

    def test_none_input(self):
        assert normalize_course_records(None) == []

    def test_renormalizing_is_stable(self):
        once = normalize_course_records([{"id": "FG101", "credits": 2}, {"id": "FG101", "credits": 2}])
        assert normalize_course_records(once) == once
