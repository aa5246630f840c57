"""
Tests for the requirement-definition adapter (backend/requirements.py):
three generations of authored rule shapes in, one canonical model out,
and export back to the current authored form.
"""

import json
import os

import pytest

from requirements import (
    canonicalize_group,
    canonicalize_requirements,
    canonicalize_subcategory,
    export_requirements,
    iter_groups,
)

DATA_DIR = os.path.join(os.path.dirname(__file__), "..", "..", "data", "requirements")


def _load(name):
    with open(os.path.join(DATA_DIR, name), encoding="utf-8") as fh:
        return json.load(fh)


class TestLegacyRules:
    def test_prefix_and_exclude_split(self):
        group = canonicalize_group({
            "id": "fg-any",
            "minCredits": 0,
            "rules": [
                {"id": "fg-prefix", "type": "prefix", "prefix": "FG"},
                {"id": "no-special", "type": "exclude", "courseIds": ["工学システム特別演習"]},
            ],
        })
        assert group["include_rules"] == [{"type": "prefix", "prefixes": ["FG"], "id": "fg-prefix"}]
        assert group["exclude_rules"] == [
            {"type": "courses", "course_names": ["工学システム特別演習"], "id": "no-special"}
        ]

    def test_specific_becomes_courses(self):
        group = canonicalize_group({"id": "g", "rules": [{"type": "specific", "courseIds": ["線形代数A"]}]})
        assert group["include_rules"] == [{"type": "courses", "course_names": ["線形代数A"]}]

    def test_legacy_pattern_keeps_regex(self):
        group = canonicalize_group({"id": "g", "rules": [{"type": "pattern", "courseIdPattern": "^FG1"}]})
        assert group["include_rules"] == [{"type": "pattern", "pattern": "^FG1"}]

    def test_required_credits_alias(self):
        assert canonicalize_group({"id": "g", "requiredCredits": 6})["min_credits"] == 6

    def test_required_course_ids_alias(self):
        sub = canonicalize_subcategory({"id": "r", "type": "required", "courseIds": ["卒業研究A"]})
        assert sub["course_names"] == ["卒業研究A"]


class TestObjectRules:
    def test_object_form_expands_to_tagged_rules(self):
        group = canonicalize_group({
            "id": "g",
            "minCredits": 2,
            "includeRules": {
                "courseNames": ["線形代数A"],
                "prefixes": ["FG1"],
                "categories": [{"majorCategory": "専門基礎科目", "middleCategory": "工学システム学類"}],
            },
            "excludeRules": {"prefixes": ["FG19"]},
        })
        assert group["include_rules"] == [
            {"type": "courses", "course_names": ["線形代数A"]},
            {"type": "prefix", "prefixes": ["FG1"]},
            {"type": "category", "major_category": "専門基礎科目",
             "middle_category": "工学システム学類", "minor_category": None},
        ]
        assert group["exclude_rules"] == [{"type": "prefix", "prefixes": ["FG19"]}]

    def test_empty_include_object_means_any_course(self):
        group = canonicalize_group({"id": "g", "includeRules": {}})
        assert group["include_rules"] == [{"type": "prefix", "prefixes": [""]}]

    def test_empty_exclude_object_excludes_nothing(self):
        group = canonicalize_group({"id": "g", "includeRules": {"prefixes": ["A"]}, "excludeRules": {}})
        assert group["exclude_rules"] == []

    def test_names_in_required_group_become_entries(self):
        sub = canonicalize_subcategory({
            "id": "r",
            "type": "required",
            "courseNames": ["卒業研究A"],
            "groups": [
                {"id": "only-names", "includeRules": {"courseNames": ["専門英語A"]}},
                {"id": "mixed", "minCredits": 2, "includeRules": {"courseNames": ["専門英語B"], "prefixes": ["FG19"]}},
            ],
        })
        assert sub["course_names"] == ["卒業研究A", "専門英語A", "専門英語B"]
        assert [g["id"] for g in sub["groups"]] == ["mixed"]
        assert sub["groups"][0]["include_rules"] == [{"type": "prefix", "prefixes": ["FG19"]}]


class TestTaggedRules:
    def test_tagged_list_is_canonicalized(self):
        group = canonicalize_group({
            "id": "g",
            "minCredits": 1,
            "maxCredits": 4,
            "includeRules": [
                {"id": "r1", "type": "prefix", "prefixes": ["FG"]},
                {"type": "category", "majorCategory": "基礎科目", "middleCategory": "", "minorCategory": None},
            ],
            "excludeRules": [{"type": "courses", "courseNames": ["x"]}],
        })
        assert group == {
            "id": "g",
            "min_credits": 1,
            "max_credits": 4,
            "include_rules": [
                {"type": "prefix", "prefixes": ["FG"], "id": "r1"},
                {"type": "category", "major_category": "基礎科目", "middle_category": None, "minor_category": None},
            ],
            "exclude_rules": [{"type": "courses", "course_names": ["x"]}],
        }

    def test_unknown_rule_type_passes_through(self):
        group = canonicalize_group({"id": "g", "includeRules": [{"type": "wildcard", "value": "*"}]})
        assert group["include_rules"] == [{"type": "wildcard", "value": "*"}]

    def test_subcategory_type_is_normalized(self):
        assert canonicalize_subcategory({"id": "s", "type": " Elective "})["type"] == "elective"


class TestDefinitions:
    def test_legacy_file_canonicalizes(self):
        canonical = canonicalize_requirements(_load("esys-2023.json"))
        assert canonical["id"] == "esys-2023"
        assert canonical["total_credits"] == 125
        groups = {g["id"]: g for _, _, g in iter_groups(canonical)}
        assert groups["fg-core"]["include_rules"][0]["prefixes"] == ["FG11"]
        assert groups["any-course"]["include_rules"] == [{"type": "prefix", "prefixes": [""]}]

    def test_defaults(self):
        canonical = canonicalize_requirements({"id": "x"})
        assert canonical["version"] == "1.0.0"
        assert canonical["is_default"] is False
        assert canonical["categories"] == []

    @pytest.mark.parametrize("name", ["esys-2024.json", "esys-2023.json"])
    def test_export_then_canonicalize_is_stable(self, name):
        canonical = canonicalize_requirements(_load(name))
        exported = export_requirements(canonical)
        assert canonicalize_requirements(exported) == canonical

    def test_export_is_tagged_list_form(self):
        exported = export_requirements(canonicalize_requirements(_load("esys-2023.json")))
        group = exported["categories"][0]["subcategories"][1]["groups"][1]
        assert "rules" not in group
        assert group["includeRules"] == [{"type": "prefix", "prefixes": ["FG"], "id": "fg-prefix"}]
        assert group["excludeRules"] == [
            {"type": "courses", "courseNames": ["工学システム特別演習"], "id": "no-special"}
        ]

    def test_current_file_exports_unchanged(self):
        raw = _load("esys-2024.json")
        exported = export_requirements(canonicalize_requirements(raw))
        assert exported["categories"] == raw["categories"]
