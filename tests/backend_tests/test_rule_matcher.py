import pytest

from rule_matcher import category_key, compile_pattern, matches, matches_any


def _course(course_id="FG10101", name="微分積分A"):
    return {"course_id": course_id, "name": name}


class TestCoursesRule:
    def test_exact_name_matches(self):
        assert matches({"type": "courses", "course_names": ["微分積分A"]}, _course())

    def test_partial_name_does_not_match(self):
        assert not matches({"type": "courses", "course_names": ["微分積分"]}, _course())

    def test_empty_names_match_nothing(self):
        assert not matches({"type": "courses", "course_names": []}, _course())


class TestPrefixRule:
    @pytest.mark.parametrize("prefixes,expected", [
        (["FG"], True),
        (["FG10", "GA"], True),
        (["GA"], False),
        ([""], True),
        ([], False),
    ])
    def test_prefix_matching(self, prefixes, expected):
        assert matches({"type": "prefix", "prefixes": prefixes}, _course()) is expected

    def test_prefix_is_case_sensitive(self):
        assert not matches({"type": "prefix", "prefixes": ["fg"]}, _course())


class TestCategoryRule:
    RULE = {"type": "category", "major_category": "専門基礎科目", "middle_category": None, "minor_category": None}

    def test_uses_resolver_prefixes(self):
        assert matches(self.RULE, _course(), lambda rule: ["FG10"])
        assert not matches(self.RULE, _course(), lambda rule: ["FG16"])

    def test_without_resolver_matches_nothing(self):
        assert not matches(self.RULE, _course())

    def test_empty_resolution_matches_nothing(self):
        assert not matches(self.RULE, _course(), lambda rule: [])

    def test_category_key_fills_missing_levels(self):
        assert category_key(self.RULE) == ("専門基礎科目", "", "")


class TestPatternRule:
    def test_regex_searches_course_id(self):
        assert matches({"type": "pattern", "pattern": "^FG1"}, _course())
        assert not matches({"type": "pattern", "pattern": "^GA"}, _course())

    def test_broken_regex_fails_closed(self):
        assert compile_pattern("(FG") is None
        assert not matches({"type": "pattern", "pattern": "(FG"}, _course())


class TestFailClosed:
    @pytest.mark.parametrize("rule", [
        {"type": "wildcard"},
        {"type": None},
        {},
        "prefix",
        None,
    ])
    def test_unknown_rules_never_match(self, rule):
        assert matches(rule, _course()) is False

    def test_matches_any_with_no_rules(self):
        assert matches_any([], _course()) is False
        assert matches_any(None, _course()) is False

    def test_matches_any_skips_bad_rules(self):
        rules = [{"type": "wildcard"}, {"type": "prefix", "prefixes": ["FG"]}]
        assert matches_any(rules, _course()) is True
