"""Tests for relevance extraction from rules."""

from task_validator import BusinessRule, TaskRules
from task_validator.relevance import extract_relevant_paths


def make_rules(*rules: BusinessRule) -> TaskRules:
    return TaskRules(task_id="T-1", rules=list(rules))


class TestExtractRelevantPaths:
    def test_paths_from_criteria(self):
        rules = make_rules(
            BusinessRule(
                id="R1",
                description="login",
                criteria=["Handler in src/api/login.ts", "Route in src/routes/auth.ts"],
            ),
        )
        assert extract_relevant_paths(rules) == ["src/api/login.ts", "src/routes/auth.ts"]

    def test_only_first_path_per_criterion(self):
        rules = make_rules(
            BusinessRule(id="R1", description="", criteria=["src/a.ts and src/b.ts"]),
        )
        assert extract_relevant_paths(rules) == ["src/a.ts"]

    def test_unique_first_seen_order(self):
        rules = make_rules(
            BusinessRule(id="R1", description="", criteria=["see src/b.ts", "see src/a.ts"]),
            BusinessRule(id="R2", description="", criteria=["again src/b.ts"]),
        )
        assert extract_relevant_paths(rules) == ["src/b.ts", "src/a.ts"]

    def test_criteria_paths_win_over_categories(self):
        rules = make_rules(
            BusinessRule(id="R1", description="", category="api"),
            BusinessRule(id="R2", description="", criteria=["src/db/models.ts"]),
        )
        assert extract_relevant_paths(rules) == ["src/db/models.ts"]

    def test_category_fallback(self):
        rules = make_rules(
            BusinessRule(id="R1", description="", category="controller"),
            BusinessRule(id="R2", description="", category="routes"),
            BusinessRule(id="R3", description="", category="api"),
        )
        assert extract_relevant_paths(rules) == ["src/api"]

    def test_category_match_is_case_sensitive(self):
        rules = make_rules(BusinessRule(id="R1", description="", category="API"))
        assert extract_relevant_paths(rules) == []

    def test_no_paths_means_no_filtering(self):
        rules = make_rules(
            BusinessRule(id="R1", description="", category="security", criteria=["Use bcrypt"]),
        )
        assert extract_relevant_paths(rules) == []

    def test_rules_without_criteria(self):
        assert extract_relevant_paths(make_rules(BusinessRule(id="R1", description="x"))) == []

    def test_empty_rule_set(self):
        assert extract_relevant_paths(make_rules()) == []
