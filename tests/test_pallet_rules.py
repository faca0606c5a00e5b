"""Tests for pallet completion rules and fill figures."""

from types import SimpleNamespace

from crowdvine.models.pallet import CompletionCondition, CompletionGroup, CompletionRules
from crowdvine.services.pallets import (
    evaluate_completion_rules,
    fill_data,
    format_completion_rules,
)


def bottles_at_least(n):
    return CompletionGroup(conditions=[CompletionCondition(metric="bottles", op=">=", value=n)])


def profit_at_least(n):
    return CompletionGroup(conditions=[CompletionCondition(metric="profit_sek", op=">=", value=n)])


class TestEvaluateCompletionRules:
    def test_no_rules_falls_back(self):
        assert evaluate_completion_rules(None, {"bottles": 700}) is None
        assert evaluate_completion_rules(CompletionRules(), {"bottles": 700}) is None

    def test_sequential_first_match_completes(self):
        rules = CompletionRules(
            mode="SEQUENTIAL", groups=[bottles_at_least(600), profit_at_least(20000)]
        )
        assert evaluate_completion_rules(rules, {"bottles": 100, "profit_sek": 25000})
        assert evaluate_completion_rules(rules, {"bottles": 600, "profit_sek": 0})
        assert not evaluate_completion_rules(rules, {"bottles": 599, "profit_sek": 19999})

    def test_combine_with_and(self):
        rules = CompletionRules(
            mode="COMBINE",
            operator="AND",
            groups=[bottles_at_least(300), profit_at_least(10000)],
        )
        assert evaluate_completion_rules(rules, {"bottles": 300, "profit_sek": 10000})
        assert not evaluate_completion_rules(rules, {"bottles": 300, "profit_sek": 9999})

    def test_group_with_or_operator(self):
        group = CompletionGroup(
            operator="OR",
            conditions=[
                CompletionCondition(metric="bottles", op=">", value=500),
                CompletionCondition(metric="profit_sek", op=">", value=15000),
            ],
        )
        rules = CompletionRules(mode="COMBINE", operator="AND", groups=[group])
        assert evaluate_completion_rules(rules, {"bottles": 10, "profit_sek": 15001})
        assert not evaluate_completion_rules(rules, {"bottles": 500, "profit_sek": 15000})

    def test_empty_group_never_completes(self):
        rules = CompletionRules(groups=[CompletionGroup()])
        assert evaluate_completion_rules(rules, {"bottles": 10000}) is False

    def test_missing_metric_counts_as_zero(self):
        rules = CompletionRules(
            groups=[CompletionGroup(conditions=[CompletionCondition(metric="bottles", op="<", value=1)])]
        )
        assert evaluate_completion_rules(rules, {})


class TestFormatCompletionRules:
    def test_no_rules(self):
        assert format_completion_rules(None) == "IF — ELSE —"

    def test_single_group(self):
        rules = CompletionRules(groups=[bottles_at_least(600)])
        assert format_completion_rules(rules) == "IF (Bottles >= 600) THEN Complete ELSE Incomplete"

    def test_sequential_uses_else_if(self):
        rules = CompletionRules(groups=[bottles_at_least(600), profit_at_least(12500.5)])
        assert format_completion_rules(rules) == (
            "IF (Bottles >= 600) THEN Complete "
            "ELSE IF (Profit (SEK) >= 12500.5) THEN Complete ELSE Incomplete"
        )

    def test_combine_joins_with_operator(self):
        rules = CompletionRules(
            mode="COMBINE", operator="AND", groups=[bottles_at_least(300), profit_at_least(10000)]
        )
        assert format_completion_rules(rules) == (
            "IF (Bottles >= 300) AND (Profit (SEK) >= 10000) THEN Complete ELSE Incomplete"
        )


def test_fill_data():
    pallet = SimpleNamespace(bottle_capacity=720)
    assert fill_data(pallet, 180) == {
        "current_bottles": 180,
        "max_bottles": 720,
        "remaining_bottles": 540,
        "percentage": 25.0,
    }


def test_fill_data_overfull_and_zero_capacity():
    assert fill_data(SimpleNamespace(bottle_capacity=100), 120)["remaining_bottles"] == 0
    assert fill_data(SimpleNamespace(bottle_capacity=0), 5)["percentage"] == 0
