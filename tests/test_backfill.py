import pytest

from rulebuilder.backfill import backfill, infer_action, infer_conditions, infer_target
from rulebuilder.entities import Condition, Rule

SENTENCE = "If a deckhand works over 12 hours, call someone from the casual pool first."


@pytest.mark.parametrize("text,expected", [
    ("Give the crew a day off after a night shift", "grant_time_off"),
    ("Notify the supervisor when a cook calls in sick", "notify"),
    ("Reject leave requests from the office", "deny"),
    ("Schedule two cooks on Friday", "schedule"),
    (SENTENCE, "contact"),
    ("Approve overtime for engineers", "grant"),
    ("Engineers must wear helmets", "apply_policy"),
    ("Update the target list", "apply_policy"),
    ("Overtime is forbidden for deckhands", "deny"),
    ("Planning shifts for the weekend", "schedule"),
    ("Deckhands getting extra pay", "grant"),
    ("Request leave through the office", "apply_policy"),
    ("Notifying the captain is mandatory", "notify"),
])
def test_infer_action(text, expected):
    assert infer_action(text) == expected


@pytest.mark.parametrize("text,expected", [
    (SENTENCE, "casual_pool"),
    ("All crew members must sign in", "crew_member"),
    ("Only call cooks with valid food safety certification.", "cook"),
    ("Always call senior engineers before junior engineers.", "senior_engineer"),
    ("Employees get a bonus", "employees"),
    ("Nothing relevant here", "subject"),
    ("the engineering team must rest", "engineer"),
    ("Two deckhands per watch", "deckhand"),
])
def test_infer_target(text, expected):
    assert infer_target(text) == expected


def test_infer_conditions_days_then_hours():
    conditions = infer_conditions("Deckhands working on Saturdays and Sundays over 10 hours, even on saturday")
    assert conditions == [
        Condition(field="day_of_week", operator="equals", value="saturday"),
        Condition(field="day_of_week", operator="equals", value="sunday"),
        Condition(field="hours_worked", operator="greater_than", value="10"),
    ]


@pytest.mark.parametrize("phrase,value", [
    ("works more than 8.5 hrs", "8.5"),
    ("exceeds 40 hours a week", "40"),
    ("greater than 6 hours", "6"),
    ("above 9 hour shifts", "9"),
])
def test_infer_hours_phrasings(phrase, value):
    assert infer_conditions(phrase) == [Condition(field="hours_worked", operator="greater_than", value=value)]


def test_infer_conditions_falls_back_to_context():
    assert infer_conditions("  Be polite to guests  ") == [
        Condition(field="context", operator="contains", value="Be polite to guests"),
    ]


def test_backfill_leaves_complete_rule_untouched():
    rule = Rule(
        action="call",
        target="casual_pool",
        conditions=[Condition(field="role", operator="equals", value="deckhand")],
        priority=3,
    )
    assert backfill(rule, "Notify everyone on Monday, give time off over 50 hours") == rule


@pytest.mark.parametrize("text", [SENTENCE, "zzz", "Be nice.", "Block access on Sundays"])
def test_backfill_of_empty_rule_is_always_complete(text):
    rule = backfill(Rule(), text)
    assert rule.action
    assert rule.target
    assert rule.is_complete()


def test_backfill_end_to_end_sentence():
    rule = backfill(Rule(), SENTENCE)
    assert rule.action == "contact"
    assert rule.target == "casual_pool"
    assert Condition(field="hours_worked", operator="greater_than", value="12") in rule.conditions


def test_backfill_only_fills_missing_fields():
    rule = Rule(action="escalate", time_range="weekends", priority=2, logic="OR")
    filled = backfill(rule, SENTENCE)
    assert filled.action == "escalate"
    assert filled.target == "casual_pool"
    assert filled.time_range == "weekends"
    assert filled.priority == 2
    assert filled.logic == "OR"


def test_backfill_replaces_conditions_without_a_complete_entry():
    rule = Rule(action="contact", target="casual_pool", conditions=[Condition(field="hours_worked", value="12")])
    filled = backfill(rule, SENTENCE)
    assert filled.conditions == [Condition(field="hours_worked", operator="greater_than", value="12")]
