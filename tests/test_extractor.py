from datetime import date, datetime, timedelta

import pytest

from actiontap.extractor import (
    ActionExtractor,
    extract_action_items,
    infer_assignee,
    infer_due_date,
    match_candidates,
    window_start,
)
from actiontap.ledger import DedupLedger
from actiontap.models import ItemStatus

# 3 January 2024 is a Wednesday.
WEDNESDAY = datetime(2024, 1, 3, 10, 30)


def test_explicit_marker_with_assignee_and_deadline():
    items = extract_action_items("Action item: John will prepare the report by Friday.", now=WEDNESDAY)

    texts = [item.text for item in items]
    assert "John will prepare the report by Friday." in texts
    assert "Action item: John will prepare the report by Friday." in texts
    assert len(items) == 2
    for item in items:
        assert item.assignee == "John"
        assert item.due_date == date(2024, 1, 5)
        assert item.status is ItemStatus.PENDING
        assert item.error_detail is None
    assert len({item.id for item in items}) == 2


def test_plain_chatter_has_no_candidates():
    assert extract_action_items("Nice weather today. The coffee was good!", now=WEDNESDAY) == []


def test_each_family_matches():
    assert match_candidates("todo: update the roadmap.") == ["update the roadmap."]
    assert match_candidates("Mike needs to call the vendor.") == ["Mike needs to call the vendor."]
    assert match_candidates("Budget numbers are due tomorrow.") == ["Budget numbers are due tomorrow."]


def test_follow_up_for_marker():
    assert match_candidates("Follow up for the pricing question.") == ["the pricing question."]


def test_matching_is_case_insensitive():
    items = extract_action_items("SARAH SHOULD REVIEW THE DECK BY MONDAY.", now=WEDNESDAY)
    assert len(items) == 1
    assert items[0].assignee == "Sarah"
    assert items[0].due_date == date(2024, 1, 8)


@pytest.mark.parametrize(
    "day, expected",
    [
        ("Sunday", date(2024, 1, 7)),
        ("Monday", date(2024, 1, 8)),
        ("Tuesday", date(2024, 1, 9)),
        ("Wednesday", date(2024, 1, 3)),
        ("Thursday", date(2024, 1, 4)),
        ("Friday", date(2024, 1, 5)),
        ("Saturday", date(2024, 1, 6)),
    ],
)
def test_weekday_resolves_within_the_next_seven_days(day, expected):
    due = infer_due_date(f"send it by {day}", WEDNESDAY)
    assert due == expected
    assert 0 <= (due - WEDNESDAY.date()).days <= 6


def test_relative_due_dates():
    assert infer_due_date("done by tomorrow", WEDNESDAY) == date(2024, 1, 4)
    assert infer_due_date("ship it next week", WEDNESDAY) == WEDNESDAY.date() + timedelta(days=7)
    assert infer_due_date("whenever works", WEDNESDAY) is None


def test_assignee_uses_roster_spelling():
    assert infer_assignee("JOHN will check") == "John"
    assert infer_assignee("ask emily about it") == "Emily"
    assert infer_assignee("ask alexander about it") == ""
    assert infer_assignee("Priya will check", roster=("Priya",)) == "Priya"
    assert infer_assignee("John will check", roster=()) == ""


def test_ledger_makes_repeated_passes_idempotent():
    extractor = ActionExtractor()
    ledger = DedupLedger()
    text = "David will book the room. Emily should send the invite."

    first = extractor.extract(text, WEDNESDAY, ledger)
    assert [item.text for item in first] == ["David will book the room.", "Emily should send the invite."]
    assert extractor.extract(text, WEDNESDAY, ledger) == []

    grown = text + " Alex has to fix the build."
    assert [item.text for item in extractor.extract(grown, WEDNESDAY, ledger)] == ["Alex has to fix the build."]


def test_window_start_aligns_to_sentence_boundary():
    text = "aaaa. bbbb. cccc."
    assert window_start(text, None) == 0
    assert window_start(text, 100) == 0
    assert text[window_start(text, 8) :].strip() == "cccc."
    assert window_start(text, 12) == 5
