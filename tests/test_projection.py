from datetime import datetime, timedelta

import pytest

from family_finance.planning.projection import (
    AdHoc,
    ExpenseRecord,
    Frequency,
    Recurring,
    RecurringBillDef,
    add_months,
    next_occurrence,
    project,
    set_day,
)

NOW = datetime(2024, 6, 1)


def bill(bill_id, frequency, anchor, day_of_month=None, name="Bill", amount=10.0):
    return RecurringBillDef(
        id=bill_id,
        name=name,
        amount=amount,
        day_of_month=day_of_month if day_of_month is not None else anchor.day,
        frequency=Frequency(frequency),
        next_due_date=anchor,
    )


def expense(expense_id, due_date, category="Groceries", amount=25.0):
    return ExpenseRecord(id=expense_id, category=category, amount=amount, due_date=due_date)


def test_empty_inputs_give_empty_projection():
    assert project(NOW, [], []) == []


def test_monthly_bill_with_stale_anchor_projects_one_occurrence():
    items = project(NOW, [bill(1, "MONTHLY", datetime(2024, 4, 15))], [])

    assert len(items) == 1
    assert items[0].due_date == datetime(2024, 6, 15)
    assert items[0].origin == Recurring(1, datetime(2024, 6, 15))
    assert items[0].id == "recurring-1-2024-06-15T00:00:00.000Z"


def test_monthly_bill_takes_time_of_day_from_now():
    now = datetime(2024, 6, 1, 9, 30)
    items = project(now, [bill(1, "MONTHLY", datetime(2024, 1, 15))], [])
    assert items[0].due_date == datetime(2024, 6, 15, 9, 30)


def test_monthly_bill_due_today_is_included():
    items = project(NOW, [bill(1, "MONTHLY", datetime(2024, 3, 1))], [])
    assert [i.due_date for i in items] == [NOW]


def test_monthly_bill_already_past_this_month_moves_to_next_month():
    now = datetime(2024, 6, 20)
    items = project(now, [bill(1, "MONTHLY", datetime(2024, 1, 5))], [])
    assert [i.due_date for i in items] == [datetime(2024, 7, 5)]


def test_monthly_day_31_in_april_overflows_to_may_first():
    now = datetime(2024, 4, 15)
    items = project(now, [bill(1, "MONTHLY", datetime(2024, 1, 31))], [])
    assert [i.due_date for i in items] == [datetime(2024, 5, 1)]


def test_monthly_day_31_in_april_clamps_to_april_30():
    now = datetime(2024, 4, 15)
    items = project(now, [bill(1, "MONTHLY", datetime(2024, 1, 31))], [], month_end="clamp")
    assert [i.due_date for i in items] == [datetime(2024, 4, 30)]


def test_month_end_policy_changes_whether_february_occurrence_is_in_window():
    now = datetime(2024, 1, 31, 10, 0)
    monthly_30th = bill(1, "MONTHLY", datetime(2023, 11, 30))

    # Jan 30 has passed; overflow steps through "Feb 30" = Mar 1 and lands on Mar 30
    assert project(now, [monthly_30th], []) == []

    clamped = project(now, [monthly_30th], [], month_end="clamp")
    assert [i.due_date for i in clamped] == [datetime(2024, 2, 29, 10, 0)]


def test_quarterly_bill_advances_from_anchor_to_first_future_quarter():
    now = datetime(2024, 7, 1)
    items = project(now, [bill(3, "QUARTERLY", datetime(2024, 1, 10))], [])

    assert [i.due_date for i in items] == [datetime(2024, 7, 10)]
    assert items[0].id == "recurring-3-2024-07-10T00:00:00.000Z"


def test_quarterly_bill_outside_window_is_skipped():
    now = datetime(2024, 7, 15)
    assert project(now, [bill(3, "QUARTERLY", datetime(2024, 1, 10))], []) == []


def test_yearly_bill_rolls_forward_by_years():
    items = project(NOW, [bill(4, "YEARLY", datetime(2021, 6, 20))], [])
    assert [i.due_date for i in items] == [datetime(2024, 6, 20)]


def test_yearly_leap_day_bill_follows_month_end_policy():
    now = datetime(2025, 2, 15)
    leap = bill(5, "YEARLY", datetime(2024, 2, 29))

    # Feb 29 2025 does not exist: overflow gives Mar 1, then day 29 -> Mar 29
    assert project(now, [leap], []) == []
    clamped = project(now, [leap], [], month_end="clamp")
    assert [i.due_date for i in clamped] == [datetime(2025, 2, 28)]


def test_one_time_bill_inside_window_keeps_anchor_and_plain_id():
    anchor = NOW + timedelta(days=12)
    items = project(NOW, [bill(7, "ONE_TIME", anchor, name="Roof repair")], [])

    assert len(items) == 1
    assert items[0].due_date == anchor
    assert items[0].label == "Roof repair"
    assert items[0].id == "recurring-7"


@pytest.mark.parametrize("offset", [timedelta(days=-1), timedelta(days=31)])
def test_one_time_bill_outside_window_contributes_nothing(offset):
    assert project(NOW, [bill(7, "ONE_TIME", NOW + offset)], []) == []


def test_window_end_is_inclusive():
    edge = NOW + timedelta(days=30)
    items = project(NOW, [bill(8, "ONE_TIME", edge)], [])
    assert [i.due_date for i in items] == [edge]


def test_mixed_sources_are_merged_sorted_and_filtered():
    expenses = [
        expense(1, NOW + timedelta(days=29)),
        expense(2, NOW + timedelta(days=2)),
        expense(3, NOW + timedelta(days=5)),
    ]
    bills = [
        bill(10, "MONTHLY", datetime(2024, 3, 11)),          # June 11, day 10 of the window
        bill(11, "ONE_TIME", NOW + timedelta(days=40)),      # outside
    ]

    items = project(NOW, bills, expenses)

    assert [(i.due_date - NOW).days for i in items] == [2, 5, 10, 29]
    assert [i.origin for i in items] == [
        AdHoc(2), AdHoc(3), Recurring(10, datetime(2024, 6, 11)), AdHoc(1),
    ]
    for item in items:
        assert NOW <= item.due_date <= NOW + timedelta(days=30)


def test_expenses_pass_through_unchanged():
    rec = ExpenseRecord(
        id=4, category="Water", amount=42.5, due_date=NOW + timedelta(days=3),
        notes="meter read", created_by="jane",
    )
    (item,) = project(NOW, [], [rec])

    assert item.id == "4"
    assert item.label == "Water"
    assert item.amount == 42.5
    assert item.notes == "meter read"
    assert item.created_by == "jane"


def test_expenses_come_before_bills_on_equal_due_dates():
    due = NOW + timedelta(days=4)
    items = project(NOW, [bill(1, "ONE_TIME", due)], [expense(9, due)])
    assert [i.origin for i in items] == [AdHoc(9), Recurring(1)]


def test_result_is_truncated_to_limit():
    expenses = [expense(i, NOW + timedelta(days=i)) for i in range(1, 13)]

    assert [i.origin.expense_id for i in project(NOW, [], expenses)] == list(range(1, 11))
    assert len(project(NOW, [], expenses, limit=3)) == 3


def test_count_equals_candidates_when_under_limit():
    expenses = [expense(i, NOW + timedelta(days=i)) for i in range(1, 5)]
    bills = [bill(20 + d, "MONTHLY", datetime(2024, 1, d)) for d in (7, 8, 9)]
    assert len(project(NOW, bills, expenses)) == 7


def test_projection_is_repeatable_and_does_not_touch_inputs():
    bills = [bill(1, "QUARTERLY", datetime(2023, 3, 14)), bill(2, "MONTHLY", datetime(2024, 2, 20))]
    expenses = [expense(5, NOW + timedelta(days=1))]
    bills_before, expenses_before = list(bills), list(expenses)

    first = project(NOW, bills, expenses)
    second = project(NOW, bills, expenses)

    assert first == second
    assert bills == bills_before
    assert expenses == expenses_before


def test_unknown_month_end_policy_is_rejected():
    with pytest.raises(ValueError):
        project(NOW, [], [], month_end="nearest")


def test_next_occurrence_returns_none_past_window():
    window_end = NOW + timedelta(days=30)
    assert next_occurrence(bill(1, "YEARLY", datetime(2023, 9, 1)), NOW, window_end) is None


def test_set_day_and_add_months_rolling():
    assert set_day(datetime(2024, 4, 10), 31) == datetime(2024, 5, 1)
    assert set_day(datetime(2024, 4, 10), 31, "clamp") == datetime(2024, 4, 30)
    assert add_months(datetime(2023, 1, 31), 1) == datetime(2023, 3, 3)
    assert add_months(datetime(2023, 1, 31), 1, "clamp") == datetime(2023, 2, 28)
    assert add_months(datetime(2024, 11, 15), 3) == datetime(2025, 2, 15)


def test_month_steps_keep_time_of_day_and_cross_years():
    assert add_months(datetime(2024, 2, 29, 9, 30), 12) == datetime(2025, 3, 1, 9, 30)
    assert add_months(datetime(2024, 2, 29, 9, 30), 12, "clamp") == datetime(2025, 2, 28, 9, 30)
    assert add_months(datetime(2024, 12, 31), 2) == datetime(2025, 3, 3)
    assert set_day(datetime(2025, 2, 10, 18, 0), 29) == datetime(2025, 3, 1, 18, 0)
