from datetime import datetime
from decimal import Decimal

from tripcrew.utils.assignment_math import (
    normalize_amount, items_total, percent_assigned, difference, is_fully_assigned, validate_items_total,
    spend_summary,
)
from tripcrew.utils.currency import compute_shares
from tripcrew.utils.settlement_math import accumulate_balances, build_settlement_plan


def test_normalize_amount_rounds_half_up():
    assert normalize_amount(Decimal("10.00"), Decimal("1.085")) == Decimal("10.85")
    assert normalize_amount(Decimal("0.05"), Decimal("0.5")) == Decimal("0.03")


def test_percent_assigned_zero_amount():
    assert percent_assigned(Decimal("0"), Decimal("5")) == Decimal("0.00")
    assert percent_assigned(Decimal("30.00"), Decimal("10.00")) == Decimal("33.33")


def test_fully_assigned_tolerance():
    assert is_fully_assigned(Decimal("100.00"), Decimal("99.99"))
    assert not is_fully_assigned(Decimal("100.00"), Decimal("99.98"))


def test_items_total_validation_message():
    assert validate_items_total(Decimal("20.00"), [Decimal("5"), Decimal("15")]) is None
    assert validate_items_total(Decimal("20.00"), [Decimal("15"), Decimal("6")]) == \
        "Items total (21.00) exceeds spend amount (20.00)"


def test_spend_summary():
    summary = spend_summary(Decimal("50"), [Decimal("20"), Decimal("10")], [Decimal("25"), Decimal("25")])
    assert summary["items_total"] == Decimal("30.00")
    assert summary["difference"] == Decimal("20.00")
    assert summary["percent_assigned"] == Decimal("100.00")
    assert summary["is_fully_assigned"] is True
    assert items_total([]) == Decimal("0.00")
    assert difference(Decimal("1"), Decimal("0.333")) == Decimal("0.67")


def test_compute_shares_sum_exactly():
    shares = compute_shares(Decimal("10.00"), [1, 2, 3])
    assert sum(shares.values()) == Decimal("10.00")
    assert sorted(shares.values()) == [Decimal("3.33"), Decimal("3.33"), Decimal("3.34")]


def test_compute_shares_seed_is_deterministic():
    a = compute_shares(Decimal("0.05"), [1, 2, 3], seed="42")
    b = compute_shares(Decimal("0.05"), [3, 2, 1], seed="42")
    assert a == b
    assert compute_shares(Decimal("1"), []) == {}


def test_settlement_plan_simple_debt():
    day = datetime(2030, 6, 2)
    balances = accumulate_balances([
        (1, Decimal("90.00"), day, [(1, Decimal("30.00")), (2, Decimal("30.00")), (3, Decimal("30.00"))]),
    ])
    assert balances[1].net == Decimal("60.00")
    assert balances[2].net == Decimal("-30.00")

    plan = build_settlement_plan(balances)
    assert [(t.from_user_id, t.to_user_id, t.amount) for t in plan] == [
        (2, 1, Decimal("30.00")),
        (3, 1, Decimal("30.00")),
    ]
    assert all(t.oldest_debt_date == day for t in plan)


def test_settlement_plan_nets_opposite_debts():
    early, late = datetime(2030, 6, 1), datetime(2030, 6, 3)
    balances = accumulate_balances([
        (1, Decimal("40.00"), late, [(2, Decimal("40.00"))]),
        (2, Decimal("10.00"), early, [(1, Decimal("10.00"))]),
    ])
    plan = build_settlement_plan(balances)
    assert len(plan) == 1
    assert plan[0].from_user_id == 2
    assert plan[0].to_user_id == 1
    assert plan[0].amount == Decimal("30.00")
    assert plan[0].oldest_debt_date == late


def test_netted_pair_without_shared_spend_has_no_debt_date():
    balances = accumulate_balances([
        (1, Decimal("30.00"), datetime(2030, 6, 2, 10), [(2, Decimal("30.00"))]),
        (2, Decimal("30.00"), datetime(2030, 6, 5, 10), [(3, Decimal("30.00"))]),
    ])
    plan = build_settlement_plan(balances)
    assert [(t.from_user_id, t.to_user_id, t.amount) for t in plan] == [(3, 1, Decimal("30.00"))]
    assert plan[0].oldest_debt_date is None


def test_settlement_plan_ignores_cent_dust():
    balances = accumulate_balances([
        (1, Decimal("0.01"), None, [(2, Decimal("0.01"))]),
    ])
    assert build_settlement_plan(balances) == []
