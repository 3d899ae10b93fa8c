"""
Pure money helpers for spends: item totals, assignment coverage and the
summary returned alongside a spend's items. Everything works on Decimal and
rounds to cents.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

CENT = Decimal("0.01")
TOLERANCE = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_amount(amount, fx_rate) -> Decimal:
    """amount expressed in the trip base currency."""
    return quantize_money(to_decimal(amount) * to_decimal(fx_rate))


def items_total(costs: Iterable) -> Decimal:
    return quantize_money(sum((to_decimal(c) for c in costs), Decimal("0")))


def assignments_total(shares: Iterable) -> Decimal:
    return quantize_money(sum((to_decimal(s) for s in shares), Decimal("0")))


def percent_assigned(amount, assigned) -> Decimal:
    amount = to_decimal(amount)
    if amount == 0:
        return Decimal("0.00")
    return (to_decimal(assigned) / amount * 100).quantize(CENT, rounding=ROUND_HALF_UP)


def difference(amount, total) -> Decimal:
    return quantize_money(to_decimal(amount) - to_decimal(total))


def is_fully_assigned(amount, assigned) -> bool:
    return abs(to_decimal(amount) - to_decimal(assigned)) <= TOLERANCE


def validate_items_total(amount, costs: Iterable) -> Optional[str]:
    """Returns an error message when the items cost more than the spend, else None."""
    total = items_total(costs)
    if total > quantize_money(amount):
        return f"Items total ({total}) exceeds spend amount ({quantize_money(amount)})"
    return None


def spend_summary(amount, costs: Iterable, shares: Iterable) -> dict:
    amount = quantize_money(amount)
    costs_total = items_total(costs)
    assigned = assignments_total(shares)
    return {
        "amount": amount,
        "items_total": costs_total,
        "assignments_total": assigned,
        "percent_assigned": percent_assigned(amount, assigned),
        "difference": difference(amount, costs_total),
        "is_fully_assigned": is_fully_assigned(amount, assigned),
    }
