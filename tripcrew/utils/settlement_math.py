from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from tripcrew.utils.assignment_math import quantize_money, to_decimal

THRESHOLD = Decimal("0.01")


@dataclass
class UserBalance:
    user_id: int
    total_paid: Decimal = Decimal("0.00")
    total_owed: Decimal = Decimal("0.00")
    # date of the oldest spend this user still owes on, per creditor
    debt_dates: Dict[int, datetime] = field(default_factory=dict)

    @property
    def net(self) -> Decimal:
        return quantize_money(self.total_paid - self.total_owed)


@dataclass
class Transfer:
    from_user_id: int
    to_user_id: int
    amount: Decimal
    oldest_debt_date: Optional[datetime] = None


def accumulate_balances(spends) -> Dict[int, UserBalance]:
    """
    spends: iterable of (payer_id, normalized_amount, spend_date, [(user_id, normalized_share), ...]).
    The payer is credited with the whole spend and each assignee debited their share.
    """
    balances: Dict[int, UserBalance] = {}

    def get(uid: int) -> UserBalance:
        if uid not in balances:
            balances[uid] = UserBalance(user_id=uid)
        return balances[uid]

    for payer_id, amount, spend_date, shares in spends:
        payer = get(payer_id)
        payer.total_paid += to_decimal(amount)
        for user_id, share in shares:
            debtor = get(user_id)
            debtor.total_owed += to_decimal(share)
            if user_id != payer_id and spend_date is not None:
                seen = debtor.debt_dates.get(payer_id)
                if seen is None or spend_date < seen:
                    debtor.debt_dates[payer_id] = spend_date

    for b in balances.values():
        b.total_paid = quantize_money(b.total_paid)
        b.total_owed = quantize_money(b.total_owed)
    return balances


def _oldest_debt_date(debtor: UserBalance, creditor_id: int) -> Optional[datetime]:
    # None when netting pairs people who never shared a spend
    return debtor.debt_dates.get(creditor_id)


def build_settlement_plan(balances: Dict[int, UserBalance]) -> List[Transfer]:
    """
    Greedy netting: biggest creditor is paid by the biggest debtor until one
    side is exhausted. Produces at most n-1 transfers.
    """
    creditors: List[Tuple[int, Decimal]] = sorted(
        ((uid, b.net) for uid, b in balances.items() if b.net > THRESHOLD),
        key=lambda x: (-x[1], x[0]),
    )
    debtors: List[Tuple[int, Decimal]] = sorted(
        ((uid, b.net) for uid, b in balances.items() if b.net < -THRESHOLD),
        key=lambda x: (x[1], x[0]),
    )

    plan: List[Transfer] = []
    ci, di = 0, 0
    credit = [c[1] for c in creditors]
    debt = [-d[1] for d in debtors]

    while ci < len(creditors) and di < len(debtors):
        amount = quantize_money(min(credit[ci], debt[di]))
        if amount > THRESHOLD:
            debtor_id = debtors[di][0]
            creditor_id = creditors[ci][0]
            plan.append(Transfer(
                from_user_id=debtor_id,
                to_user_id=creditor_id,
                amount=amount,
                oldest_debt_date=_oldest_debt_date(balances[debtor_id], creditor_id),
            ))
        credit[ci] -= amount
        debt[di] -= amount
        if credit[ci] <= THRESHOLD:
            ci += 1
        if debt[di] <= THRESHOLD:
            di += 1

    return plan
