from decimal import Decimal
import hashlib


def compute_shares(amount: Decimal, user_ids: list, seed: str | None = None) -> dict:
    """
    Split amount into shares that sum exactly to amount.

    Works in integer cents. The leftover cents go to the first users of an
    ordering derived from md5(seed:user_id), so the same people do not always
    absorb the extra cent across different spends. Without a seed users are
    ordered by id.

    Returns a dict mapping user_id to its Decimal share.
    """
    n = len(user_ids)
    if n == 0:
        return {}

    amount_cents = int((Decimal(amount) * 100).to_integral_value())
    base_cents = amount_cents // n
    extra_count = amount_cents % n

    if seed:
        def get_hash(uid):
            return hashlib.md5(f"{seed}:{uid}".encode()).hexdigest()
        ordered = sorted(user_ids, key=get_hash)
    else:
        ordered = sorted(user_ids, key=str)

    shares = {}
    for i, uid in enumerate(ordered):
        cents = base_cents + (1 if i < extra_count else 0)
        shares[uid] = (Decimal(cents) / Decimal(100)).quantize(Decimal("0.01"))

    return shares
