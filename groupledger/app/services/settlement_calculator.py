"""
services/settlement_calculator.py — Equal-share targets and minimal transfers.

Pure functions over {user_id: balance} dicts. No database, no Flask, no
session: the settlement service feeds them balances it has read and
persists what they return.

Equal share (exact decimal, cent precision):
  equal_share = total / n, rounded toward zero to the cent.
  If total is not a multiple of n cents, the leftover cents are handed out
  one each to participants in ascending user id order. The sum of targets
  therefore always equals the total exactly, and when the division is even
  every target equals equal_share.

Transfer matching (greedy, stable):
  debtors   = participants whose balance exceeds their target (they pay)
  creditors = participants whose balance is below their target (they receive)
  Both lists are walked in ascending user id order, moving
  min(remaining_debt, remaining_credit) each step. Every step zeroes at
  least one side, so n participants produce at most n - 1 transfers.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def _normalise(value: Decimal) -> Decimal:
    """Returns value at cent scale, folding -0.00 into 0.00."""
    value = value.quantize(CENT)
    return ZERO if value == ZERO else value


def compute_targets(
        balances: dict[int, Decimal],
) -> tuple[Decimal, Decimal, dict[int, Decimal]]:
    """
    Computes the settlement target for every participant.

    Args:
        balances: {user_id: current_balance} for the selected participants.

    Returns:
        (total_balance, equal_share, {user_id: target_balance})
    """
    if not balances:
        return ZERO, ZERO, {}

    participant_ids = sorted(balances)
    n = len(participant_ids)
    total = sum(balances.values(), ZERO)

    equal_share = (total / Decimal(n)).quantize(CENT, rounding=ROUND_DOWN)
    remainder = total - equal_share * n

    # |remainder| < n cents and carries the sign of total.
    leftover_cents = int((abs(remainder) / CENT).to_integral_value())
    step = CENT if remainder > ZERO else -CENT

    targets: dict[int, Decimal] = {}
    for index, user_id in enumerate(participant_ids):
        target = equal_share + step if index < leftover_cents else equal_share
        targets[user_id] = _normalise(target)

    return _normalise(total), _normalise(equal_share), targets


def build_preview(balances: dict[int, Decimal]) -> dict:
    """
    Read-only settlement preview for the selected participants.

    For each participant, difference = current - target:
      difference > 0  -> will_owe = difference     (pays down to the target)
      difference < 0  -> will_receive = -difference
    At most one of will_owe / will_receive is non-zero.

    Returns Decimal values; callers decide how to serialise them.
    """
    total, equal_share, targets = compute_targets(balances)

    per_user = []
    for user_id in sorted(balances):
        current = balances[user_id]
        target = targets[user_id]
        difference = current - target
        per_user.append({
            "user_id": user_id,
            "current_balance": _normalise(current),
            "target_balance": target,
            "will_owe": _normalise(difference) if difference > ZERO else ZERO,
            "will_receive": _normalise(-difference) if difference < ZERO else ZERO,
        })

    return {
        "total_balance": total,
        "equal_share": equal_share,
        "participant_count": len(balances),
        "per_user": per_user,
        "total_owed": sum((p["will_owe"] for p in per_user), ZERO),
        "total_to_receive": sum((p["will_receive"] for p in per_user), ZERO),
    }


def match_transfers(
        balances: dict[int, Decimal],
        targets: dict[int, Decimal],
) -> list[dict]:
    """
    Greedy debtor -> creditor matching.

    Args:
        balances: {user_id: current_balance}.
        targets:  {user_id: target_balance} from compute_targets(). The
                  differences must net to zero.

    Returns:
        List of {"from_user_id": int, "to_user_id": int, "amount": Decimal}
        with every amount > 0. An empty list means everyone is on target.
    """
    debtors = [
        [uid, balances[uid] - targets[uid]]
        for uid in sorted(balances)
        if balances[uid] > targets[uid]
    ]
    creditors = [
        [uid, targets[uid] - balances[uid]]
        for uid in sorted(balances)
        if balances[uid] < targets[uid]
    ]

    transfers: list[dict] = []
    i = j = 0

    while i < len(debtors) and j < len(creditors):
        debtor_id, debt = debtors[i]
        creditor_id, credit = creditors[j]

        amount = min(debt, credit)
        transfers.append({
            "from_user_id": debtor_id,
            "to_user_id": creditor_id,
            "amount": _normalise(amount),
        })

        debtors[i][1] = debt - amount
        creditors[j][1] = credit - amount

        if debtors[i][1] == ZERO:
            i += 1
        if creditors[j][1] == ZERO:
            j += 1

    return transfers
