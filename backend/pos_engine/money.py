# Overview: Integer-cents arithmetic helpers shared by pricing and loyalty.

from __future__ import annotations

BPS_SCALE = 10_000
CENTS_PER_POINT = 100


def apply_bps(amount_cents: int, bps: int) -> int:
    """Return amount_cents * bps / 10000 rounded half-up to the cent."""
    if amount_cents <= 0 or bps <= 0:
        return 0
    return (amount_cents * bps + BPS_SCALE // 2) // BPS_SCALE


def allocate_proportionally(amount_cents: int, weights: list[int]) -> list[int]:
    """
    Split amount_cents across weights so the parts sum exactly to the amount.

    Uses largest remainder; ties go to the earlier position. Zero total
    weight yields all zeros unless amount_cents is zero too.
    """
    total_weight = sum(weights)
    if amount_cents <= 0 or total_weight <= 0:
        return [0 for _ in weights]

    shares = []
    remainders = []
    for index, weight in enumerate(weights):
        share, remainder = divmod(amount_cents * weight, total_weight)
        shares.append(share)
        remainders.append((-remainder, index))

    leftover = amount_cents - sum(shares)
    for _, index in sorted(remainders)[:leftover]:
        shares[index] += 1
    return shares
