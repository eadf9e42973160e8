"""Weighted-average cost basis and transaction totals.

All inputs are fixed-point integers. Rounding is round-half-up to the nearest
unit, done in integer arithmetic so results never depend on float precision.
"""

from folio.models.transaction import TransactionType


def _round_half_up_div(numerator: int, denominator: int) -> int:
    """Divide two integers and round half up. denominator must be positive."""
    if numerator >= 0:
        return (2 * numerator + denominator) // (2 * denominator)
    return -((-2 * numerator + denominator - 1) // (2 * denominator))


def calculate_new_average_price(
    current_quantity: int,
    current_avg_price: int,
    incoming_quantity: int,
    incoming_price: int,
) -> int:
    """Return the weighted-average unit price after adding a lot.

    newAvg = round((cq * cap + iq * ip) / (cq + iq)); 0 when nothing is held.
    """
    total_quantity = current_quantity + incoming_quantity
    if total_quantity <= 0:
        return 0
    total_cost = current_quantity * current_avg_price + incoming_quantity * incoming_price
    return _round_half_up_div(total_cost, total_quantity)


def transaction_total(tx_type: TransactionType, quantity: int, price: int, fee: int = 0) -> int:
    """Cash total of a ledger entry.

    Buys add the fee to the gross amount; sells, dividends and interest
    subtract it.
    """
    gross = quantity * price
    if tx_type == TransactionType.BUY:
        return gross + fee
    return gross - fee
