"""
Pricing calculator for stall bookings.

Pure function: no state, no I/O. Its result always replaces every
derived monetary field of a booking at once; callers never patch
individual totals.
"""

from decimal import Decimal
from typing import Iterable

from stallbook.core.exceptions import InvalidInputError
from stallbook.domain import AddOnSelection, PricingBreakdown, TableSelection, to_decimal

ZERO = Decimal("0")


def calculate_pricing(
    tables: Iterable[TableSelection],
    add_ons: Iterable[AddOnSelection] = (),
    paid_amount: Decimal = ZERO,
) -> PricingBreakdown:
    """
    Compute table, deposit and add-on totals for a selection.

    grand_total = tables_total + deposit_total + add_ons_total
    remaining_amount = grand_total - paid_amount

    Raises InvalidInputError on negative prices, deposits or quantities,
    or when paid_amount exceeds the grand total.
    """
    tables_total = ZERO
    deposit_total = ZERO
    add_ons_total = ZERO

    for table in tables:
        price = to_decimal(table.price)
        deposit = to_decimal(table.deposit_amount)
        if price < 0 or deposit < 0:
            raise InvalidInputError(f"Table {table.position_id} has a negative price or deposit")
        tables_total += price
        deposit_total += deposit

    for add_on in add_ons:
        price = to_decimal(add_on.price)
        if price < 0:
            raise InvalidInputError(f"Add-on {add_on.add_on_id} has a negative price")
        if add_on.quantity < 0:
            raise InvalidInputError(f"Add-on {add_on.add_on_id} has a negative quantity")
        add_ons_total += price * add_on.quantity

    paid = to_decimal(paid_amount)
    if paid < 0:
        raise InvalidInputError("Paid amount cannot be negative")

    grand_total = tables_total + deposit_total + add_ons_total
    if paid > grand_total:
        raise InvalidInputError(f"Paid amount {paid} exceeds grand total {grand_total}")

    return PricingBreakdown(
        tables_total=tables_total,
        deposit_total=deposit_total,
        add_ons_total=add_ons_total,
        grand_total=grand_total,
        paid_amount=paid,
        remaining_amount=grand_total - paid,
    )
