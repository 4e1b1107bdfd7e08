"""
Tests for the pricing calculator.
"""

from decimal import Decimal

import pytest

from stallbook.core.exceptions import InvalidInputError
from stallbook.domain import AddOnSelection, TableSelection
from stallbook.services.pricing import calculate_pricing


def _table(position_id="P-1", price="100", deposit="50"):
    return TableSelection(
        table_id=f"T-{position_id}",
        position_id=position_id,
        table_name=position_id,
        table_type="standard",
        price=Decimal(price),
        deposit_amount=Decimal(deposit),
    )


def test_one_table_with_add_ons():
    """Price 100, deposit 50, two chairs at 10 -> grand total 170."""
    pricing = calculate_pricing(
        [_table()],
        [AddOnSelection(add_on_id="chair", name="Chair", price=Decimal("10"), quantity=2)],
    )
    assert pricing.tables_total == Decimal("100")
    assert pricing.deposit_total == Decimal("50")
    assert pricing.add_ons_total == Decimal("20")
    assert pricing.grand_total == Decimal("170")
    assert pricing.paid_amount == Decimal("0")
    assert pricing.remaining_amount == Decimal("170")


def test_remaining_tracks_paid_amount():
    pricing = calculate_pricing([_table(), _table("P-2", "80", "20")], paid_amount=Decimal("120"))
    assert pricing.grand_total == Decimal("250")
    assert pricing.remaining_amount == Decimal("130")


def test_same_input_same_output():
    """Recomputing from the same selection never drifts."""
    tables = [_table(), _table("P-2", "99.99", "0.01")]
    add_ons = [AddOnSelection(add_on_id="power", name="Power", price=Decimal("25"), quantity=3)]
    assert calculate_pricing(tables, add_ons) == calculate_pricing(tables, add_ons)


def test_empty_selection_is_zero():
    pricing = calculate_pricing([])
    assert pricing.grand_total == Decimal("0")
    assert pricing.remaining_amount == Decimal("0")


@pytest.mark.parametrize(
    "tables,add_ons,paid",
    [
        ([_table(price="-1")], [], Decimal("0")),
        ([_table(deposit="-5")], [], Decimal("0")),
        ([_table()], [AddOnSelection(add_on_id="a", name="A", price=Decimal("-2"))], Decimal("0")),
        ([_table()], [AddOnSelection(add_on_id="a", name="A", price=Decimal("2"), quantity=-1)], Decimal("0")),
        ([_table()], [], Decimal("-1")),
        ([_table()], [], Decimal("151")),
    ],
)
def test_rejects_invalid_amounts(tables, add_ons, paid):
    """Negative values and overpayment are refused, not clamped."""
    with pytest.raises(InvalidInputError):
        calculate_pricing(tables, add_ons, paid_amount=paid)
