from decimal import Decimal

import pytest

from recipient_list import RecipientListModel
from recipient_parser import Recipient


def _is_single_placeholder(model):
    return len(model) == 1 and model[0] == Recipient("", Decimal(0))


def test_starts_with_one_placeholder():
    assert _is_single_placeholder(RecipientListModel())


def test_add_and_update(addresses):
    model = RecipientListModel()
    model.add()
    model.update(0, "address", f"  {addresses[0]} ")
    model.update(0, "amount", "1.25")
    model.update(1, "amount", "2")
    assert model[0] == Recipient(addresses[0], Decimal("1.25"))
    assert model[1] == Recipient("", Decimal("2"))


@pytest.mark.parametrize("text", ["", "abc", "1..2", "NaN", "1e999999"])
def test_unparsable_amount_becomes_zero(text):
    model = RecipientListModel()
    model.update(0, "amount", "3")
    model.update(0, "amount", text)
    assert model[0].amount == Decimal(0)


def test_negative_amount_is_kept_for_the_planner_to_drop():
    model = RecipientListModel()
    model.update(0, "amount", "-1")
    assert model[0].amount == Decimal("-1")


def test_update_unknown_field():
    with pytest.raises(ValueError):
        RecipientListModel().update(0, "label", "x")


def test_remove_last_row_leaves_placeholder(addresses):
    model = RecipientListModel([Recipient(addresses[0], Decimal("1"))])
    model.remove(0)
    assert _is_single_placeholder(model)


def test_remove_keeps_other_rows_in_order(addresses):
    model = RecipientListModel(Recipient(a, Decimal(i + 1)) for i, a in enumerate(addresses[:3]))
    model.remove(1)
    assert [r.address for r in model] == [addresses[0], addresses[2]]


def test_clear_is_idempotent(addresses):
    model = RecipientListModel([Recipient(addresses[0], Decimal("1")), Recipient(addresses[1], Decimal("2"))])
    model.clear()
    first = model.snapshot()
    model.clear()
    assert model.snapshot() == first
    assert _is_single_placeholder(model)
    assert model.is_blank()


def test_replace_and_snapshot_are_copies(addresses):
    source = [Recipient(addresses[0], Decimal("1"))]
    model = RecipientListModel()
    model.replace(source)
    source[0].amount = Decimal("99")
    snapshot = model.snapshot()
    snapshot[0].amount = Decimal("42")
    assert model[0].amount == Decimal("1")


def test_replace_with_nothing_resets():
    model = RecipientListModel()
    model.add()
    model.replace([])
    assert _is_single_placeholder(model)
