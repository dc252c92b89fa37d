from decimal import Decimal

import pytest

from batch_planner import BatchPlanner, PayableBatch, split_batch
from recipient_parser import Recipient
from splitter_errors import EmptyBatchError, InsufficientBalanceError

LAMPORTS = 1_000_000_000


def test_scenario_two_recipients_total(addresses):
    a, b = addresses[:2]
    batch = BatchPlanner().plan([Recipient(a, Decimal("0.5")), Recipient(b, Decimal("1.2"))], 2 * LAMPORTS)
    assert batch.total_amount == Decimal("1.7")
    assert batch.total_lamports == 1_700_000_000
    assert [r.address for r in batch.recipients] == [a, b]


def test_insufficient_balance_reports_required_and_available(addresses):
    a, b = addresses[:2]
    with pytest.raises(InsufficientBalanceError) as info:
        BatchPlanner().plan([Recipient(a, Decimal("0.5")), Recipient(b, Decimal("1.2"))], LAMPORTS)
    error = info.value
    assert error.required == Decimal("1.7")
    assert error.available == Decimal("1.0")
    assert error.required_lamports == 1_700_000_000
    assert error.available_lamports == LAMPORTS
    assert error.shortfall == Decimal("0.7")


def test_exact_balance_is_enough(addresses):
    batch = BatchPlanner().plan([Recipient(addresses[0], Decimal("1"))], LAMPORTS)
    assert batch.total_lamports == LAMPORTS


def test_invalid_rows_are_skipped_silently(addresses):
    a, b = addresses[:2]
    rows = [
        Recipient("", Decimal("1")),
        Recipient(a, Decimal("0")),
        Recipient("bogus", Decimal("1")),
        Recipient(b, Decimal("-3")),
        Recipient(b, Decimal("0.25")),
        Recipient(f"0x{a}", Decimal("0.75")),
    ]
    batch = BatchPlanner().plan(rows, LAMPORTS)
    assert batch.recipients == (Recipient(b, Decimal("0.25")), Recipient(a, Decimal("0.75")))
    assert batch.total_amount == Decimal("1.00")


def test_no_survivors_is_empty_batch(addresses):
    with pytest.raises(EmptyBatchError):
        BatchPlanner().plan([Recipient("", Decimal(0)), Recipient(addresses[0], Decimal(0))], LAMPORTS)


def test_repeated_addresses_are_not_merged(addresses):
    a = addresses[0]
    batch = BatchPlanner().plan([Recipient(a, Decimal("1")), Recipient(a, Decimal("2"))], 5 * LAMPORTS)
    assert len(batch) == 2
    assert batch.total_amount == Decimal("3")


def test_plan_copies_input(addresses):
    row = Recipient(addresses[0], Decimal("1"))
    batch = BatchPlanner().plan([row], LAMPORTS)
    row.amount = Decimal("5")
    assert batch.recipients[0].amount == Decimal("1")


def test_payable_batch_cannot_be_empty():
    with pytest.raises(EmptyBatchError):
        PayableBatch(recipients=(), total_amount=Decimal(0))


def test_split_batch_preserves_order_and_totals(addresses):
    rows = [Recipient(a, Decimal(i + 1)) for i, a in enumerate(addresses)]
    batch = BatchPlanner().plan(rows, 100 * LAMPORTS)
    chunks = list(split_batch(batch, 2))
    assert [len(chunk) for chunk in chunks] == [2, 2, 1]
    assert [r.address for chunk in chunks for r in chunk.recipients] == addresses
    assert sum(chunk.total_amount for chunk in chunks) == batch.total_amount
    assert list(split_batch(batch, 10)) == [batch]


def test_split_batch_rejects_zero(addresses):
    batch = BatchPlanner().plan([Recipient(addresses[0], Decimal("1"))], LAMPORTS)
    with pytest.raises(ValueError):
        list(split_batch(batch, 0))


def test_out_of_range_amount_is_skipped(addresses):
    rows = [Recipient(addresses[0], Decimal("1e999999")), Recipient(addresses[1], Decimal("1"))]
    batch = BatchPlanner().plan(rows, LAMPORTS)
    assert [r.address for r in batch.recipients] == [addresses[1]]
    with pytest.raises(EmptyBatchError):
        BatchPlanner().plan(rows[:1], LAMPORTS)


def test_total_is_exact_and_floored_to_lamports(addresses):
    rows = [
        Recipient(addresses[0], Decimal("1000.999999999999999999999999999")),
        Recipient(addresses[1], Decimal("0.000000000000000000000000001")),
    ]
    batch = BatchPlanner().plan(rows, 2000 * LAMPORTS)
    assert batch.total_amount == Decimal("1001.000000000000000000000000000")
    assert batch.total_lamports == 1_001_000_000_000
