from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Iterator, Optional, Tuple

from lamports import lamports_to_sol, parse_sol_amount, sol_to_lamports, sum_sol
from recipient_parser import Recipient
from solana_addresses import normalize_address
from splitter_errors import EmptyBatchError, InsufficientBalanceError


@dataclass(frozen=True)
class PayableBatch:
    recipients: Tuple[Recipient, ...]
    total_amount: Decimal

    def __post_init__(self) -> None:
        if not self.recipients:
            raise EmptyBatchError()

    @property
    def total_lamports(self) -> int:
        return sol_to_lamports(self.total_amount)

    def __len__(self) -> int:
        return len(self.recipients)


def _payable(recipient: Recipient) -> Optional[Recipient]:
    if not recipient.address or recipient.amount is None:
        return None
    amount = parse_sol_amount(recipient.amount)
    if amount is None or amount <= 0:
        return None
    normalized = normalize_address(recipient.address)
    if normalized is None:
        return None
    return Recipient(address=normalized, amount=amount)


def _make_batch(recipients: Iterable[Recipient]) -> PayableBatch:
    members = tuple(recipients)
    return PayableBatch(recipients=members, total_amount=sum_sol(r.amount for r in members))


class BatchPlanner:
    """Turns a recipient list snapshot into a payable batch.

    Unlike the file parser this is lenient: rows without an address, with a
    non-positive or out-of-range amount or with an invalid address are
    skipped silently.
    """

    def plan(self, recipients: Iterable[Recipient], available_lamports: int) -> PayableBatch:
        payable = [r for r in (_payable(recipient) for recipient in recipients) if r is not None]
        if not payable:
            raise EmptyBatchError()
        batch = _make_batch(payable)
        required_lamports = batch.total_lamports
        if required_lamports > available_lamports:
            raise InsufficientBalanceError(
                required=batch.total_amount,
                available=lamports_to_sol(available_lamports),
                required_lamports=required_lamports,
                available_lamports=available_lamports,
            )
        return batch


def split_batch(batch: PayableBatch, max_per_transaction: int) -> Iterator[PayableBatch]:
    """Yield consecutive sub-batches of at most ``max_per_transaction`` recipients."""
    if max_per_transaction < 1:
        raise ValueError("max_per_transaction debe ser al menos 1")
    members = batch.recipients
    for index in range(0, len(members), max_per_transaction):
        yield _make_batch(members[index : index + max_per_transaction])
