from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Iterator, List

from lamports import parse_sol_amount
from recipient_parser import Recipient

EDITABLE_FIELDS = ("address", "amount")


def _placeholder() -> Recipient:
    return Recipient(address="", amount=Decimal(0))


class RecipientListModel:
    """Editable recipient rows for manual entry.

    Keeps shape only: there is always at least one row to edit and nothing is
    validated here. Amount text that does not parse is stored as zero, the
    planner drops such rows later.
    """

    def __init__(self, recipients: Iterable[Recipient] = ()) -> None:
        self._rows: List[Recipient] = [recipient.copy() for recipient in recipients]
        if not self._rows:
            self._rows.append(_placeholder())

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Recipient]:
        return iter(self._rows)

    def __getitem__(self, index: int) -> Recipient:
        return self._rows[index]

    def add(self) -> None:
        self._rows.append(_placeholder())

    def update(self, index: int, field: str, value: str) -> None:
        row = self._rows[index]
        if field == "address":
            row.address = value.strip()
        elif field == "amount":
            amount = parse_sol_amount(value)
            row.amount = amount if amount is not None else Decimal(0)
        else:
            raise ValueError(f"Campo desconocido {field!r}; usa uno de {EDITABLE_FIELDS}")

    def remove(self, index: int) -> None:
        del self._rows[index]
        if not self._rows:
            self._rows.append(_placeholder())

    def clear(self) -> None:
        self._rows = [_placeholder()]

    def replace(self, recipients: Iterable[Recipient]) -> None:
        rows = [recipient.copy() for recipient in recipients]
        self._rows = rows or [_placeholder()]

    def snapshot(self) -> List[Recipient]:
        return [row.copy() for row in self._rows]

    def is_blank(self) -> bool:
        return all(not row.address and row.amount == 0 for row in self._rows)
