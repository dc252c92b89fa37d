from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Iterator, List, NamedTuple, Tuple, Union

from lamports import parse_sol_amount
from solana_addresses import normalize_address
from splitter_config import ACCEPTED_EXTENSIONS
from splitter_errors import (
    EmptyInputError,
    InvalidAddressError,
    InvalidAmountError,
    MalformedRowError,
    NoDataRowsError,
    UnsupportedFileError,
)

_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_BOM = "\ufeff"
HEADER_MARKER = "address"


@dataclass
class Recipient:
    address: str
    amount: Decimal

    def copy(self) -> "Recipient":
        return Recipient(self.address, self.amount)


class _ParsedRow(NamedTuple):
    line_number: int
    raw_text: str


def is_header_line(line: str) -> bool:
    return HEADER_MARKER in line.lower()


def split_row(line: str) -> Tuple[str, str]:
    """Split on the first comma into trimmed ``(address, amount_text)``."""
    address, _, amount_text = line.partition(",")
    return address.strip(), amount_text.strip()


def _iter_rows(content: str) -> Iterator[_ParsedRow]:
    if content.startswith(_BOM):
        content = content[len(_BOM):]
    for line_number, raw_text in enumerate(_LINE_BREAK.split(content), start=1):
        if raw_text.strip():
            yield _ParsedRow(line_number, raw_text)


def _parse_row(row: _ParsedRow) -> Recipient:
    line = row.raw_text.strip()
    address, amount_text = split_row(line)
    if not address or not amount_text:
        raise MalformedRowError(line, row.line_number)
    amount = parse_sol_amount(amount_text)
    if amount is None or amount <= 0:
        raise InvalidAmountError(line, row.line_number, amount_text)
    normalized = normalize_address(address)
    if normalized is None:
        raise InvalidAddressError(line, row.line_number, address)
    return Recipient(address=normalized, amount=amount)


def parse_recipients(content: str) -> List[Recipient]:
    """Parse ``address,amount`` rows into recipients, in input order.

    The first bad row aborts the whole parse; the error carries its 1-based
    line number in ``content`` and the offending line.
    """
    rows = list(_iter_rows(content))
    if not rows:
        raise EmptyInputError()
    if is_header_line(rows[0].raw_text.strip()):
        rows = rows[1:]
    if not rows:
        raise NoDataRowsError()
    return [_parse_row(row) for row in rows]


def read_recipients_file(path: Union[str, Path]) -> List[Recipient]:
    file_path = Path(path).expanduser()
    if file_path.suffix.lower() not in ACCEPTED_EXTENSIONS:
        raise UnsupportedFileError(
            f"Sube un archivo CSV o TXT (se recibió {file_path.name})"
        )
    if not file_path.exists():
        raise UnsupportedFileError(f"No se encontró el archivo de wallets: {file_path}")
    try:
        content = file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise UnsupportedFileError(f"El archivo {file_path} no está en UTF-8") from exc
    return parse_recipients(content)


class RecipientParser:
    """Strict, side-effect free parser for pasted or uploaded recipient lists."""

    def parse(self, content: str) -> List[Recipient]:
        return parse_recipients(content)

    def parse_file(self, path: Union[str, Path]) -> List[Recipient]:
        return read_recipients_file(path)
