from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN, localcontext
from typing import Iterable, Optional, Union

from splitter_config import LAMPORT_DECIMALS, LAMPORTS_PER_SOL, MAX_LAMPORTS

_LAMPORTS = Decimal(LAMPORTS_PER_SOL)
_LAMPORT_STEP = Decimal(1).scaleb(-LAMPORT_DECIMALS)
MAX_SOL_AMOUNT = Decimal(MAX_LAMPORTS).scaleb(-LAMPORT_DECIMALS)

# Wide enough for any in-range amount or a sum of them at full lamport
# precision, so no arithmetic below rounds before ROUND_DOWN does.
_PRECISION = 60


def parse_sol_amount(text: Union[str, int, Decimal]) -> Optional[Decimal]:
    """Parse a SOL amount exactly, returning ``None`` for anything non-numeric.

    Floats are not accepted; going through binary floating point would
    already have lost the value the user typed. Amounts whose lamport value
    would not fit in a u64 are rejected as well.
    """
    if isinstance(text, bool):
        return None
    if isinstance(text, Decimal):
        value = text
    elif isinstance(text, int):
        value = Decimal(text)
    elif isinstance(text, str):
        cleaned = text.strip()
        if not cleaned:
            return None
        try:
            value = Decimal(cleaned)
        except InvalidOperation:
            return None
    else:
        return None
    if not value.is_finite():
        return None
    if value.copy_abs() > MAX_SOL_AMOUNT:
        return None
    return value


def sum_sol(amounts: Iterable[Decimal]) -> Decimal:
    """Exact sum of SOL amounts."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return sum(amounts, Decimal(0))


def sol_to_lamports(amount_sol: Decimal) -> int:
    """Convert SOL to lamports, rounding toward zero."""
    if not amount_sol.is_finite() or amount_sol.adjusted() >= _PRECISION - LAMPORT_DECIMALS:
        raise ValueError(f"Monto fuera de rango: {amount_sol}")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        truncated = amount_sol.quantize(_LAMPORT_STEP, rounding=ROUND_DOWN)
        return int(truncated * _LAMPORTS)


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(lamports) / _LAMPORTS
