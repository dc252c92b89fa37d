from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Sequence


class SplitterError(Exception):
    """Base class for every failure raised by the splitter pipeline."""


# ----------------------------------------------------------------------
# Input errors (recipient parsing)
# ----------------------------------------------------------------------
class RecipientParseError(SplitterError, ValueError):
    """Raised when the recipients text cannot be parsed."""

    def __init__(self, message: str, line_number: Optional[int] = None, line: Optional[str] = None) -> None:
        super().__init__(message)
        self.line_number = line_number
        self.line = line


class EmptyInputError(RecipientParseError):
    def __init__(self) -> None:
        super().__init__("El archivo está vacío")


class NoDataRowsError(RecipientParseError):
    def __init__(self) -> None:
        super().__init__("No hay datos después del encabezado")


class MalformedRowError(RecipientParseError):
    def __init__(self, line: str, line_number: int) -> None:
        super().__init__(
            f"Error en la línea {line_number}: \"{line}\". Formato esperado: \"address,amount\"",
            line_number=line_number,
            line=line,
        )


class InvalidAmountError(RecipientParseError):
    def __init__(self, line: str, line_number: int, value: str) -> None:
        super().__init__(
            f"Error en la línea {line_number}: \"{line}\". Cantidad inválida \"{value}\" (debe ser mayor que cero)",
            line_number=line_number,
            line=line,
        )
        self.value = value


class InvalidAddressError(RecipientParseError):
    def __init__(self, line: str, line_number: int, address: str) -> None:
        super().__init__(
            f"Error en la línea {line_number}: \"{line}\". Dirección Solana inválida \"{address}\"",
            line_number=line_number,
            line=line,
        )
        self.address = address


class UnsupportedFileError(RecipientParseError):
    """Raised when a recipients file has the wrong extension or encoding."""


# ----------------------------------------------------------------------
# Plan errors
# ----------------------------------------------------------------------
class PlanError(SplitterError):
    """Raised when a recipient list cannot be turned into a payable batch."""


class EmptyBatchError(PlanError):
    def __init__(self) -> None:
        super().__init__("Agrega al menos un destinatario válido")


class InsufficientBalanceError(PlanError):
    def __init__(
        self,
        required: Decimal,
        available: Decimal,
        required_lamports: int,
        available_lamports: int,
    ) -> None:
        super().__init__(
            f"Balance insuficiente: se requieren {required} SOL y hay {available} SOL disponibles"
        )
        self.required = required
        self.available = available
        self.required_lamports = required_lamports
        self.available_lamports = available_lamports

    @property
    def shortfall(self) -> Decimal:
        return self.required - self.available


class DustAmountError(PlanError, ValueError):
    """Raised when an amount rounds down to zero lamports."""

    def __init__(self, address: str, amount: Decimal) -> None:
        super().__init__(f"La cantidad {amount} para {address} es demasiado pequeña (0 lamports)")
        self.address = address
        self.amount = amount


# ----------------------------------------------------------------------
# Submission errors
# ----------------------------------------------------------------------
class SubmitError(SplitterError):
    """Terminal failure while signing, sending or confirming a transaction."""


class TransactionRejectedError(SubmitError):
    """The signer or the cluster refused the transaction."""


class NetworkFailureError(SubmitError):
    """An RPC or transport failure interrupted the submission."""


class ConfirmationTimeoutError(NetworkFailureError):
    """The transaction was neither finalized nor expired before the deadline."""


class RetryExhaustedError(SubmitError):
    def __init__(self, attempts: int) -> None:
        super().__init__(
            f"La transacción expiró (block height exceeded) en {attempts} intentos consecutivos"
        )
        self.attempts = attempts


class PayoutCancelledError(SubmitError):
    """The send was cancelled from outside before the next network step."""


class IllegalTransitionError(SubmitError, RuntimeError):
    """The submission state machine was asked for a transition it does not allow."""


# ----------------------------------------------------------------------
# Session errors
# ----------------------------------------------------------------------
class WalletLoadError(SplitterError, RuntimeError):
    """Raised when the source wallet cannot be loaded."""


class SignerNotConnectedError(SplitterError, RuntimeError):
    def __init__(self) -> None:
        super().__init__("Conecta primero la wallet antes de enviar")


class SendInProgressError(SplitterError, RuntimeError):
    def __init__(self) -> None:
        super().__init__("Ya hay un envío en curso; espera a que termine")


class PartialPayoutError(SplitterError):
    """Some transactions of a multi-transaction payout settled before one failed."""

    def __init__(
        self,
        completed_signatures: Sequence[str],
        failed_index: int,
        cause: SplitterError,
        unsent_recipients: Sequence = (),
    ) -> None:
        super().__init__(
            f"La transacción {failed_index + 1} falló tras {len(completed_signatures)} confirmadas: {cause}"
        )
        self.completed_signatures: List[str] = list(completed_signatures)
        self.failed_index = failed_index
        self.cause = cause
        # Recipients of the failed transaction and every one after it.
        self.unsent_recipients = list(unsent_recipients)
