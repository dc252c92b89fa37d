from __future__ import annotations

import threading
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Protocol

from solders.pubkey import Pubkey

from splitter_errors import (
    IllegalTransitionError,
    NetworkFailureError,
    PayoutCancelledError,
    RetryExhaustedError,
    SignerNotConnectedError,
    SubmitError,
    TransactionRejectedError,
)
from splitter_logging import get_logger
from transaction_builder import Checkpoint, PreparedTransaction, TransactionBuilder

log = get_logger(__name__)


class ConfirmationStatus(Enum):
    FINALIZED = "finalized"
    EXPIRED = "expired"


class Signer(Protocol):
    """Wallet collaborator. Owns the keys; the pipeline only hands it transactions."""

    def is_connected(self) -> bool: ...

    def pubkey(self) -> Pubkey: ...

    def sign_and_send(self, tx: PreparedTransaction) -> str: ...


class LedgerClient(Protocol):
    def get_balance(self, address: str) -> int: ...

    def get_recent_checkpoint(self) -> Checkpoint: ...

    def confirm(self, signature: str, expiry_height: int) -> ConfirmationStatus: ...


class SubmissionState(Enum):
    BUILT = "built"
    SIGNING = "signing"
    SUBMITTED = "submitted"
    CONFIRMING = "confirming"
    FINALIZED = "finalized"
    EXPIRED = "expired"
    REJECTED = "rejected"
    FAILED = "failed"


_TRANSITIONS: Dict[SubmissionState, FrozenSet[SubmissionState]] = {
    SubmissionState.BUILT: frozenset({SubmissionState.SIGNING, SubmissionState.FAILED}),
    SubmissionState.SIGNING: frozenset(
        {SubmissionState.SUBMITTED, SubmissionState.REJECTED, SubmissionState.FAILED}
    ),
    SubmissionState.SUBMITTED: frozenset({SubmissionState.CONFIRMING, SubmissionState.FAILED}),
    SubmissionState.CONFIRMING: frozenset(
        {
            SubmissionState.FINALIZED,
            SubmissionState.EXPIRED,
            SubmissionState.REJECTED,
            SubmissionState.FAILED,
        }
    ),
    # EXPIRED -> BUILT is the rebuild with a fresh checkpoint.
    SubmissionState.EXPIRED: frozenset({SubmissionState.BUILT, SubmissionState.FAILED}),
    SubmissionState.FINALIZED: frozenset(),
    SubmissionState.REJECTED: frozenset(),
    SubmissionState.FAILED: frozenset(),
}


class SubmissionCoordinator:
    """Signs, sends and confirms one prepared transaction.

    Only an expired blockhash is retried, and only once: the expired
    transaction is dropped, a new checkpoint is fetched and the same batch is
    rebuilt. Rejections and RPC failures are terminal.
    """

    MAX_EXPIRY_RETRIES = 1

    def __init__(
        self,
        ledger: LedgerClient,
        builder: TransactionBuilder,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.ledger = ledger
        self.builder = builder
        self.cancel_event = cancel_event
        self.state = SubmissionState.BUILT
        self.history: List[SubmissionState] = [SubmissionState.BUILT]
        self.attempts: List[PreparedTransaction] = []

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    def _advance(self, target: SubmissionState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise IllegalTransitionError(
                f"Transición no permitida: {self.state.value} -> {target.value}"
            )
        self.state = target
        self.history.append(target)

    def _fail(self, exc: SubmitError) -> SubmitError:
        state = SubmissionState.REJECTED if isinstance(exc, TransactionRejectedError) else SubmissionState.FAILED
        if state in _TRANSITIONS[self.state]:
            self._advance(state)
        else:
            self._advance(SubmissionState.FAILED)
        return exc

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise self._fail(PayoutCancelledError("Envío cancelado"))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def submit(self, tx: PreparedTransaction, signer: Signer) -> str:
        if self.state is not SubmissionState.BUILT or len(self.history) > 1:
            raise IllegalTransitionError("Cada coordinador procesa una sola transacción")
        if not signer.is_connected():
            raise SignerNotConnectedError()

        current = tx
        expirations = 0
        while True:
            self.attempts.append(current)
            self._check_cancelled()
            signature = self._sign_and_send(current, signer)
            status = self._confirm(signature, current)
            if status is ConfirmationStatus.FINALIZED:
                self._advance(SubmissionState.FINALIZED)
                log.info("Transacción finalizada: %s", signature)
                return signature

            self._advance(SubmissionState.EXPIRED)
            expirations += 1
            if expirations > self.MAX_EXPIRY_RETRIES:
                log.error("La transacción %s volvió a expirar; no se reintenta", signature)
                raise self._fail(RetryExhaustedError(expirations))
            log.warning(
                "La transacción %s expiró (block height %s superado); reintentando con un blockhash nuevo",
                signature,
                current.expiry_height,
            )
            current = self._rebuild(current)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _sign_and_send(self, tx: PreparedTransaction, signer: Signer) -> str:
        self._advance(SubmissionState.SIGNING)
        try:
            signature = signer.sign_and_send(tx)
        except SubmitError as exc:
            raise self._fail(exc)
        except Exception as exc:
            raise self._fail(NetworkFailureError(f"Error al enviar la transacción: {exc}")) from exc
        self._advance(SubmissionState.SUBMITTED)
        log.info(
            "Transacción enviada: %s (%d transferencias, expira en el bloque %d)",
            signature,
            len(tx.transfers),
            tx.expiry_height,
        )
        return signature

    def _confirm(self, signature: str, tx: PreparedTransaction) -> ConfirmationStatus:
        self._advance(SubmissionState.CONFIRMING)
        try:
            status = self.ledger.confirm(signature, tx.expiry_height)
        except SubmitError as exc:
            raise self._fail(exc)
        except Exception as exc:
            raise self._fail(
                NetworkFailureError(f"Error al confirmar la transacción {signature}: {exc}")
            ) from exc
        if not isinstance(status, ConfirmationStatus):
            raise self._fail(NetworkFailureError(f"Estado de confirmación desconocido: {status!r}"))
        return status

    def _rebuild(self, expired: PreparedTransaction) -> PreparedTransaction:
        self._check_cancelled()
        try:
            checkpoint = self.ledger.get_recent_checkpoint()
        except SubmitError as exc:
            raise self._fail(exc)
        except Exception as exc:
            raise self._fail(NetworkFailureError(f"No se pudo obtener un blockhash nuevo: {exc}")) from exc
        if checkpoint.blockhash == expired.recent_blockhash:
            raise self._fail(NetworkFailureError("El RPC devolvió el mismo blockhash expirado"))
        rebuilt = self.builder.build(expired.batch, expired.payer, checkpoint)
        self._advance(SubmissionState.BUILT)
        return rebuilt
