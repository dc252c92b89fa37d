from __future__ import annotations

import threading
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Union

from batch_planner import BatchPlanner, PayableBatch, split_batch
from recipient_list import RecipientListModel
from recipient_parser import Recipient, RecipientParser
from splitter_config import DEFAULT_MAX_RECIPIENTS_PER_TX, SplitterConfig
from splitter_errors import (
    NetworkFailureError,
    PartialPayoutError,
    PayoutCancelledError,
    SendInProgressError,
    SignerNotConnectedError,
    SplitterError,
)
from splitter_logging import get_logger
from submission import LedgerClient, Signer, SubmissionCoordinator
from transaction_builder import PreparedTransaction, TransactionBuilder

log = get_logger(__name__)


@dataclass
class PayoutReport:
    signatures: List[str]
    recipient_count: int
    total_amount: Decimal
    transactions: List[PreparedTransaction] = field(default_factory=list)


class PayoutSession:
    """One user's splitter session: the editable list plus the send pipeline.

    Sends run synchronously on the calling thread (GUI callers run them in a
    worker thread). A second ``send()`` while one is running is refused.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        signer: Signer,
        max_recipients_per_tx: int = DEFAULT_MAX_RECIPIENTS_PER_TX,
        builder: Optional[TransactionBuilder] = None,
        planner: Optional[BatchPlanner] = None,
        parser: Optional[RecipientParser] = None,
        clear_after_send: bool = True,
    ) -> None:
        if max_recipients_per_tx < 1:
            raise ValueError("max_recipients_per_tx debe ser al menos 1")
        self.ledger = ledger
        self.signer = signer
        self.max_recipients_per_tx = max_recipients_per_tx
        self.builder = builder or TransactionBuilder()
        self.planner = planner or BatchPlanner()
        self.parser = parser or RecipientParser()
        self.clear_after_send = clear_after_send
        self.recipients = RecipientListModel()
        self._send_lock = threading.Lock()
        self._cancel_event = threading.Event()

    @classmethod
    def from_config(cls, config: SplitterConfig, ledger: LedgerClient, signer: Signer) -> "PayoutSession":
        return cls(
            ledger,
            signer,
            max_recipients_per_tx=config.max_recipients_per_tx,
            builder=TransactionBuilder(config.units_per_transfer, config.max_compute_units),
        )

    # ------------------------------------------------------------------
    # Recipient input
    # ------------------------------------------------------------------
    def load_text(self, content: str) -> List[Recipient]:
        recipients = self.parser.parse(content)
        self.recipients.replace(recipients)
        log.info("Se cargaron %d destinatarios", len(recipients))
        return recipients

    def load_file(self, path: Union[str, Path]) -> List[Recipient]:
        recipients = self.parser.parse_file(path)
        self.recipients.replace(recipients)
        log.info("Se cargaron %d destinatarios desde %s", len(recipients), path)
        return recipients

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------
    @property
    def is_sending(self) -> bool:
        return self._send_lock.locked()

    def cancel(self) -> None:
        self._cancel_event.set()

    def plan(self) -> PayableBatch:
        if not self.signer.is_connected():
            raise SignerNotConnectedError()
        payer = self.signer.pubkey()
        try:
            available = self.ledger.get_balance(str(payer))
        except SplitterError:
            raise
        except Exception as exc:
            raise NetworkFailureError(f"No se pudo consultar el balance: {exc}") from exc
        return self.planner.plan(self.recipients.snapshot(), available)

    def send(self) -> PayoutReport:
        if not self._send_lock.acquire(blocking=False):
            raise SendInProgressError()
        self._cancel_event.clear()
        try:
            report = self._send_locked()
        except PartialPayoutError as exc:
            # Settled recipients must not be paid again on the next send.
            self.recipients.replace(exc.unsent_recipients)
            log.warning("Quedan %d destinatarios sin pagar en la lista", len(exc.unsent_recipients))
            raise
        finally:
            self._send_lock.release()
        if self.clear_after_send:
            self.recipients.clear()
        return report

    def _send_locked(self) -> PayoutReport:
        batch = self.plan()
        payer = self.signer.pubkey()
        chunks = list(split_batch(batch, self.max_recipients_per_tx))
        log.info(
            "Enviando %s SOL a %d destinatarios en %d transacción(es)",
            batch.total_amount,
            len(batch),
            len(chunks),
        )
        # Convert every chunk before the first signature so a dust amount in a
        # later chunk cannot leave the payout half sent.
        for chunk in chunks:
            self.builder.transfers_for(chunk, payer)

        signatures: List[str] = []
        transactions: List[PreparedTransaction] = []
        for index, chunk in enumerate(chunks):
            coordinator = SubmissionCoordinator(self.ledger, self.builder, cancel_event=self._cancel_event)
            try:
                tx = self._prepare(chunk, payer)
                signatures.append(coordinator.submit(tx, self.signer))
            except SplitterError as exc:
                if not signatures:
                    log.error("El envío falló: %s", exc)
                    raise
                log.error("La transacción %d/%d falló tras %d confirmadas: %s", index + 1, len(chunks), len(signatures), exc)
                unsent = [recipient for pending in chunks[index:] for recipient in pending.recipients]
                raise PartialPayoutError(signatures, index, exc, unsent) from exc
            transactions.extend(coordinator.attempts[-1:])
            log.info("Transacción %d/%d confirmada: %s", index + 1, len(chunks), signatures[-1])
        return PayoutReport(
            signatures=signatures,
            recipient_count=len(batch),
            total_amount=batch.total_amount,
            transactions=transactions,
        )

    def _prepare(self, chunk: PayableBatch, payer) -> PreparedTransaction:
        if self._cancel_event.is_set():
            raise PayoutCancelledError("Envío cancelado")
        try:
            checkpoint = self.ledger.get_recent_checkpoint()
        except SplitterError:
            raise
        except Exception as exc:
            raise NetworkFailureError(f"No se pudo obtener un blockhash reciente: {exc}") from exc
        return self.builder.build(chunk, payer, checkpoint)
