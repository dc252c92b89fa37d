import threading
from decimal import Decimal

import pytest

from batch_planner import BatchPlanner
from fakes import DecliningSigner, FakeLedger, FakeSigner
from recipient_parser import Recipient
from splitter_errors import (
    IllegalTransitionError,
    NetworkFailureError,
    PayoutCancelledError,
    RetryExhaustedError,
    SignerNotConnectedError,
    TransactionRejectedError,
)
from submission import ConfirmationStatus, SubmissionCoordinator, SubmissionState
from transaction_builder import Checkpoint, TransactionBuilder

S = SubmissionState


def _prepared(ledger, signer, addresses, builder=None):
    builder = builder or TransactionBuilder()
    batch = BatchPlanner().plan([Recipient(a, Decimal("0.1")) for a in addresses], 10**12)
    return builder.build(batch, signer.pubkey(), ledger.get_recent_checkpoint())


def test_finalized_on_first_attempt(ledger, signer, addresses):
    tx = _prepared(ledger, signer, addresses)
    coordinator = SubmissionCoordinator(ledger, TransactionBuilder())
    assert coordinator.submit(tx, signer) == "sig-1"
    assert coordinator.state is S.FINALIZED
    assert coordinator.history == [S.BUILT, S.SIGNING, S.SUBMITTED, S.CONFIRMING, S.FINALIZED]
    assert ledger.confirm_calls == [("sig-1", tx.expiry_height)]
    assert signer.sent == [tx]


def test_expired_once_rebuilds_with_new_checkpoint(signer, addresses):
    ledger = FakeLedger(confirmations=[ConfirmationStatus.EXPIRED, ConfirmationStatus.FINALIZED])
    tx = _prepared(ledger, signer, addresses)
    coordinator = SubmissionCoordinator(ledger, TransactionBuilder())

    assert coordinator.submit(tx, signer) == "sig-2"

    assert len(ledger.checkpoints) == 2
    first, retry = signer.sent
    assert first is tx
    assert retry.checkpoint == ledger.checkpoints[1]
    assert retry.recent_blockhash != tx.recent_blockhash
    assert retry.transfers == tx.transfers
    assert retry.batch is tx.batch
    assert coordinator.attempts == [first, retry]
    assert coordinator.history == [
        S.BUILT, S.SIGNING, S.SUBMITTED, S.CONFIRMING, S.EXPIRED,
        S.BUILT, S.SIGNING, S.SUBMITTED, S.CONFIRMING, S.FINALIZED,
    ]


def test_second_expiry_is_retry_exhausted(signer, addresses):
    ledger = FakeLedger(
        confirmations=[ConfirmationStatus.EXPIRED, ConfirmationStatus.EXPIRED, ConfirmationStatus.FINALIZED]
    )
    tx = _prepared(ledger, signer, addresses)
    coordinator = SubmissionCoordinator(ledger, TransactionBuilder())

    with pytest.raises(RetryExhaustedError) as info:
        coordinator.submit(tx, signer)

    assert info.value.attempts == 2
    assert len(signer.sent) == 2
    assert len(ledger.confirm_calls) == 2
    assert len(ledger.checkpoints) == 2
    assert coordinator.state is S.FAILED


def test_signer_rejection_is_terminal(ledger, addresses):
    signer = DecliningSigner()
    tx = _prepared(ledger, signer, addresses)
    coordinator = SubmissionCoordinator(ledger, TransactionBuilder())
    with pytest.raises(TransactionRejectedError):
        coordinator.submit(tx, signer)
    assert coordinator.state is S.REJECTED
    assert ledger.confirm_calls == []
    assert len(ledger.checkpoints) == 1


def test_unexpected_signer_error_becomes_network_failure(ledger, addresses):
    signer = FakeSigner(failures=[ConnectionError("socket closed")])
    tx = _prepared(ledger, signer, addresses)
    coordinator = SubmissionCoordinator(ledger, TransactionBuilder())
    with pytest.raises(NetworkFailureError) as info:
        coordinator.submit(tx, signer)
    assert isinstance(info.value.__cause__, ConnectionError)
    assert coordinator.state is S.FAILED
    assert signer.sent == []


def test_on_chain_error_during_confirmation_is_not_retried(signer, addresses):
    ledger = FakeLedger(confirmations=[TransactionRejectedError("InsufficientFundsForFee")])
    tx = _prepared(ledger, signer, addresses)
    coordinator = SubmissionCoordinator(ledger, TransactionBuilder())
    with pytest.raises(TransactionRejectedError):
        coordinator.submit(tx, signer)
    assert coordinator.state is S.REJECTED
    assert len(signer.sent) == 1


def test_confirmation_network_error_is_terminal(signer, addresses):
    ledger = FakeLedger(confirmations=[TimeoutError("read timeout")])
    tx = _prepared(ledger, signer, addresses)
    coordinator = SubmissionCoordinator(ledger, TransactionBuilder())
    with pytest.raises(NetworkFailureError):
        coordinator.submit(tx, signer)
    assert len(signer.sent) == 1
    assert len(ledger.checkpoints) == 1


def test_same_blockhash_after_expiry_is_refused(signer, addresses):
    ledger = FakeLedger(confirmations=[ConfirmationStatus.EXPIRED])
    tx = _prepared(ledger, signer, addresses)
    ledger.get_recent_checkpoint = lambda: Checkpoint(tx.recent_blockhash, tx.expiry_height)
    coordinator = SubmissionCoordinator(ledger, TransactionBuilder())
    with pytest.raises(NetworkFailureError):
        coordinator.submit(tx, signer)
    assert len(signer.sent) == 1


def test_disconnected_signer(ledger, addresses):
    signer = FakeSigner(connected=False)
    tx = _prepared(ledger, signer, addresses)
    with pytest.raises(SignerNotConnectedError):
        SubmissionCoordinator(ledger, TransactionBuilder()).submit(tx, signer)


def test_cancel_before_rebuild(signer, addresses):
    cancel = threading.Event()
    ledger = FakeLedger(confirmations=[ConfirmationStatus.EXPIRED])
    tx = _prepared(ledger, signer, addresses)
    original_confirm = ledger.confirm

    def confirm_and_cancel(signature, expiry_height):
        cancel.set()
        return original_confirm(signature, expiry_height)

    ledger.confirm = confirm_and_cancel
    coordinator = SubmissionCoordinator(ledger, TransactionBuilder(), cancel_event=cancel)
    with pytest.raises(PayoutCancelledError):
        coordinator.submit(tx, signer)
    assert len(signer.sent) == 1
    assert len(ledger.checkpoints) == 1
    assert coordinator.state is S.FAILED


def test_coordinator_is_single_use(ledger, signer, addresses):
    tx = _prepared(ledger, signer, addresses)
    coordinator = SubmissionCoordinator(ledger, TransactionBuilder())
    coordinator.submit(tx, signer)
    with pytest.raises(IllegalTransitionError):
        coordinator.submit(tx, signer)


def test_illegal_transition_is_refused(ledger):
    coordinator = SubmissionCoordinator(ledger, TransactionBuilder())
    with pytest.raises(IllegalTransitionError):
        coordinator._advance(S.FINALIZED)
