from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence, TypeVar, Union

import base58
from solana.rpc.api import Client
from solana.rpc.commitment import Commitment, Finalized
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from splitter_config import (
    DEFAULT_CONFIRM_POLL_SECONDS,
    DEFAULT_CONFIRM_TIMEOUT_SECONDS,
    DEFAULT_MAX_RETRIES_PER_ENDPOINT,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_TIMEOUT,
    DEVNET_RPC_URL,
    SplitterConfig,
)
from splitter_errors import (
    ConfirmationTimeoutError,
    NetworkFailureError,
    SignerNotConnectedError,
    TransactionRejectedError,
    WalletLoadError,
)
from splitter_logging import get_logger
from submission import ConfirmationStatus
from transaction_builder import Checkpoint, PreparedTransaction

T = TypeVar("T")

log = get_logger(__name__)


class SolanaLedgerClient:
    """RPC access for the payout pipeline, backed by a pool of endpoints.

    Every call is retried on the current endpoint and rotated through the pool
    on repeated failure. Node rejections (``RPCException``) are never retried.
    """

    def __init__(
        self,
        endpoints: Sequence[str] = (DEVNET_RPC_URL,),
        timeout: float = DEFAULT_TIMEOUT,
        max_retries_per_endpoint: int = DEFAULT_MAX_RETRIES_PER_ENDPOINT,
        retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        confirm_timeout_seconds: float = DEFAULT_CONFIRM_TIMEOUT_SECONDS,
        confirm_poll_seconds: float = DEFAULT_CONFIRM_POLL_SECONDS,
        commitment: Commitment = Finalized,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout = timeout
        self.max_retries_per_endpoint = max(1, max_retries_per_endpoint)
        self.retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self.confirm_timeout_seconds = confirm_timeout_seconds
        self.confirm_poll_seconds = confirm_poll_seconds
        self.commitment = commitment
        self._sleep = sleep
        self._clock = clock
        self.rpc_endpoints: List[str] = []
        self._current_endpoint_index = 0
        self.set_rpc_pool(endpoints)

    @classmethod
    def from_config(cls, config: SplitterConfig) -> "SolanaLedgerClient":
        return cls(
            endpoints=config.rpc_urls,
            timeout=config.timeout,
            max_retries_per_endpoint=config.max_retries_per_endpoint,
            retry_backoff_seconds=config.retry_backoff_seconds,
            confirm_timeout_seconds=config.confirm_timeout_seconds,
            confirm_poll_seconds=config.confirm_poll_seconds,
        )

    # ------------------------------------------------------------------
    # Pool management & RPC helpers
    # ------------------------------------------------------------------
    def set_rpc_pool(self, endpoints: Sequence[str]) -> None:
        unique: List[str] = []
        seen: set[str] = set()
        for endpoint in endpoints:
            cleaned = endpoint.strip()
            if cleaned and cleaned not in seen:
                unique.append(cleaned)
                seen.add(cleaned)
        if not unique:
            raise ValueError("Se necesita al menos un endpoint RPC válido")
        self.rpc_endpoints = unique
        self._current_endpoint_index = 0
        self.endpoint = self.rpc_endpoints[0]
        self.client = Client(self.endpoint, timeout=self.timeout)

    def _perform(self, func: Callable[[Client], T]) -> T:
        attempts = 0
        total_endpoints = len(self.rpc_endpoints)
        max_attempts = total_endpoints * self.max_retries_per_endpoint
        last_error: Optional[Exception] = None
        while attempts < max_attempts:
            try:
                return func(self.client)
            except RPCException:
                raise
            except Exception as exc:  # pragma: no cover - network dependent
                last_error = exc
                attempts += 1
                log.warning("Fallo RPC en %s (intento %d/%d): %s", self.endpoint, attempts, max_attempts, exc)
                if attempts >= max_attempts:
                    break
                self._sleep(self.retry_backoff_seconds * min(attempts, 4))
                if total_endpoints > 1 and attempts % self.max_retries_per_endpoint == 0:
                    self._rotate_endpoint()
        raise NetworkFailureError(
            f"Error tras {max_attempts} intentos usando pool RPC {self.rpc_endpoints}: {last_error}"
        ) from last_error

    def _rotate_endpoint(self) -> None:
        if len(self.rpc_endpoints) <= 1:
            return
        self._current_endpoint_index = (self._current_endpoint_index + 1) % len(self.rpc_endpoints)
        self.endpoint = self.rpc_endpoints[self._current_endpoint_index]
        self.client = Client(self.endpoint, timeout=self.timeout)
        log.info("Cambiando a endpoint RPC %s", self.endpoint)

    # ------------------------------------------------------------------
    # LedgerClient
    # ------------------------------------------------------------------
    def ping(self, timeout_seconds: float = 5.0) -> float:
        start = time.perf_counter()
        is_ok = self._perform(lambda client: client.is_connected())
        elapsed = time.perf_counter() - start
        if not is_ok:
            raise NetworkFailureError("El RPC respondió pero no está saludable")
        if elapsed > timeout_seconds:
            raise NetworkFailureError(
                f"El RPC respondió en {elapsed:.2f}s, excediendo el límite de {timeout_seconds}s"
            )
        return elapsed

    def get_balance(self, address: Union[str, Pubkey]) -> int:
        pubkey = address if isinstance(address, Pubkey) else Pubkey.from_string(address)
        response = self._perform(lambda client: client.get_balance(pubkey, commitment=self.commitment))
        return int(response.value)

    def get_recent_checkpoint(self) -> Checkpoint:
        response = self._perform(lambda client: client.get_latest_blockhash(commitment=self.commitment))
        return Checkpoint(
            blockhash=response.value.blockhash,
            last_valid_block_height=int(response.value.last_valid_block_height),
        )

    def get_block_height(self) -> int:
        response = self._perform(lambda client: client.get_block_height(self.commitment))
        return int(response.value)

    def send_raw_transaction(self, raw: bytes, skip_preflight: bool = False) -> str:
        try:
            response = self._perform(
                lambda client: client.send_raw_transaction(
                    raw,
                    opts=TxOpts(skip_preflight=skip_preflight, preflight_commitment=self.commitment),
                )
            )
        except RPCException as exc:
            raise TransactionRejectedError(f"El nodo rechazó la transacción: {exc}") from exc
        return self._extract_signature(response)

    def confirm(self, signature: str, expiry_height: int) -> ConfirmationStatus:
        """Wait for ``signature`` to finalize.

        Returns ``EXPIRED`` only when the finalized block height has passed
        ``expiry_height`` and the cluster has never seen the signature; a
        transaction that landed keeps being polled until it finalizes.
        """
        deadline = self._clock() + self.confirm_timeout_seconds
        signature_obj = Signature.from_string(signature)
        last_status: Optional[object] = None
        while True:
            try:
                response = self._perform(lambda client: client.get_signature_statuses([signature_obj]))
            except RPCException as exc:
                raise NetworkFailureError(f"Error al consultar el estado de {signature}: {exc}") from exc
            status = response.value[0]
            if status is not None:
                if status.err is not None:
                    raise TransactionRejectedError(f"La transacción {signature} falló: {status.err}")
                if status.confirmation_status == TransactionConfirmationStatus.Finalized:
                    return ConfirmationStatus.FINALIZED
                last_status = status
            elif self.get_block_height() > expiry_height:
                return ConfirmationStatus.EXPIRED
            if self._clock() >= deadline:
                raise ConfirmationTimeoutError(
                    f"No se confirmó la transacción {signature} dentro de "
                    f"{self.confirm_timeout_seconds} segundos. Último estado: {last_status}"
                )
            self._sleep(self.confirm_poll_seconds)

    @staticmethod
    def _extract_signature(response) -> str:
        if isinstance(response, Signature):
            return str(response)
        value = getattr(response, "value", None)
        if isinstance(value, Signature):
            return str(value)
        if isinstance(value, str):
            return value
        raise NetworkFailureError(f"No se pudo extraer la firma de la respuesta: {response}")


class KeypairSigner:
    """Signer backed by a local keypair file (Solana CLI JSON array or base58)."""

    def __init__(
        self,
        ledger: SolanaLedgerClient,
        keypair: Optional[Keypair] = None,
        skip_preflight: bool = False,
    ) -> None:
        self.ledger = ledger
        self.wallet = keypair
        self.skip_preflight = skip_preflight

    @classmethod
    def from_file(cls, path: Union[str, Path], ledger: SolanaLedgerClient, **kwargs) -> "KeypairSigner":
        signer = cls(ledger, **kwargs)
        signer.load_wallet_from_file(path)
        return signer

    def load_wallet_from_file(self, path: Union[str, Path]) -> str:
        file_path = Path(path).expanduser().resolve()
        if not file_path.exists():
            raise WalletLoadError(f"No se encontró el archivo de la wallet: {file_path}")
        raw = file_path.read_text(encoding="utf-8").strip()
        if not raw:
            raise WalletLoadError(f"El archivo {file_path} está vacío")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, list):
            try:
                secret_bytes = bytes(int(value) for value in data)
            except (TypeError, ValueError) as exc:
                raise WalletLoadError(f"No se pudo interpretar la clave secreta en {file_path}") from exc
            self.wallet = self._keypair_from_bytes(secret_bytes)
            return str(self.wallet.pubkey())
        try:
            secret_bytes = base58.b58decode(raw)
        except ValueError as exc:
            raise WalletLoadError(f"No se pudo interpretar la clave secreta en {file_path}") from exc
        self.wallet = self._keypair_from_bytes(secret_bytes)
        return str(self.wallet.pubkey())

    @staticmethod
    def _keypair_from_bytes(secret_bytes: bytes) -> Keypair:
        try:
            if len(secret_bytes) == 64:
                return Keypair.from_bytes(secret_bytes)
            if len(secret_bytes) == 32:
                return Keypair.from_seed(secret_bytes)
        except ValueError as exc:
            raise WalletLoadError(f"Clave secreta inválida: {exc}") from exc
        raise WalletLoadError(
            "La clave secreta debe tener 32 bytes (seed) o 64 bytes (full secret key)."
        )

    def _require_wallet(self) -> Keypair:
        if self.wallet is None:
            raise SignerNotConnectedError()
        return self.wallet

    def is_connected(self) -> bool:
        return self.wallet is not None

    def pubkey(self) -> Pubkey:
        return self._require_wallet().pubkey()

    def sign_and_send(self, tx: PreparedTransaction) -> str:
        wallet = self._require_wallet()
        if tx.payer != wallet.pubkey():
            raise TransactionRejectedError(
                f"La transacción la paga {tx.payer} pero la wallet conectada es {wallet.pubkey()}"
            )
        signed = VersionedTransaction(tx.message(), [wallet])
        return self.ledger.send_raw_transaction(bytes(signed), skip_preflight=self.skip_preflight)
