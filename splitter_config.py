from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

LAMPORTS_PER_SOL = 1_000_000_000
LAMPORT_DECIMALS = 9
# Lamport balances and transfer amounts are u64 on chain.
MAX_LAMPORTS = 2**64 - 1
DEVNET_RPC_URL = "https://api.devnet.solana.com"
TESTNET_RPC_URL = "https://api.testnet.solana.com"
MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"
ANKR_MAINNET_RPC = "https://rpc.ankr.com/solana"
ANKR_DEVNET_RPC = "https://rpc.ankr.com/solana_devnet"
ANKR_TESTNET_RPC = "https://rpc.ankr.com/solana_testnet"

NETWORK_CHOICES = {
    "devnet": DEVNET_RPC_URL,
    "testnet": TESTNET_RPC_URL,
    "mainnet": MAINNET_RPC_URL,
    "ankr-devnet": ANKR_DEVNET_RPC,
    "ankr-testnet": ANKR_TESTNET_RPC,
    "ankr-mainnet": ANKR_MAINNET_RPC,
}

# Compute budget: a system transfer is budgeted generously and the total is
# capped at the protocol's per-transaction ceiling.
COMPUTE_UNITS_PER_TRANSFER = 200_000
MAX_COMPUTE_UNITS = 1_400_000

# A legacy/v0 message tops out at 1232 bytes, about 20 system transfers.
DEFAULT_MAX_RECIPIENTS_PER_TX = 20

ACCEPTED_EXTENSIONS = (".csv", ".txt")

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_RETRIES_PER_ENDPOINT = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.5
DEFAULT_CONFIRM_TIMEOUT_SECONDS = 120.0
DEFAULT_CONFIRM_POLL_SECONDS = 0.8

ENV_PREFIX = "SPLITTER_"


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} debe ser un número, se recibió {raw!r}")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} debe ser un entero, se recibió {raw!r}")


@dataclass
class SplitterConfig:
    """Runtime settings shared by the CLI, the RPC client and the payout session."""

    rpc_urls: List[str] = field(default_factory=lambda: [DEVNET_RPC_URL])
    timeout: float = DEFAULT_TIMEOUT
    max_retries_per_endpoint: int = DEFAULT_MAX_RETRIES_PER_ENDPOINT
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    max_recipients_per_tx: int = DEFAULT_MAX_RECIPIENTS_PER_TX
    units_per_transfer: int = COMPUTE_UNITS_PER_TRANSFER
    max_compute_units: int = MAX_COMPUTE_UNITS
    confirm_timeout_seconds: float = DEFAULT_CONFIRM_TIMEOUT_SECONDS
    confirm_poll_seconds: float = DEFAULT_CONFIRM_POLL_SECONDS
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self) -> None:
        self.rpc_urls = [url.strip() for url in self.rpc_urls if url and url.strip()]
        if not self.rpc_urls:
            raise ValueError("Se necesita al menos un endpoint RPC válido")
        if self.max_retries_per_endpoint < 1:
            raise ValueError("max_retries_per_endpoint debe ser al menos 1")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds no puede ser negativo")
        if self.max_recipients_per_tx < 1:
            raise ValueError("max_recipients_per_tx debe ser al menos 1")
        if self.units_per_transfer < 1 or self.max_compute_units < 1:
            raise ValueError("Los límites de compute units deben ser positivos")
        if self.confirm_timeout_seconds <= 0 or self.confirm_poll_seconds <= 0:
            raise ValueError("Los tiempos de confirmación deben ser positivos")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SplitterConfig":
        """Build a config from ``SPLITTER_*`` variables.

        ``SPLITTER_RPC_URLS`` is a comma separated pool; ``SPLITTER_NETWORK``
        picks one of :data:`NETWORK_CHOICES` when no explicit pool is given.
        """
        env = os.environ if env is None else env
        urls_raw = env.get(ENV_PREFIX + "RPC_URLS", "")
        urls = [url for url in urls_raw.split(",") if url.strip()]
        if not urls:
            network = env.get(ENV_PREFIX + "NETWORK", "devnet").strip().lower()
            if network not in NETWORK_CHOICES:
                raise ValueError(
                    f"Red desconocida {network!r}; opciones: {', '.join(sorted(NETWORK_CHOICES))}"
                )
            urls = [NETWORK_CHOICES[network]]
        return cls(
            rpc_urls=urls,
            timeout=_env_float(env, "TIMEOUT", DEFAULT_TIMEOUT),
            max_retries_per_endpoint=_env_int(env, "MAX_RETRIES", DEFAULT_MAX_RETRIES_PER_ENDPOINT),
            retry_backoff_seconds=_env_float(env, "RETRY_BACKOFF", DEFAULT_RETRY_BACKOFF_SECONDS),
            max_recipients_per_tx=_env_int(env, "MAX_PER_TX", DEFAULT_MAX_RECIPIENTS_PER_TX),
            units_per_transfer=_env_int(env, "UNITS_PER_TRANSFER", COMPUTE_UNITS_PER_TRANSFER),
            max_compute_units=_env_int(env, "MAX_COMPUTE_UNITS", MAX_COMPUTE_UNITS),
            confirm_timeout_seconds=_env_float(env, "CONFIRM_TIMEOUT", DEFAULT_CONFIRM_TIMEOUT_SECONDS),
            confirm_poll_seconds=_env_float(env, "CONFIRM_POLL", DEFAULT_CONFIRM_POLL_SECONDS),
            log_level=env.get(ENV_PREFIX + "LOG_LEVEL", "INFO").strip().upper() or "INFO",
            log_file=env.get(ENV_PREFIX + "LOG_FILE") or None,
        )
