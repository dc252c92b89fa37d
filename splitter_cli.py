#!/usr/bin/env python3
"""
Command line for the SOL splitter.

Usage:
    splitter-cli validate <file>
    splitter-cli plan <file> --wallet <keypair.json> [--network devnet]
    splitter-cli send <file> --wallet <keypair.json> [--rpc URL ...] [--yes]
    splitter-cli ping [--network mainnet]

The recipients file is UTF-8 ``address,amount`` per line (``.csv`` or
``.txt``), with an optional header row.
"""
from __future__ import annotations

import argparse
import sys
from typing import List, Optional, Sequence

from lamports import sum_sol
from payout_session import PayoutSession
from recipient_parser import Recipient, read_recipients_file
from solana_manager import KeypairSigner, SolanaLedgerClient
from splitter_config import NETWORK_CHOICES, SplitterConfig
from splitter_errors import PartialPayoutError, SplitterError
from splitter_logging import setup_logging

__version__ = "0.1.0"


def _short(address: str) -> str:
    return f"{address[:8]}...{address[-6:]}" if len(address) > 20 else address


def _print_preview(recipients: Sequence[Recipient], limit: int = 5) -> None:
    for recipient in recipients[:limit]:
        print(f"  {_short(recipient.address)} → {recipient.amount} SOL")
    if len(recipients) > limit:
        print(f"  ... y {len(recipients) - limit} más")


def _build_config(args: argparse.Namespace) -> SplitterConfig:
    config = SplitterConfig.from_env()
    if args.rpc:
        config.rpc_urls = list(args.rpc)
    elif args.network:
        config.rpc_urls = [NETWORK_CHOICES[args.network]]
    if args.max_per_tx is not None:
        if args.max_per_tx < 1:
            raise ValueError("--max-per-tx debe ser al menos 1")
        config.max_recipients_per_tx = args.max_per_tx
    if args.log_level:
        config.log_level = args.log_level
    if args.log_file:
        config.log_file = args.log_file
    return config


def _open_session(args: argparse.Namespace, config: SplitterConfig) -> PayoutSession:
    ledger = SolanaLedgerClient.from_config(config)
    signer = KeypairSigner.from_file(args.wallet, ledger)
    session = PayoutSession.from_config(config, ledger, signer)
    session.load_file(args.file)
    return session


def cmd_validate(args: argparse.Namespace, config: SplitterConfig) -> int:
    """Parse a recipients file without touching the network."""
    recipients = read_recipients_file(args.file)
    total = sum_sol(r.amount for r in recipients)
    print(f"✓ {len(recipients)} destinatarios válidos en {args.file}")
    print(f"  Total: {total} SOL")
    _print_preview(recipients)
    return 0


def cmd_plan(args: argparse.Namespace, config: SplitterConfig) -> int:
    """Check the batch against the wallet balance."""
    session = _open_session(args, config)
    batch = session.plan()
    chunks = -(-len(batch) // config.max_recipients_per_tx)
    print(f"Wallet: {session.signer.pubkey()}")
    print(f"Destinatarios: {len(batch)}")
    print(f"Total: {batch.total_amount} SOL ({batch.total_lamports} lamports)")
    print(f"Transacciones necesarias: {chunks}")
    print("Balance: SUFICIENTE")
    return 0


def cmd_send(args: argparse.Namespace, config: SplitterConfig) -> int:
    """Send the payout."""
    session = _open_session(args, config)
    batch = session.plan()
    print(f"Se enviarán {batch.total_amount} SOL a {len(batch)} destinatarios desde {session.signer.pubkey()}")
    if not args.yes:
        response = input("¿Continuar? [s/N]: ")
        if response.strip().lower() not in ("s", "si", "sí", "y", "yes"):
            print("Cancelado.")
            return 0
    try:
        report = session.send()
    except PartialPayoutError as exc:
        print(f"✗ {exc}")
        for signature in exc.completed_signatures:
            print(f"  confirmada: {signature}")
        return 2
    print(f"✓ {report.total_amount} SOL enviados a {report.recipient_count} destinatarios")
    for signature in report.signatures:
        print(f"  TX: {signature}")
    return 0


def cmd_ping(args: argparse.Namespace, config: SplitterConfig) -> int:
    ledger = SolanaLedgerClient.from_config(config)
    elapsed = ledger.ping()
    print(f"RPC {ledger.endpoint} respondió en {elapsed:.2f}s")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="splitter-cli",
        description="Distribuye SOL de una wallet a muchos destinatarios",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"splitter-cli {__version__}")
    parser.add_argument("--rpc", action="append", help="Endpoint RPC (repetible para un pool)")
    parser.add_argument("--network", "-n", choices=sorted(NETWORK_CHOICES), help="Red predefinida")
    parser.add_argument("--max-per-tx", type=int, help="Máximo de destinatarios por transacción")
    parser.add_argument("--log-level", help="Nivel de logging (DEBUG, INFO, WARNING...)")
    parser.add_argument("--log-file", help="Archivo de log con rotación")

    subparsers = parser.add_subparsers(dest="command", help="Comandos disponibles")

    validate_parser = subparsers.add_parser("validate", help="Valida un archivo de destinatarios")
    validate_parser.add_argument("file", help="Archivo .csv o .txt con address,amount")

    for name, help_text in (("plan", "Comprueba el balance para el lote"), ("send", "Envía el lote")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("file", help="Archivo .csv o .txt con address,amount")
        sub.add_argument("--wallet", "-w", required=True, help="Archivo de keypair (JSON o base58)")
        if name == "send":
            sub.add_argument("--yes", "-y", action="store_true", help="No pedir confirmación")

    subparsers.add_parser("ping", help="Mide la latencia del RPC")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "validate": cmd_validate,
        "plan": cmd_plan,
        "send": cmd_send,
        "ping": cmd_ping,
    }

    try:
        config = _build_config(args)
        setup_logging(config.log_level, config.log_file)
        return commands[args.command](args, config)
    except SplitterError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
