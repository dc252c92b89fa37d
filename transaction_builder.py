from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple, Union

from solders.compute_budget import set_compute_unit_limit
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from batch_planner import PayableBatch
from lamports import sol_to_lamports
from splitter_config import COMPUTE_UNITS_PER_TRANSFER, MAX_COMPUTE_UNITS
from splitter_errors import DustAmountError


@dataclass(frozen=True)
class Checkpoint:
    """A recent blockhash and the last block height at which it is valid."""

    blockhash: Hash
    last_valid_block_height: int


@dataclass(frozen=True)
class TransferInstruction:
    source: str
    destination: str
    lamports: int

    def to_instruction(self) -> Instruction:
        return transfer(
            TransferParams(
                from_pubkey=Pubkey.from_string(self.source),
                to_pubkey=Pubkey.from_string(self.destination),
                lamports=self.lamports,
            )
        )


@dataclass(frozen=True)
class PreparedTransaction:
    payer: Pubkey
    transfers: Tuple[TransferInstruction, ...]
    compute_unit_limit: int
    checkpoint: Checkpoint
    batch: PayableBatch

    @property
    def recent_blockhash(self) -> Hash:
        return self.checkpoint.blockhash

    @property
    def expiry_height(self) -> int:
        return self.checkpoint.last_valid_block_height

    @property
    def total_lamports(self) -> int:
        return sum(item.lamports for item in self.transfers)

    def instructions(self) -> List[Instruction]:
        instructions = [set_compute_unit_limit(self.compute_unit_limit)]
        instructions.extend(item.to_instruction() for item in self.transfers)
        return instructions

    def message(self) -> MessageV0:
        return MessageV0.try_compile(self.payer, self.instructions(), [], self.recent_blockhash)

    def message_bytes(self) -> bytes:
        return bytes(self.message())


def compute_unit_limit(instruction_count: int, units_per_transfer: int = COMPUTE_UNITS_PER_TRANSFER,
                       max_units: int = MAX_COMPUTE_UNITS) -> int:
    return min(units_per_transfer * instruction_count, max_units)


class TransactionBuilder:
    """Packs a payable batch into one v0 transaction bound to a checkpoint.

    Pure: no RPC, no signing. Every build, retries included, needs a fresh
    checkpoint from the caller.
    """

    def __init__(
        self,
        units_per_transfer: int = COMPUTE_UNITS_PER_TRANSFER,
        max_compute_units: int = MAX_COMPUTE_UNITS,
    ) -> None:
        if units_per_transfer < 1 or max_compute_units < 1:
            raise ValueError("Los límites de compute units deben ser positivos")
        self.units_per_transfer = units_per_transfer
        self.max_compute_units = max_compute_units

    @staticmethod
    def transfers_for(batch: PayableBatch, payer: Union[Pubkey, str]) -> Tuple[TransferInstruction, ...]:
        """Convert every recipient to lamports; raises ``DustAmountError`` on zero."""
        source = str(payer)
        transfers = []
        for recipient in batch.recipients:
            lamports = sol_to_lamports(recipient.amount)
            if lamports <= 0:
                raise DustAmountError(recipient.address, recipient.amount)
            transfers.append(TransferInstruction(source, recipient.address, lamports))
        return tuple(transfers)

    def build(self, batch: PayableBatch, payer: Union[Pubkey, str], checkpoint: Checkpoint) -> PreparedTransaction:
        payer_key = payer if isinstance(payer, Pubkey) else Pubkey.from_string(payer)
        transfers = self.transfers_for(batch, payer_key)
        return PreparedTransaction(
            payer=payer_key,
            transfers=transfers,
            compute_unit_limit=compute_unit_limit(
                len(transfers), self.units_per_transfer, self.max_compute_units
            ),
            checkpoint=checkpoint,
            batch=batch,
        )
