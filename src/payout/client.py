"""The ledger client seam: what the engine needs from a ledger, nothing more."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from payout.constants import LAMPORTS_PER_SIGNATURE

if TYPE_CHECKING:
    from payout.transaction import Transaction


@dataclass
class TransactionStatus:
    """What the ledger knows about a landed transaction.

    ``confirmations`` is None once the transaction is rooted. ``err`` is None
    when execution succeeded, otherwise a description of the failure.
    """

    confirmations: int | None
    err: str | None = None
    slot: int = 0

    @classmethod
    def from_rpc(cls, result: dict) -> "TransactionStatus":
        if not isinstance(result, dict):
            raise TypeError(f"signature status must be an object, got {result!r}")
        confirmations = result.get("confirmations")
        if confirmations is not None and (isinstance(confirmations, bool) or not isinstance(confirmations, int)):
            raise ValueError(f"invalid confirmations {confirmations!r}")
        err = result.get("err")
        return cls(
            confirmations=confirmations,
            err=None if err is None else str(err),
            slot=int(result.get("slot", 0)),
        )


@dataclass
class FeeCalculator:
    """Fee schedule attached to a reference blockhash. Values are in base units."""

    lamports_per_signature: int = LAMPORTS_PER_SIGNATURE

    def calculate_fee(self, num_signatures: int) -> int:
        return self.lamports_per_signature * num_signatures

    @classmethod
    def from_rpc(cls, result: dict) -> "FeeCalculator":
        return cls(lamports_per_signature=int(result["lamportsPerSignature"]))


class LedgerClient(Protocol):
    async def send(self, transaction: "Transaction") -> str: ...
    async def get_statuses(self, signatures: Sequence[str]) -> list[TransactionStatus | None]: ...
    async def get_recent_blockhashes(self) -> list[str]: ...
    async def get_balance(self, address: str) -> int: ...
    async def get_reference_blockhash(self) -> tuple[str, FeeCalculator]: ...
