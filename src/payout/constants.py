from decimal import Decimal
from enum import StrEnum
from typing import Final

BASE_UNITS_PER_TOKEN: Final = 1_000_000_000

# Allocations at or below this many tokens are treated as residue of earlier
# reconciliation arithmetic and dropped.
RESIDUAL_EPSILON: Final = Decimal("0.5")

POLL_INTERVAL = 0.5  # roughly one slot
MAX_CONFIRMATIONS = 32
MAX_RECENT_BLOCKHASHES = 150
LAMPORTS_PER_SIGNATURE = 5000
RPC_TIMEOUT = 10.0


class TxState(StrEnum):
    UNSENT     = "UNSENT"
    SUBMITTED  = "SUBMITTED"
    CONFIRMING = "CONFIRMING"
    FINALIZED  = "FINALIZED"
    DISCARDED  = "DISCARDED"


class StakeAuthorize(StrEnum):
    STAKER     = "Staker"
    WITHDRAWER = "Withdrawer"


__all__ = [
    "BASE_UNITS_PER_TOKEN",
    "LAMPORTS_PER_SIGNATURE",
    "MAX_CONFIRMATIONS",
    "MAX_RECENT_BLOCKHASHES",
    "POLL_INTERVAL",
    "RESIDUAL_EPSILON",
    "RPC_TIMEOUT",

    ######
    "StakeAuthorize",
    "TxState",
]
