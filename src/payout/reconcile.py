import logging
from collections.abc import Iterable
from decimal import Decimal

from payout.allocations import Allocation
from payout.constants import RESIDUAL_EPSILON
from payout.store import TransactionRecord

log = logging.getLogger("payout.reconcile")


def apply_previous_transactions(
    allocations: list[Allocation],
    transaction_records: Iterable[TransactionRecord],
) -> None:
    """Deduct what the ledger already holds from ``allocations``, in place.

    A record is charged against matching allocations in order, spilling over
    into later rows for the same recipient when one row can't absorb it.
    Whatever is left at or below RESIDUAL_EPSILON is dropped.
    """
    for record in transaction_records:
        amount = record.amount
        for allocation in allocations:
            if allocation.recipient != record.recipient:
                continue
            if allocation.amount >= amount:
                allocation.amount -= amount
                break
            amount -= allocation.amount
            allocation.amount = Decimal(0)
    before = len(allocations)
    allocations[:] = [a for a in allocations if a.amount > RESIDUAL_EPSILON]
    log.debug("Reconciled %d allocations down to %d", before, len(allocations))
