import asyncio
import logging
from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass, field

from payout.client import LedgerClient, TransactionStatus
from payout.constants import MAX_CONFIRMATIONS, POLL_INTERVAL, TxState
from payout.store import TransactionDB

log = logging.getLogger("payout.poller")


@dataclass
class PollPolicy:
    """How the run loop waits between finalization checks.

    ``max_cycles`` caps the number of checks (None waits until nothing is
    pending); ``max_confirmations`` is only used for progress display;
    ``sleep`` is swapped out in tests.
    """

    interval: float = POLL_INTERVAL
    max_confirmations: int = MAX_CONFIRMATIONS
    max_cycles: int | None = None
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)


def transaction_state(
    status: TransactionStatus | None, blockhash: str, recent_blockhashes: Collection[str]
) -> TxState:
    if status is None:
        # Unknown to the ledger: it can only still land while its blockhash is valid.
        return TxState.SUBMITTED if blockhash in recent_blockhashes else TxState.DISCARDED
    if status.confirmations is not None:
        return TxState.CONFIRMING
    if status.err is not None:
        return TxState.DISCARDED
    return TxState.FINALIZED


def update_finalized_transaction(
    db: TransactionDB,
    signature: str,
    status: TransactionStatus | None,
    blockhash: str,
    recent_blockhashes: Collection[str],
) -> int | None:
    """Settle one record against its live status.

    Sets ``finalized`` once the transaction is rooted and drops the record if
    it failed or can no longer land. Returns the confirmation count while the
    transaction is still pending, None once it is settled either way.
    """
    state = transaction_state(status, blockhash, recent_blockhashes)

    if state == TxState.SUBMITTED:
        # Might still be in flight and get accepted onto the ledger.
        return 0

    if state == TxState.CONFIRMING:
        return status.confirmations

    if state == TxState.DISCARDED:
        if status is None:
            log.warning("Signature not found %s and blockhash expired", signature)
        else:
            log.error("Error in transaction with signature %s: %s", signature, status.err)
        log.warning("Discarding transaction record %s", signature)
        db.remove(signature)
        return None

    # Rooted
    record = db.get(signature)
    if record is not None and not record.finalized:
        record.finalized = True
        db.set(signature, record)
        log.debug("%s --> %s  %s", TxState.CONFIRMING, TxState.FINALIZED, signature)
    return None


async def update_finalized_transactions(client: LedgerClient, db: TransactionDB) -> int | None:
    """One poll cycle over every unfinalized record.

    Returns the lowest confirmation count among records still pending, or
    None when nothing is left to wait for. Client errors propagate.
    """
    unconfirmed = [(signature, record.blockhash) for signature, record in db.items() if not record.finalized]
    if not unconfirmed:
        return None

    statuses = await client.get_statuses([signature for signature, _ in unconfirmed])
    recent_blockhashes = set(await client.get_recent_blockhashes())

    confirmations = None
    for (signature, blockhash), status in zip(unconfirmed, statuses):
        confs = update_finalized_transaction(db, signature, status, blockhash, recent_blockhashes)
        if confs is not None:
            confirmations = confs if confirmations is None else min(confirmations, confs)
    return confirmations


async def poll_until_finalized(
    client: LedgerClient,
    db: TransactionDB,
    policy: PollPolicy,
    progress: Callable[[int], None] | None = None,
) -> int | None:
    """Repeat poll cycles until nothing is pending or the policy runs out."""
    confirmations = await update_finalized_transactions(client, db)
    cycles = 1
    while confirmations is not None:
        if policy.max_cycles is not None and cycles >= policy.max_cycles:
            log.warning("Stopped waiting after %d cycles with transactions pending", cycles)
            break
        if progress is not None:
            progress(confirmations)
        await policy.sleep(policy.interval)
        confirmations = await update_finalized_transactions(client, db)
        cycles += 1
    return confirmations
