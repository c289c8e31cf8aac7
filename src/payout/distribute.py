import logging
from decimal import Decimal

from rich.console import Console
from rich.markup import escape

from payout.allocations import Allocation, read_allocations
from payout.args import DistributeTokensArgs
from payout.client import LedgerClient
from payout.errors import PreconditionError
from payout.poller import PollPolicy, poll_until_finalized, update_finalized_transactions
from payout.reconcile import apply_previous_transactions
from payout.store import open_db
from payout.submitter import distribute_tokens
from payout.units import base_to_tokens

log = logging.getLogger("payout.distribute")


def _print_total(console: Console, label: str, tokens: Decimal, dollars_per_token: Decimal | None) -> None:
    console.print(f"[bold]{label}[/bold] ◎{tokens:f}")
    if dollars_per_token is not None:
        console.print(f"[bold]{label}[/bold] ${tokens * dollars_per_token:f}")


async def check_recipient_balances(
    client: LedgerClient, allocations: list[Allocation], args: DistributeTokensArgs
) -> None:
    """Refuse to pay anyone who already holds tokens.

    A funded recipient usually means one of:
     1. A previous run's transaction landed but its signature was never found.
        Add a row to the transaction log by hand.
     2. The recipient was funded some other way. Re-run with --force.
     3. The recipient was paid in an earlier batch and registered the same
        address for another bid.
    Staking distributions pay into fresh accounts and skip the balance check.
    """
    for allocation in allocations:
        if args.stake_args is not None:
            if allocation.amount <= args.stake_args.tokens_for_fees:
                raise PreconditionError(
                    f"Allocation of {allocation.amount} to {allocation.recipient} does not cover "
                    f"the {args.stake_args.tokens_for_fees} reserved for fees"
                )
            continue
        if args.force:
            continue
        balance = await client.get_balance(allocation.recipient)
        if balance != 0:
            raise PreconditionError(
                f"Non-zero balance {base_to_tokens(balance)}, refusing to send "
                f"{allocation.amount} to {allocation.recipient}"
            )


async def process_distribute_tokens(
    client: LedgerClient,
    args: DistributeTokensArgs,
    *,
    policy: PollPolicy | None = None,
    console: Console | None = None,
) -> int | None:
    """Run one distribution pass to convergence.

    Returns None once every recorded transaction is finalized or discarded,
    otherwise the lowest confirmation count still outstanding (``no_wait`` or
    an exhausted poll policy).
    """
    policy = policy or PollPolicy()
    console = console or Console()

    allocations = read_allocations(args.input_csv, args.from_bids, args.dollars_per_token)
    starting_total_tokens = sum((a.amount for a in allocations), Decimal(0))
    _print_total(console, "Total in input_csv:", starting_total_tokens, args.dollars_per_token)

    with open_db(args.transactions_db, args.dry_run) as db:
        confirmations = await update_finalized_transactions(client, db)
        if confirmations is not None:
            log.warning("Unfinalized transactions from a previous run")

        transaction_records = db.records()
        apply_previous_transactions(allocations, transaction_records)

        if not allocations:
            log.info("No work to do")
            return confirmations

        await check_recipient_balances(client, allocations, args)

        distributed_tokens = sum((r.amount for r in transaction_records), Decimal(0))
        undistributed_tokens = sum((a.amount for a in allocations), Decimal(0))
        _print_total(console, "Distributed:", distributed_tokens, args.dollars_per_token)
        _print_total(console, "Undistributed:", undistributed_tokens, args.dollars_per_token)
        _print_total(console, "Total:", distributed_tokens + undistributed_tokens, args.dollars_per_token)

        console.print(f"[bold]{'Recipient':<44}  {'Expected Balance (◎)':>24}[/bold]")
        await distribute_tokens(client, db, allocations, args, console=console)

        if args.no_wait:
            return await update_finalized_transactions(client, db)

        with console.status("Finalizing transactions") as status:
            def progress(confs: int) -> None:
                status.update(escape(f"[{confs}/{policy.max_confirmations}] Finalizing transactions"))

            return await poll_until_finalized(client, db, policy, progress=progress)
