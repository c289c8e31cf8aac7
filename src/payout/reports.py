"""Read-only views: expected vs. actual balances, and the transaction log CSV."""

import csv
from dataclasses import asdict, dataclass, fields
from decimal import Decimal, InvalidOperation
from pathlib import Path

from rich.console import Console
from rich.table import Table

from payout.allocations import merge_allocations, read_allocations
from payout.args import BalancesArgs, TransactionLogArgs
from payout.client import LedgerClient
from payout.errors import InputError
from payout.store import TransactionDB, open_db
from payout.units import base_to_tokens, tokens_to_base


@dataclass
class SignedTransactionRecord:
    recipient: str
    amount: Decimal
    new_stake_account_address: str
    finalized: bool
    blockhash: str
    signature: str


LOG_FIELDS = [f.name for f in fields(SignedTransactionRecord)]


async def process_balances(client: LedgerClient, args: BalancesArgs, console: Console | None = None) -> None:
    console = console or Console()
    allocations = merge_allocations(read_allocations(args.input_csv, args.from_bids, args.dollars_per_token))

    table = Table()
    table.add_column("Recipient", style="bold")
    table.add_column("Expected Balance (◎)", justify="right")
    table.add_column("Actual Balance (◎)", justify="right")
    table.add_column("Difference (◎)", justify="right")

    for allocation in allocations:
        expected = base_to_tokens(tokens_to_base(allocation.amount))
        actual = base_to_tokens(await client.get_balance(allocation.recipient))
        table.add_row(
            allocation.recipient,
            f"{expected:.9f}",
            f"{actual:.9f}",
            f"{actual - expected:.9f}",
        )
    console.print(table)


def write_transaction_log(db: TransactionDB, path: str | Path) -> None:
    try:
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=LOG_FIELDS)
            writer.writeheader()
            for signature, record in db.items():
                row = asdict(SignedTransactionRecord(signature=signature, **asdict(record)))
                row["amount"] = format(record.amount, "f")
                row["finalized"] = str(record.finalized).lower()
                writer.writerow(row)
    except OSError as e:
        raise InputError(f"Cannot write transaction log {path}: {e}") from e


def read_transaction_log(path: str | Path) -> list[SignedTransactionRecord]:
    try:
        with open(path, newline="") as f:
            rows = list(csv.DictReader(f, skipinitialspace=True))
        return [
            SignedTransactionRecord(
                recipient=row["recipient"],
                amount=Decimal(row["amount"]),
                new_stake_account_address=row["new_stake_account_address"],
                finalized=row["finalized"].strip().lower() == "true",
                blockhash=row["blockhash"],
                signature=row["signature"],
            )
            for row in rows
        ]
    except (OSError, KeyError, InvalidOperation) as e:
        raise InputError(f"Cannot read transaction log {path}: {e}") from e


def process_transaction_log(args: TransactionLogArgs) -> None:
    with open_db(args.transactions_db, dry_run=True) as db:
        write_transaction_log(db, args.output_path)
