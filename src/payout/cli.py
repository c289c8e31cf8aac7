import argparse
import asyncio
import logging
from decimal import Decimal, InvalidOperation

from payout.args import BalancesArgs, DistributeTokensArgs, StakeArgs, TransactionLogArgs
from payout.config import load_config
from payout.distribute import process_distribute_tokens
from payout.errors import PayoutError
from payout.logging_config import setup_logging
from payout.poller import PollPolicy
from payout.reports import process_balances, process_transaction_log
from payout.rpc_client import RpcClient
from payout.transaction import read_keypair_file

log = logging.getLogger("payout.cli")


def decimal_arg(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")


def _add_input_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--input-csv", required=True, help="Allocations (recipient,amount) or bids CSV.")
    p.add_argument("--from-bids", action="store_true",
                   help="Input CSV holds bids (primary_address,accepted_amount_dollars).",
                   )
    p.add_argument("--dollars-per-token", type=decimal_arg,
                   help="Token price, required with --from-bids.",
                   )


def _add_distribute_args(p: argparse.ArgumentParser) -> None:
    _add_input_args(p)
    p.add_argument("--transactions-db", help="Transaction ledger path (default from config).")
    p.add_argument("--dry-run", action="store_true", help="Print what would be sent; change nothing.")
    p.add_argument("--no-wait", action="store_true", help="Don't wait for transactions to finalize.")
    p.add_argument("--force", action="store_true", help="Pay recipients that already hold tokens.")
    p.add_argument("--sender-keypair", help="Seed file of the funding account.")
    p.add_argument("--fee-payer", help="Seed file of the fee payer.")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="payout", description="Bulk token distribution.")
    parser.add_argument("--url", help="Node JSON-RPC URL (overrides config and RPC_URL).")
    parser.add_argument("--config", help="Alternative config.toml.")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ...")
    sub = parser.add_subparsers(dest="command", required=True)

    _add_distribute_args(sub.add_parser("distribute-tokens", help="Transfer tokens to every recipient."))

    stake = sub.add_parser("distribute-stake", help="Split stake into a fresh account per recipient.")
    _add_distribute_args(stake)
    stake.add_argument("--stake-account-address", required=True, help="Stake account to split from.")
    stake.add_argument("--stake-authority", help="Seed file of the source stake authority.")
    stake.add_argument("--withdraw-authority", help="Seed file of the source withdraw authority.")
    stake.add_argument("--tokens-for-fees", type=decimal_arg, default=Decimal(1),
                       help="Tokens kept back from each allocation and sent to the recipient (default 1).",
                       )

    _add_input_args(sub.add_parser("balances", help="Compare expected and actual recipient balances."))

    txlog = sub.add_parser("transaction-log", help="Export the transaction ledger as CSV.")
    txlog.add_argument("--transactions-db", help="Transaction ledger path (default from config).")
    txlog.add_argument("--output-path", required=True, help="CSV file to write.")

    return parser.parse_args(argv)


def _keypair(path: str | None):
    return read_keypair_file(path) if path else None


def distribute_args(a: argparse.Namespace, cfg: dict) -> DistributeTokensArgs:
    stake_args = None
    if a.command == "distribute-stake":
        stake_args = StakeArgs(
            stake_account_address=a.stake_account_address,
            stake_authority=_keypair(a.stake_authority),
            withdraw_authority=_keypair(a.withdraw_authority),
            tokens_for_fees=a.tokens_for_fees,
        )
    return DistributeTokensArgs(
        input_csv=a.input_csv,
        transactions_db=a.transactions_db or cfg["ledger"]["transactions_db"],
        sender_keypair=_keypair(a.sender_keypair),
        fee_payer=_keypair(a.fee_payer),
        dry_run=a.dry_run,
        no_wait=a.no_wait,
        force=a.force,
        from_bids=a.from_bids,
        dollars_per_token=a.dollars_per_token,
        stake_args=stake_args,
    )


async def run(a: argparse.Namespace, cfg: dict) -> None:
    if a.command == "transaction-log":
        process_transaction_log(
            TransactionLogArgs(a.transactions_db or cfg["ledger"]["transactions_db"], a.output_path)
        )
        return

    async with RpcClient(a.url or cfg["rpc"]["url"], timeout=cfg["rpc"]["timeout"]) as client:
        if a.command == "balances":
            await process_balances(client, BalancesArgs(a.input_csv, a.from_bids, a.dollars_per_token))
            return
        policy = PollPolicy(
            interval=cfg["poll"]["interval"], max_confirmations=cfg["poll"]["max_confirmations"]
        )
        confirmations = await process_distribute_tokens(client, distribute_args(a, cfg), policy=policy)
        if confirmations is not None:
            log.warning("Transactions still pending at %d confirmations; re-run to settle them", confirmations)


def main(argv: list[str] | None = None) -> int:
    a = parse_args(argv)
    setup_logging(a.log_level)
    try:
        cfg = load_config(a.config)
        asyncio.run(run(a, cfg))
    except PayoutError as e:
        log.error("%s", e)
        return 1
    except KeyboardInterrupt:
        log.warning("Interrupted; re-run to resume")
        return 130
    return 0
