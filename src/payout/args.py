"""Run arguments for each subcommand."""

from dataclasses import dataclass
from decimal import Decimal

from xrpl.wallet import Wallet


@dataclass
class StakeArgs:
    stake_account_address: str
    stake_authority: Wallet | None
    withdraw_authority: Wallet | None
    tokens_for_fees: Decimal


@dataclass
class DistributeTokensArgs:
    input_csv: str
    transactions_db: str
    sender_keypair: Wallet | None = None
    fee_payer: Wallet | None = None
    dry_run: bool = False
    no_wait: bool = False
    force: bool = False
    from_bids: bool = False
    dollars_per_token: Decimal | None = None
    stake_args: StakeArgs | None = None


@dataclass
class BalancesArgs:
    input_csv: str
    from_bids: bool = False
    dollars_per_token: Decimal | None = None


@dataclass
class TransactionLogArgs:
    transactions_db: str
    output_path: str
