import logging
from decimal import Decimal

from rich.console import Console
from xrpl.wallet import Wallet

from payout.allocations import Allocation
from payout.args import DistributeTokensArgs
from payout.client import LedgerClient
from payout.constants import StakeAuthorize, TxState
from payout.errors import InputError, TransportError
from payout.store import TransactionDB, TransactionRecord
from payout.transaction import (
    Instruction,
    Message,
    Transaction,
    authorize,
    new_keypair,
    split,
    transfer,
    unique_signers,
)
from payout.units import tokens_to_base

log = logging.getLogger("payout.submitter")


def set_transaction_info(
    db: TransactionDB,
    allocation: Allocation,
    signature: str,
    blockhash: str,
    new_stake_account_address: str | None,
    finalized: bool,
) -> None:
    record = TransactionRecord(
        recipient=allocation.recipient,
        amount=allocation.amount,
        new_stake_account_address=new_stake_account_address or "",
        finalized=finalized,
        blockhash=blockhash,
    )
    db.set(signature, record)


def _required(wallet: Wallet | None, name: str) -> Wallet:
    if wallet is None:
        raise InputError(f"A {name} keypair is required unless this is a dry run")
    return wallet


def build_signers(args: DistributeTokensArgs, new_stake_account: Wallet | None) -> list[Wallet]:
    signers = [_required(args.fee_payer, "fee payer"), _required(args.sender_keypair, "sender")]
    if args.stake_args is not None:
        signers.append(_required(args.stake_args.stake_authority, "stake authority"))
        signers.append(_required(args.stake_args.withdraw_authority, "withdraw authority"))
        signers.append(new_stake_account)
    return unique_signers(signers)


def build_instructions(
    allocation: Allocation, args: DistributeTokensArgs, new_stake_account: Wallet | None
) -> list[Instruction]:
    sender = args.sender_keypair.address
    if args.stake_args is None:
        return [transfer(sender, allocation.recipient, tokens_to_base(allocation.amount))]

    stake_args = args.stake_args
    tokens_for_fees: Decimal = stake_args.tokens_for_fees
    stake_authority = stake_args.stake_authority.address
    withdraw_authority = stake_args.withdraw_authority.address

    instructions = split(
        stake_args.stake_account_address,
        stake_authority,
        tokens_to_base(allocation.amount - tokens_for_fees),
        new_stake_account.address,
    )
    # Make the recipient the new stake authority
    instructions.append(
        authorize(new_stake_account.address, stake_authority, allocation.recipient, StakeAuthorize.STAKER)
    )
    # Make the recipient the new withdraw authority
    instructions.append(
        authorize(new_stake_account.address, withdraw_authority, allocation.recipient, StakeAuthorize.WITHDRAWER)
    )
    instructions.append(transfer(sender, allocation.recipient, tokens_to_base(tokens_for_fees)))
    return instructions


async def distribute_tokens(
    client: LedgerClient,
    db: TransactionDB,
    allocations: list[Allocation],
    args: DistributeTokensArgs,
    console: Console | None = None,
) -> None:
    """Submit one transaction per allocation.

    The ledger record goes in before the send. A send that fails is logged and
    skipped: its record stays, and the poller settles whether it landed.
    """
    console = console or Console()
    for allocation in allocations:
        console.print(f"{allocation.recipient:<44}  {allocation.amount:>24.9f}", highlight=False)
        if args.dry_run:
            continue

        new_stake_account = new_keypair() if args.stake_args is not None else None
        signers = build_signers(args, new_stake_account)
        instructions = build_instructions(allocation, args, new_stake_account)

        blockhash, _fee_calculator = await client.get_reference_blockhash()
        message = Message.new_with_payer(instructions, args.fee_payer.address, blockhash)
        transaction = Transaction.new(signers, message)
        set_transaction_info(
            db,
            allocation,
            transaction.signature,
            blockhash,
            new_stake_account.address if new_stake_account else None,
            False,
        )

        try:
            await client.send(transaction)
        except TransportError as e:
            log.error("Error sending tokens to %s: %s", allocation.recipient, e)
            continue
        log.debug("%s --> %s  %s", TxState.UNSENT, TxState.SUBMITTED, transaction.signature)
