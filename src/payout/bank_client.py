"""In-process ledger implementing the LedgerClient protocol.

Transactions are executed as soon as they are sent and are rooted
immediately, so a distribution run against a BankClient converges in a single
poll cycle. Used for rehearsals and tests.
"""

import copy
import hashlib
import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass

from payout.client import FeeCalculator, TransactionStatus
from payout.constants import LAMPORTS_PER_SIGNATURE, MAX_RECENT_BLOCKHASHES, StakeAuthorize
from payout.errors import TransportError
from payout.transaction import AuthorizeStake, Instruction, SplitStake, Transaction, Transfer

log = logging.getLogger("payout.bank")


class InstructionError(Exception):
    pass


@dataclass
class StakeAccount:
    staker: str
    withdrawer: str


class BankClient:
    def __init__(
        self,
        *,
        lamports_per_signature: int = LAMPORTS_PER_SIGNATURE,
        max_recent_blockhashes: int = MAX_RECENT_BLOCKHASHES,
    ) -> None:
        self.balances: dict[str, int] = {}
        self.stake_accounts: dict[str, StakeAccount] = {}
        self.statuses: dict[str, TransactionStatus] = {}
        self.fee_calculator = FeeCalculator(lamports_per_signature)
        self.slot = 0
        self.sent: list[Transaction] = []
        self._blockhashes: deque[str] = deque(maxlen=max_recent_blockhashes)
        self.advance_blockhash()

    # Setup helpers

    def advance_blockhash(self, slots: int = 1) -> str:
        """Move forward ``slots`` slots, each registering a fresh blockhash."""
        for _ in range(slots):
            self.slot += 1
            self._blockhashes.append(hashlib.sha256(f"slot-{self.slot}".encode()).hexdigest())
        return self._blockhashes[-1]

    def fund(self, address: str, lamports: int) -> None:
        self.balances[address] = self.balances.get(address, 0) + lamports

    def create_stake_account(self, address: str, staker: str, withdrawer: str, lamports: int) -> None:
        if address in self.stake_accounts or self.balances.get(address):
            raise ValueError(f"Account {address} already exists")
        self.balances[address] = lamports
        self.stake_accounts[address] = StakeAccount(staker=staker, withdrawer=withdrawer)

    def stake_account(self, address: str) -> StakeAccount | None:
        return self.stake_accounts.get(address)

    # LedgerClient

    async def send(self, transaction: Transaction) -> str:
        return await self.send_raw(transaction.serialize())

    async def send_raw(self, wire: str) -> str:
        """Decode and execute a transaction in its wire form, as a node would."""
        try:
            transaction = Transaction.deserialize(wire)
            signature = transaction.signature
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"Malformed transaction: {e}") from e
        message = transaction.message
        if signature in self.statuses:
            raise TransportError(f"Transaction {signature} already processed")
        if message.recent_blockhash not in self._blockhashes:
            raise TransportError(f"Blockhash not found: {message.recent_blockhash}")
        if not transaction.verify():
            raise TransportError(f"Signature verification failed for {signature}")

        fee = self.fee_calculator.calculate_fee(len(transaction.signatures))
        if self.balances.get(message.fee_payer, 0) < fee:
            raise TransportError(f"Fee payer {message.fee_payer} cannot cover fee of {fee}")
        self.balances[message.fee_payer] -= fee

        balances = dict(self.balances)
        stake_accounts = copy.deepcopy(self.stake_accounts)
        err = None
        try:
            for instruction in message.instructions:
                self._process(instruction)
        except InstructionError as e:
            self.balances, self.stake_accounts = balances, stake_accounts
            err = str(e)
            log.debug("Transaction %s failed: %s", signature, err)

        self.statuses[signature] = TransactionStatus(confirmations=None, err=err, slot=self.slot)
        self.sent.append(transaction)
        return signature

    async def get_statuses(self, signatures: Sequence[str]) -> list[TransactionStatus | None]:
        return [self.statuses.get(signature) for signature in signatures]

    async def get_recent_blockhashes(self) -> list[str]:
        return list(self._blockhashes)

    async def get_balance(self, address: str) -> int:
        return self.balances.get(address, 0)

    async def get_reference_blockhash(self) -> tuple[str, FeeCalculator]:
        return self._blockhashes[-1], self.fee_calculator

    # Execution

    def _debit(self, address: str, lamports: int) -> None:
        balance = self.balances.get(address, 0)
        if balance < lamports:
            raise InstructionError(f"Insufficient funds in {address}: {balance} < {lamports}")
        self.balances[address] = balance - lamports

    def _process(self, instruction: Instruction) -> None:
        match instruction:
            case Transfer(from_address=src, to_address=dst, lamports=lamports):
                if src in self.stake_accounts:
                    raise InstructionError(f"Cannot transfer out of stake account {src}")
                self._debit(src, lamports)
                self.fund(dst, lamports)

            case SplitStake(stake_account=src, authority=authority, lamports=lamports, new_stake_account=dst):
                source = self.stake_accounts.get(src)
                if source is None:
                    raise InstructionError(f"{src} is not a stake account")
                if authority != source.staker:
                    raise InstructionError(f"{authority} is not the stake authority of {src}")
                if lamports <= 0:
                    raise InstructionError(f"Invalid split amount {lamports}")
                if dst in self.stake_accounts or self.balances.get(dst):
                    raise InstructionError(f"Split destination {dst} already in use")
                self._debit(src, lamports)
                self.balances[dst] = lamports
                self.stake_accounts[dst] = StakeAccount(staker=source.staker, withdrawer=source.withdrawer)

            case AuthorizeStake(stake_account=target, authority=authority, new_authority=new, stake_authorize=kind):
                account = self.stake_accounts.get(target)
                if account is None:
                    raise InstructionError(f"{target} is not a stake account")
                if kind == StakeAuthorize.STAKER:
                    if authority not in (account.staker, account.withdrawer):
                        raise InstructionError(f"{authority} may not change the staker of {target}")
                    account.staker = new
                else:
                    if authority != account.withdrawer:
                        raise InstructionError(f"{authority} is not the withdraw authority of {target}")
                    account.withdrawer = new

            case _:
                raise InstructionError(f"Unsupported instruction {instruction!r}")
