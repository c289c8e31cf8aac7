"""Shared fixtures: throwaway wallets, CSV files and a funded in-process ledger."""

import csv
from pathlib import Path

from xrpl import CryptoAlgorithm
from xrpl.wallet import Wallet

from payout.bank_client import BankClient
from payout.errors import TransportError
from payout.transaction import Transfer
from payout.units import tokens_to_base


def new_wallet() -> Wallet:
    return Wallet.create(algorithm=CryptoAlgorithm.ED25519)


def write_csv(path: str | Path, header: list[str], rows: list[list]) -> str:
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return str(path)


def funded_bank(*wallets: Wallet, tokens: int = 9_000_000, bank: BankClient | None = None) -> BankClient:
    bank = bank or BankClient()
    for wallet in wallets:
        bank.fund(wallet.address, tokens_to_base(tokens))
    return bank


class FlakyBank(BankClient):
    """Drops every send that pays one of ``fail_for``."""

    def __init__(self, fail_for=(), **kwargs):
        super().__init__(**kwargs)
        self.fail_for = set(fail_for)

    async def send(self, transaction):
        for ix in transaction.message.instructions:
            if isinstance(ix, Transfer) and ix.to_address in self.fail_for:
                raise TransportError("connection reset by peer")
        return await super().send(transaction)
