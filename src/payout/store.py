"""SQLite-backed ledger of submitted transactions, keyed by signature."""

import json
import logging
import sqlite3
from collections.abc import Iterator
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

from payout.errors import LedgerError

log = logging.getLogger("payout.store")


@dataclass
class TransactionRecord:
    recipient: str
    amount: Decimal
    new_stake_account_address: str = ""
    finalized: bool = False
    blockhash: str = ""

    def to_json(self) -> str:
        data = asdict(self)
        data["amount"] = format(self.amount, "f")
        return json.dumps(data, sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "TransactionRecord":
        try:
            data = json.loads(raw)
            return cls(
                recipient=data["recipient"],
                amount=Decimal(data["amount"]),
                new_stake_account_address=data.get("new_stake_account_address", ""),
                finalized=bool(data["finalized"]),
                blockhash=data["blockhash"],
            )
        except (ValueError, KeyError, TypeError, InvalidOperation) as e:
            raise LedgerError(f"Corrupt transaction record: {raw!r}") from e


class TransactionDB:
    """Persistent map of signature -> TransactionRecord.

    With ``durable=False`` the contents of an existing file are copied into an
    in-memory database, so lookups see earlier runs while nothing written
    here outlives the process.
    """

    def __init__(self, db_path: str | Path, durable: bool = True) -> None:
        self.db_path = Path(db_path)
        self.durable = durable
        try:
            if durable:
                self._conn = sqlite3.connect(self.db_path)
            else:
                self._conn = sqlite3.connect(":memory:")
                if self.db_path.is_file():
                    source = sqlite3.connect(self.db_path)
                    try:
                        source.backup(self._conn)
                    finally:
                        source.close()
            self._init_db()
        except sqlite3.Error as e:
            raise LedgerError(f"Cannot open transaction db {self.db_path}: {e}") from e

    def _init_db(self) -> None:
        """Create the table if it doesn't exist."""
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS transactions (
                signature TEXT PRIMARY KEY,
                data TEXT NOT NULL  -- JSON blob for all fields
            )
            """
        )
        self._conn.commit()
        log.debug("Transaction db ready at %s (durable=%s)", self.db_path, self.durable)

    def set(self, signature: str, record: TransactionRecord) -> None:
        try:
            self._conn.execute(
                """
                INSERT INTO transactions (signature, data) VALUES (?, ?)
                ON CONFLICT(signature) DO UPDATE SET data = excluded.data
                """,
                (signature, record.to_json()),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise LedgerError(f"Cannot write record {signature}: {e}") from e

    def get(self, signature: str) -> TransactionRecord | None:
        try:
            row = self._conn.execute(
                "SELECT data FROM transactions WHERE signature = ?", (signature,)
            ).fetchone()
        except sqlite3.Error as e:
            raise LedgerError(f"Cannot read record {signature}: {e}") from e
        return TransactionRecord.from_json(row[0]) if row else None

    def remove(self, signature: str) -> bool:
        try:
            cursor = self._conn.execute("DELETE FROM transactions WHERE signature = ?", (signature,))
            self._conn.commit()
        except sqlite3.Error as e:
            raise LedgerError(f"Cannot remove record {signature}: {e}") from e
        return cursor.rowcount > 0

    def items(self) -> Iterator[tuple[str, TransactionRecord]]:
        """Yield (signature, record) pairs in insertion order."""
        try:
            cursor = self._conn.execute("SELECT signature, data FROM transactions ORDER BY rowid")
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise LedgerError(f"Cannot read transaction db: {e}") from e
        for signature, data in rows:
            yield signature, TransactionRecord.from_json(data)

    def records(self) -> list[TransactionRecord]:
        return [record for _, record in self.items()]

    def __len__(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM transactions").fetchone()[0]

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "TransactionDB":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def open_db(path: str | Path, dry_run: bool) -> TransactionDB:
    return TransactionDB(path, durable=not dry_run)
