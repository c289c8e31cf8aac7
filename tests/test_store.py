import sqlite3
import tempfile
from decimal import Decimal
from pathlib import Path
from unittest import TestCase

from payout.errors import LedgerError
from payout.store import TransactionDB, TransactionRecord, open_db


class TestTransactionDB(TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "transactions.db"
        self.record = TransactionRecord(recipient="a", amount=Decimal("1.5"), blockhash="h1")

    def tearDown(self):
        self._tmp.cleanup()

    def test_survives_reopen(self):
        with TransactionDB(self.path) as db:
            db.set("sig1", self.record)
        with TransactionDB(self.path) as db:
            self.assertEqual(db.get("sig1"), self.record)
            self.assertEqual(len(db), 1)

    def test_set_replaces(self):
        with TransactionDB(self.path) as db:
            db.set("sig1", self.record)
            db.set("sig1", TransactionRecord(recipient="a", amount=Decimal("1.5"), finalized=True, blockhash="h1"))
            self.assertTrue(db.get("sig1").finalized)
            self.assertEqual(len(db), 1)

    def test_remove(self):
        with TransactionDB(self.path) as db:
            db.set("sig1", self.record)
            self.assertTrue(db.remove("sig1"))
            self.assertFalse(db.remove("sig1"))
            self.assertIsNone(db.get("sig1"))

    def test_items_in_insertion_order(self):
        with TransactionDB(self.path) as db:
            for sig in ("z", "a", "m"):
                db.set(sig, self.record)
            self.assertEqual([sig for sig, _ in db.items()], ["z", "a", "m"])
            self.assertEqual(len(db.records()), 3)

    def test_dry_run_sees_existing_but_writes_nothing(self):
        with TransactionDB(self.path) as db:
            db.set("sig1", self.record)
        before = self.path.read_bytes()

        with open_db(self.path, dry_run=True) as db:
            self.assertEqual(db.get("sig1"), self.record)
            db.set("sig2", self.record)
            db.remove("sig1")
            self.assertEqual(len(db), 1)

        self.assertEqual(self.path.read_bytes(), before)

    def test_dry_run_creates_no_file(self):
        with open_db(self.path, dry_run=True) as db:
            db.set("sig1", self.record)
        self.assertFalse(self.path.exists())

    def test_corrupt_record(self):
        with TransactionDB(self.path):
            pass
        conn = sqlite3.connect(self.path)
        conn.execute("INSERT INTO transactions (signature, data) VALUES ('bad', '{\"recipient\": 1}')")
        conn.commit()
        conn.close()
        with TransactionDB(self.path) as db:
            with self.assertRaises(LedgerError):
                db.get("bad")

    def test_unopenable_path(self):
        with self.assertRaises(LedgerError):
            TransactionDB(Path(self._tmp.name) / "missing-dir" / "transactions.db")
