import tempfile
from decimal import Decimal
from pathlib import Path
from unittest import IsolatedAsyncioTestCase, TestCase

from payout.client import TransactionStatus
from payout.constants import TxState
from payout.errors import TransportError
from payout.poller import (
    PollPolicy,
    poll_until_finalized,
    transaction_state,
    update_finalized_transaction,
    update_finalized_transactions,
)
from payout.store import TransactionDB, TransactionRecord


class FakeClient:
    """Serves canned statuses; each poll pops the next set."""

    def __init__(self, rounds, recent=("h1",)):
        self.rounds = list(rounds)
        self.recent = list(recent)
        self.status_calls = 0
        self.blockhash_calls = 0

    async def get_statuses(self, signatures):
        self.status_calls += 1
        statuses = self.rounds.pop(0) if len(self.rounds) > 1 else self.rounds[0]
        return [statuses.get(sig) for sig in signatures]

    async def get_recent_blockhashes(self):
        self.blockhash_calls += 1
        return self.recent


class FailingClient(FakeClient):
    async def get_statuses(self, signatures):
        raise TransportError("node down")


def _record(recipient="a", finalized=False, blockhash="h1"):
    return TransactionRecord(recipient=recipient, amount=Decimal(1), finalized=finalized, blockhash=blockhash)


class TestTransactionState(TestCase):
    def test_states(self):
        cases = [
            (None, "h1", TxState.SUBMITTED),
            (None, "gone", TxState.DISCARDED),
            (TransactionStatus(confirmations=3), "h1", TxState.CONFIRMING),
            (TransactionStatus(confirmations=None, err="InstructionError"), "h1", TxState.DISCARDED),
            (TransactionStatus(confirmations=None), "gone", TxState.FINALIZED),
        ]
        for status, blockhash, expected in cases:
            with self.subTest(status=status, blockhash=blockhash):
                self.assertEqual(transaction_state(status, blockhash, {"h1"}), expected)


class PollerTestCase(TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db = TransactionDB(Path(self._tmp.name) / "transactions.db")

    def tearDown(self):
        self.db.close()
        self._tmp.cleanup()


class TestUpdateFinalizedTransaction(PollerTestCase):
    def test_not_landed_blockhash_live(self):
        self.db.set("s", _record())
        self.assertEqual(update_finalized_transaction(self.db, "s", None, "h1", {"h1"}), 0)
        self.assertFalse(self.db.get("s").finalized)

    def test_not_landed_blockhash_expired(self):
        self.db.set("s", _record())
        with self.assertLogs("payout.poller", level="WARNING"):
            self.assertIsNone(update_finalized_transaction(self.db, "s", None, "h1", set()))
        self.assertIsNone(self.db.get("s"))

    def test_confirming(self):
        self.db.set("s", _record())
        status = TransactionStatus(confirmations=7)
        self.assertEqual(update_finalized_transaction(self.db, "s", status, "h1", {"h1"}), 7)
        self.assertFalse(self.db.get("s").finalized)

    def test_failed(self):
        self.db.set("s", _record())
        status = TransactionStatus(confirmations=None, err="insufficient funds")
        with self.assertLogs("payout.poller", level="ERROR") as cm:
            self.assertIsNone(update_finalized_transaction(self.db, "s", status, "h1", {"h1"}))
        self.assertIn("insufficient funds", "\n".join(cm.output))
        self.assertIsNone(self.db.get("s"))

    def test_rooted(self):
        self.db.set("s", _record())
        status = TransactionStatus(confirmations=None)
        self.assertIsNone(update_finalized_transaction(self.db, "s", status, "h1", set()))
        self.assertTrue(self.db.get("s").finalized)


class TestUpdateFinalizedTransactions(PollerTestCase, IsolatedAsyncioTestCase):
    async def test_nothing_pending_makes_no_calls(self):
        self.db.set("done", _record(finalized=True))
        client = FakeClient([{}])
        self.assertIsNone(await update_finalized_transactions(client, self.db))
        self.assertEqual((client.status_calls, client.blockhash_calls), (0, 0))

    async def test_minimum_confirmations(self):
        for sig in ("s1", "s2", "s3", "s4"):
            self.db.set(sig, _record(recipient=sig))
        client = FakeClient([{
            "s1": TransactionStatus(confirmations=12),
            "s2": TransactionStatus(confirmations=4),
            "s3": TransactionStatus(confirmations=None),
        }])
        self.assertEqual(await update_finalized_transactions(client, self.db), 0)
        self.assertEqual((client.status_calls, client.blockhash_calls), (1, 1))
        self.assertTrue(self.db.get("s3").finalized)

        self.db.remove("s4")
        self.assertEqual(await update_finalized_transactions(client, self.db), 4)

    async def test_skips_finalized_records(self):
        self.db.set("done", _record(finalized=True))
        self.db.set("s", _record())
        client = FakeClient([{"s": TransactionStatus(confirmations=None)}])
        self.assertIsNone(await update_finalized_transactions(client, self.db))
        self.assertTrue(self.db.get("s").finalized)

    async def test_client_errors_propagate(self):
        self.db.set("s", _record())
        with self.assertRaises(TransportError):
            await update_finalized_transactions(FailingClient([{}]), self.db)


class TestPollUntilFinalized(PollerTestCase, IsolatedAsyncioTestCase):
    async def test_waits_until_rooted(self):
        self.db.set("s", _record())
        client = FakeClient([
            {},
            {"s": TransactionStatus(confirmations=1)},
            {"s": TransactionStatus(confirmations=20)},
            {"s": TransactionStatus(confirmations=None)},
        ])
        sleeps, seen = [], []

        async def sleep(interval):
            sleeps.append(interval)

        policy = PollPolicy(interval=0.25, sleep=sleep)
        self.assertIsNone(await poll_until_finalized(client, self.db, policy, progress=seen.append))
        self.assertEqual(seen, [0, 1, 20])
        self.assertEqual(sleeps, [0.25, 0.25, 0.25])
        self.assertTrue(self.db.get("s").finalized)

    async def test_max_cycles(self):
        self.db.set("s", _record())
        client = FakeClient([{"s": TransactionStatus(confirmations=2)}])
        policy = PollPolicy(interval=0, max_cycles=3)
        with self.assertLogs("payout.poller", level="WARNING"):
            self.assertEqual(await poll_until_finalized(client, self.db, policy), 2)
        self.assertEqual(client.status_calls, 3)
