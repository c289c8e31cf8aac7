from unittest import IsolatedAsyncioTestCase

from payout.bank_client import BankClient
from payout.constants import StakeAuthorize
from payout.errors import TransportError
from payout.transaction import Message, Transaction, authorize, transfer
from tests.helpers import new_wallet


class TestBankClient(IsolatedAsyncioTestCase):
    def setUp(self):
        self.bank = BankClient(lamports_per_signature=10, max_recent_blockhashes=3)
        self.payer, self.staker, self.withdrawer = new_wallet(), new_wallet(), new_wallet()
        self.bank.fund(self.payer.address, 1_000)

    async def sign_and_send(self, instructions, *signers, blockhash=None):
        if blockhash is None:
            blockhash, _ = await self.bank.get_reference_blockhash()
        message = Message.new_with_payer(instructions, self.payer.address, blockhash)
        tx = Transaction.new([self.payer, *signers], message)
        await self.bank.send(tx)
        return (await self.bank.get_statuses([tx.signature]))[0]

    async def test_transfer_charges_fee(self):
        status = await self.sign_and_send([transfer(self.payer.address, "r", 100)])
        self.assertIsNone(status.err)
        self.assertIsNone(status.confirmations)
        self.assertEqual(await self.bank.get_balance("r"), 100)
        self.assertEqual(await self.bank.get_balance(self.payer.address), 1_000 - 100 - 10)

    async def test_failed_instruction_rolls_back_but_keeps_fee(self):
        status = await self.sign_and_send(
            [transfer(self.payer.address, "r", 100), transfer(self.payer.address, "s", 10_000)]
        )
        self.assertIn("Insufficient funds", status.err)
        self.assertEqual(await self.bank.get_balance("r"), 0)
        self.assertEqual(await self.bank.get_balance(self.payer.address), 990)

    async def test_duplicate_send_rejected(self):
        message = Message.new_with_payer(
            [transfer(self.payer.address, "r", 1)], self.payer.address, self.bank.advance_blockhash()
        )
        tx = Transaction.new([self.payer], message)
        await self.bank.send(tx)
        with self.assertRaises(TransportError):
            await self.bank.send(tx)

    async def test_expired_blockhash_rejected(self):
        old, _ = await self.bank.get_reference_blockhash()
        self.bank.advance_blockhash(3)
        self.assertNotIn(old, await self.bank.get_recent_blockhashes())
        with self.assertRaises(TransportError):
            await self.sign_and_send([transfer(self.payer.address, "r", 1)], blockhash=old)

    async def test_authorize_rules(self):
        self.bank.create_stake_account("stake", self.staker.address, self.withdrawer.address, 500)

        # The withdraw authority may reassign the staker, not the other way round.
        status = await self.sign_and_send(
            [authorize("stake", self.withdrawer.address, "new", StakeAuthorize.STAKER)], self.withdrawer
        )
        self.assertIsNone(status.err)
        self.assertEqual(self.bank.stake_account("stake").staker, "new")

        self.bank.advance_blockhash()
        status = await self.sign_and_send(
            [authorize("stake", self.staker.address, "new", StakeAuthorize.WITHDRAWER)], self.staker
        )
        self.assertIsNotNone(status.err)
        self.assertEqual(self.bank.stake_account("stake").withdrawer, self.withdrawer.address)

    async def test_malformed_wire_rejected(self):
        for wire in ("not base64!", "bm90IGpzb24=", "e30="):
            with self.subTest(wire=wire):
                with self.assertRaises(TransportError):
                    await self.bank.send_raw(wire)
        self.assertEqual(self.bank.sent, [])

    async def test_executes_the_wire_form(self):
        blockhash, _ = await self.bank.get_reference_blockhash()
        message = Message.new_with_payer([transfer(self.payer.address, "r", 5)], self.payer.address, blockhash)
        tx = Transaction.new([self.payer], message)
        self.assertEqual(await self.bank.send_raw(tx.serialize()), tx.signature)
        self.assertEqual(self.bank.sent[0].message, message)
        self.assertEqual(await self.bank.get_balance("r"), 5)
