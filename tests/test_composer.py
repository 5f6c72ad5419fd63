import unittest
from unittest.mock import AsyncMock, Mock

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from assetforge.composer import Composer, InstructionRecord
from assetforge.errors import ExpectedSignerError, NoInstructionsToSendError


def make_ix(tag: int, *signers: Keypair) -> Instruction:
    accounts = [AccountMeta(pubkey=s.pubkey(), is_signer=True, is_writable=False) for s in signers]
    return Instruction(Pubkey.new_unique(), bytes([tag]), accounts)


def make_record(tag: int, *signers: Keypair, key: str = None) -> InstructionRecord:
    return InstructionRecord(make_ix(tag, *signers), signers=signers, key=key)


def tags(composer: Composer) -> list:
    return [bytes(ix.data)[0] for ix in composer.get_instructions()]


class ComposerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.payer = Keypair()
        self.alice = Keypair()
        self.bob = Keypair()

    def test_signers_are_union_of_fragments_and_fee_payer(self) -> None:
        composer = (
            Composer.make()
            .add(make_record(1, self.alice, self.payer))
            .add(make_record(2, self.bob, self.alice))
            .set_fee_payer(self.payer)
        )
        addresses = [s.pubkey() for s in composer.get_signers()]
        self.assertEqual(addresses, [self.payer.pubkey(), self.alice.pubkey(), self.bob.pubkey()])

    def test_empty_across_nesting(self) -> None:
        nested = Composer.make().add(Composer.make().add(Composer.make()))
        self.assertTrue(nested.is_empty())
        self.assertFalse(nested.add(Composer.make().add(make_record(1))).is_empty())

    def test_flattening_preserves_order(self) -> None:
        inner = Composer.make().add(make_record(2), make_record(3))
        outer = Composer.make().add(make_record(1)).add(inner).add(make_record(4))
        self.assertEqual(tags(outer), [1, 2, 3, 4])
        self.assertEqual(tags(outer.prepend(make_record(0))), [0, 1, 2, 3, 4])

    def test_add_returns_new_value(self) -> None:
        base = Composer.make()
        grown = base.add(make_record(1))
        self.assertTrue(base.is_empty())
        self.assertEqual(grown.instruction_count(), 1)

    def test_context_merges_with_later_fragment_winning(self) -> None:
        first = Composer.make().set_context(mint_address="a", token_address="t")
        second = Composer.make().set_context({"mint_address": "b"})
        merged = Composer.make().add(first, second)
        self.assertEqual(merged.get_context(), {"mint_address": "b", "token_address": "t"})

    def test_when_and_unless(self) -> None:
        base = Composer.make()
        self.assertEqual(base.when(True, lambda c: c.add(make_record(1))).instruction_count(), 1)
        self.assertEqual(base.when(False, lambda c: c.add(make_record(1))).instruction_count(), 0)
        self.assertEqual(base.unless(True, lambda c: c.add(make_record(1))).instruction_count(), 0)

    def test_add_rejects_unknown_fragment(self) -> None:
        with self.assertRaises(TypeError):
            Composer.make().add(make_ix(1))

    def test_split_by_key(self) -> None:
        composer = Composer.make().add(make_record(1), make_record(2, key="mid"), make_record(3))
        before, rest = composer.split_before_key("mid")
        self.assertEqual((tags(before), tags(rest)), ([1], [2, 3]))
        upto, after = composer.split_after_key("mid")
        self.assertEqual((tags(upto), tags(after)), ([1, 2], [3]))
        with self.assertRaises(KeyError):
            composer.split_before_key("missing")

    def test_to_transaction_signs_required_signers(self) -> None:
        composer = Composer.make().set_fee_payer(self.payer).add(make_record(1, self.alice))
        tx = composer.to_transaction(Hash.new_unique())
        self.assertEqual(len(tx.signatures), 2)
        self.assertEqual(tx.message.account_keys[0], self.payer.pubkey())

    def test_to_transaction_requires_every_signer(self) -> None:
        ix = make_ix(1, self.alice)
        composer = Composer.make().set_fee_payer(self.payer).add(InstructionRecord(ix))
        with self.assertRaises(ExpectedSignerError):
            composer.to_transaction(Hash.new_unique())

    def test_to_message_requires_fee_payer(self) -> None:
        with self.assertRaises(ExpectedSignerError):
            Composer.make().add(make_record(1)).to_message(Hash.new_unique())


class ComposerSendTests(unittest.IsolatedAsyncioTestCase):
    async def test_empty_composer_is_never_submitted(self) -> None:
        rpc = Mock()
        rpc.send_and_confirm_transaction = AsyncMock()
        composer = Composer.make().set_fee_payer(Keypair()).add(Composer.make())
        with self.assertRaises(NoInstructionsToSendError):
            await composer.send_and_confirm(rpc)
        rpc.send_and_confirm_transaction.assert_not_awaited()

    async def test_send_returns_context_and_response(self) -> None:
        rpc = Mock()
        rpc.send_and_confirm_transaction = AsyncMock(return_value="sent")
        composer = Composer.make().add(make_record(1)).set_context(mint_address="mint")
        output = await composer.send_and_confirm(rpc)
        self.assertEqual(output, {"mint_address": "mint", "response": "sent"})


if __name__ == "__main__":
    unittest.main()
