import unittest

from solders.pubkey import Pubkey
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from assetforge.errors import InvalidSeedsError
from assetforge.pdas import (
    associated_token_pda,
    delegate_record_pda,
    derive,
    edition_marker_pda,
    master_edition_pda,
    metadata_pda,
    token_record_pda,
)
from assetforge.programs import TOKEN_METADATA_PROGRAM_ID


class DeriveTests(unittest.TestCase):
    def test_same_inputs_give_same_address(self) -> None:
        program = Pubkey.new_unique()
        seeds = (b"vault", bytes(Pubkey.new_unique()))
        self.assertEqual(derive(program, seeds), derive(program, seeds))

    def test_seed_order_changes_address(self) -> None:
        program = Pubkey.new_unique()
        self.assertNotEqual(derive(program, (b"a", b"b")).address, derive(program, (b"b", b"a")).address)

    def test_program_changes_address(self) -> None:
        seeds = (b"vault",)
        self.assertNotEqual(derive(Pubkey.new_unique(), seeds).address, derive(Pubkey.new_unique(), seeds).address)

    def test_long_seed_is_rejected(self) -> None:
        with self.assertRaises(InvalidSeedsError):
            derive(Pubkey.new_unique(), (b"x" * 33,))

    def test_too_many_seeds_are_rejected(self) -> None:
        with self.assertRaises(InvalidSeedsError):
            derive(Pubkey.new_unique(), [b"s"] * 17)


class MetadataPdaTests(unittest.TestCase):
    def setUp(self) -> None:
        self.mint = Pubkey.new_unique()
        self.program = bytes(TOKEN_METADATA_PROGRAM_ID)

    def _find(self, *seeds: bytes) -> Pubkey:
        return Pubkey.find_program_address(list(seeds), TOKEN_METADATA_PROGRAM_ID)[0]

    def test_metadata_and_master_edition_seeds(self) -> None:
        self.assertEqual(metadata_pda(self.mint), self._find(b"metadata", self.program, bytes(self.mint)))
        self.assertEqual(
            master_edition_pda(self.mint), self._find(b"metadata", self.program, bytes(self.mint), b"edition")
        )

    def test_edition_marker_groups_editions_by_bucket(self) -> None:
        self.assertEqual(edition_marker_pda(self.mint, 1), edition_marker_pda(self.mint, 247))
        self.assertNotEqual(edition_marker_pda(self.mint, 247), edition_marker_pda(self.mint, 248))
        self.assertEqual(
            edition_marker_pda(self.mint, 248),
            self._find(b"metadata", self.program, bytes(self.mint), b"edition", b"1"),
        )

    def test_metadata_delegate_record_appends_delegate(self) -> None:
        namespace = Pubkey.new_unique()
        delegate = Pubkey.new_unique()
        expected = self._find(
            b"metadata", self.program, bytes(self.mint), b"collection_delegate", bytes(namespace), bytes(delegate)
        )
        self.assertEqual(delegate_record_pda(self.mint, "collection_delegate", namespace, delegate), expected)

    def test_token_delegate_record_is_keyed_by_owner_only(self) -> None:
        owner = Pubkey.new_unique()
        expected = self._find(b"metadata", self.program, bytes(self.mint), b"persistent_delegate", bytes(owner))
        self.assertEqual(delegate_record_pda(self.mint, "persistent_delegate", owner), expected)

    def test_token_record(self) -> None:
        token = Pubkey.new_unique()
        expected = self._find(b"metadata", self.program, bytes(self.mint), b"token_record", bytes(token))
        self.assertEqual(token_record_pda(self.mint, token), expected)

    def test_associated_token_address(self) -> None:
        owner = Pubkey.new_unique()
        expected = Pubkey.find_program_address(
            [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(self.mint)], ASSOCIATED_TOKEN_PROGRAM_ID
        )[0]
        self.assertEqual(associated_token_pda(self.mint, owner), expected)


if __name__ == "__main__":
    unittest.main()
