import unittest

from solders.pubkey import Pubkey

from assetforge.authority import AuthorizationData, PayloadSeeds
from assetforge.errors import LayoutLengthError, UnexpectedAccountError, UnreachableCaseError
from assetforge.instructions import (
    DataV2,
    build_unverify_collection_ix,
    build_verify_collection_ix,
    encode_authorization_data,
    encode_create_metadata_v3,
    encode_lock,
)
from assetforge.layouts import CreateMetadataAccountArgsV3Layout
from assetforge.models import Collection, Creator, parse_edition_account, parse_metadata_account
from assetforge.rpc import UnparsedAccount


class DataV2Tests(unittest.TestCase):
    def test_length_limits(self) -> None:
        with self.assertRaises(LayoutLengthError):
            DataV2(name="x" * 33, symbol="", uri="", seller_fee_basis_points=0).validate()
        with self.assertRaises(LayoutLengthError):
            DataV2(name="", symbol="TOOLONGSYMB", uri="", seller_fee_basis_points=0).validate()
        creators = tuple(Creator(Pubkey.new_unique(), share=20) for _ in range(6))
        with self.assertRaises(LayoutLengthError):
            DataV2(name="", symbol="", uri="", seller_fee_basis_points=0, creators=creators).validate()

    def test_create_metadata_args_decode(self) -> None:
        creator = Pubkey.new_unique()
        collection = Pubkey.new_unique()
        data = DataV2(
            name="Mochi",
            symbol="MOC",
            uri="https://example.invalid",
            seller_fee_basis_points=250,
            creators=(Creator(creator, verified=True, share=100),),
            collection=Collection(collection, verified=True),
        )
        encoded = encode_create_metadata_v3(data, is_mutable=False, collection_size=10)
        self.assertEqual(encoded[0], 33)
        args = CreateMetadataAccountArgsV3Layout.parse(encoded[1:])
        self.assertEqual(args.data.name, "Mochi")
        self.assertEqual(bytes(args.data.creators[0].address), bytes(creator))
        self.assertTrue(args.data.collection.verified)
        self.assertFalse(args.is_mutable)
        self.assertEqual(args.collection_details.size, 10)


class CollectionInstructionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.keys = [Pubkey.new_unique() for _ in range(6)]

    def test_sized_verify_marks_collection_metadata_writable(self) -> None:
        ix = build_verify_collection_ix(*self.keys, sized=True)
        self.assertEqual(bytes(ix.data), bytes([30]))
        self.assertTrue(ix.accounts[4].is_writable)
        self.assertFalse(build_verify_collection_ix(*self.keys).accounts[4].is_writable)

    def test_unverify_takes_payer_only_when_sized(self) -> None:
        self.assertEqual(len(build_unverify_collection_ix(*self.keys).accounts), 5)
        sized = build_unverify_collection_ix(*self.keys, sized=True)
        self.assertEqual(len(sized.accounts), 6)
        self.assertEqual(bytes(sized.data), bytes([31]))


class AuthorizationDataTests(unittest.TestCase):
    def test_payload_variants(self) -> None:
        target = Pubkey.new_unique()
        encoded = encode_authorization_data(
            AuthorizationData({"Destination": target, "Amount": 1, "Seeds": PayloadSeeds((b"a", b"bc"))})
        )
        self.assertEqual(set(encoded["payload"]["map"]), {"Destination", "Amount", "Seeds"})
        self.assertIsNone(encode_authorization_data(None))

    def test_unsupported_payload_value(self) -> None:
        with self.assertRaises(UnreachableCaseError):
            encode_authorization_data(AuthorizationData({"Flag": True}))
        with self.assertRaises(UnreachableCaseError):
            encode_authorization_data(AuthorizationData({"Name": "text"}))

    def test_lock_args_without_data(self) -> None:
        self.assertEqual(encode_lock(None), bytes([46, 0, 0]))


class AccountParsingTests(unittest.TestCase):
    def test_wrong_discriminant(self) -> None:
        account = UnparsedAccount(address=Pubkey.new_unique(), data=bytes([6]) + bytes(20))
        with self.assertRaises(UnexpectedAccountError):
            parse_metadata_account(account)

    def test_print_edition(self) -> None:
        parent = Pubkey.new_unique()
        data = bytes([1]) + bytes(parent) + (7).to_bytes(8, "little")
        edition = parse_edition_account(UnparsedAccount(address=Pubkey.new_unique(), data=data))
        self.assertEqual(edition.parent, parent)
        self.assertEqual(edition.number, 7)


if __name__ == "__main__":
    unittest.main()
