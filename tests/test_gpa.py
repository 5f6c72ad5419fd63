import asyncio
import unittest
from typing import List
from unittest.mock import AsyncMock, Mock

from solders.pubkey import Pubkey

from assetforge.errors import InvalidCreatorPositionError, LayoutLengthError
from assetforge.gpa import (
    CREATORS_OFFSET,
    NAME_OFFSET,
    GmaBuilder,
    MetadataGpaBuilder,
    creator_offset,
)
from assetforge.rpc import UnparsedAccount


def metadata_buffer(update_authority: Pubkey, mint: Pubkey, name: str, creator: Pubkey) -> bytes:
    def field(value: str, limit: int) -> bytes:
        return len(value).to_bytes(4, "little") + value.encode().ljust(limit, b"\x00")

    data = bytes([4]) + bytes(update_authority) + bytes(mint)
    data += field(name, 32) + field("SYM", 10) + field("https://x", 200)
    data += (500).to_bytes(2, "little")
    data += bytes([1]) + (1).to_bytes(4, "little") + bytes(creator) + bytes([1, 100])
    return data.ljust(679, b"\x00")


class FakeRpc:
    """Applies filters and slices locally the way an RPC node would."""

    def __init__(self, buffers: List[bytes]) -> None:
        self.accounts = [UnparsedAccount(address=Pubkey.new_unique(), data=b) for b in buffers]
        self.calls = []

    async def get_program_accounts(self, program_id, filters=(), data_size=None, data_slice=None, commitment=None):
        self.calls.append((program_id, list(filters), data_slice))
        found = []
        for account in self.accounts:
            if all(f.matches(account.data) for f in filters):
                data = account.data
                if data_slice is not None:
                    data = data[data_slice[0] : data_slice[0] + data_slice[1]]
                found.append(UnparsedAccount(address=account.address, data=data))
        return found


class MetadataGpaBuilderTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.authority = Pubkey.new_unique()
        self.creator = Pubkey.new_unique()
        self.mint = Pubkey.new_unique()
        self.buffer = metadata_buffer(self.authority, self.mint, "Mochi #1", self.creator)[:250]

    def test_select_name_reads_name_bytes(self) -> None:
        builder = MetadataGpaBuilder(Mock(), Pubkey.new_unique()).select_name()
        self.assertEqual(builder.apply_slice(self.buffer), self.buffer[69:101])
        self.assertEqual(builder.apply_slice(self.buffer).rstrip(b"\x00"), b"Mochi #1")

    def test_filters_combine_as_and(self) -> None:
        builder = MetadataGpaBuilder(Mock(), Pubkey.new_unique()).where_key().where_update_authority(self.authority)
        self.assertTrue(builder.matches(self.buffer))
        self.assertFalse(builder.where_mint(Pubkey.new_unique()).matches(self.buffer))

    def test_name_filter_pads_to_max_length(self) -> None:
        builder = MetadataGpaBuilder(Mock(), Pubkey.new_unique()).where_name("Mochi #1")
        self.assertEqual(builder.filters[0].byte_offset, NAME_OFFSET)
        self.assertEqual(len(builder.filters[0].expected_bytes), 32)
        self.assertTrue(builder.matches(self.buffer))
        with self.assertRaises(LayoutLengthError):
            builder.where_name("x" * 33)

    def test_creator_offsets(self) -> None:
        self.assertEqual(creator_offset(1), CREATORS_OFFSET)
        self.assertEqual(creator_offset(3), CREATORS_OFFSET + 68)
        for position in (0, 6):
            with self.assertRaises(InvalidCreatorPositionError):
                creator_offset(position)
        full = metadata_buffer(self.authority, self.mint, "Mochi #1", self.creator)
        self.assertTrue(MetadataGpaBuilder(Mock(), Pubkey.new_unique()).where_creator(1, self.creator).matches(full))

    async def test_get_mints_by_creator(self) -> None:
        other = metadata_buffer(Pubkey.new_unique(), Pubkey.new_unique(), "Other", Pubkey.new_unique())
        rpc = FakeRpc([metadata_buffer(self.authority, self.mint, "Mochi #1", self.creator), other])
        program = Pubkey.new_unique()
        mints = await MetadataGpaBuilder(rpc, program).where_key().select_mint().where_creator(1, self.creator).get_data_as_public_keys()
        self.assertEqual(mints, [self.mint])
        self.assertEqual(rpc.calls[0][0], program)
        self.assertEqual(len(rpc.calls[0][1]), 2)


class GmaBuilderTests(unittest.IsolatedAsyncioTestCase):
    async def test_fetches_in_chunks_and_keeps_order(self) -> None:
        addresses = [Pubkey.new_unique() for _ in range(5)]
        rpc = Mock()
        rpc.get_multiple_accounts = AsyncMock(side_effect=lambda chunk: [UnparsedAccount(address=a) for a in chunk])
        builder = GmaBuilder(rpc, addresses, chunk_size=2)
        accounts = await builder.get()
        self.assertEqual([a.address for a in accounts], addresses)
        self.assertEqual(rpc.get_multiple_accounts.await_count, 3)
        page = await builder.get_page(2)
        self.assertEqual([a.address for a in page], addresses[2:4])
        first = await builder.get_first(1)
        self.assertEqual([a.address for a in first], addresses[:1])

    async def test_failed_chunk_cancels_pending_chunks(self) -> None:
        addresses = [Pubkey.new_unique() for _ in range(4)]
        cancelled = []

        async def fetch(chunk):
            if chunk[0] == addresses[0]:
                raise ConnectionError("node unavailable")
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.append(chunk[0])
                raise
            return []

        rpc = Mock(get_multiple_accounts=fetch)
        with self.assertRaises(ConnectionError):
            await GmaBuilder(rpc, addresses, chunk_size=2).get()
        await asyncio.sleep(0)
        self.assertEqual(cancelled, [addresses[2]])


if __name__ == "__main__":
    unittest.main()
