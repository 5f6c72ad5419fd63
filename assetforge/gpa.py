from __future__ import annotations

import asyncio
import logging
from functools import cmp_to_key
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar, Union

from solders.pubkey import Pubkey

from assetforge.errors import InvalidCreatorPositionError, LayoutLengthError
from assetforge.layouts import KEY_METADATA_V1
from assetforge.rpc import AccountFilter, RpcClient, UnparsedAccount

logger = logging.getLogger("assetforge")

T = TypeVar("T")

FilterValue = Union[bytes, bytearray, Pubkey, int]

# Metadata account layout (fixed, max-length fields).
KEY_OFFSET = 0
UPDATE_AUTHORITY_OFFSET = 1
MINT_OFFSET = 33
LENGTH_PREFIX_SIZE = 4
MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_URI_LENGTH = 200
MAX_CREATOR_LEN = 32 + 1 + 1
MAX_CREATOR_LIMIT = 5
NAME_OFFSET = MINT_OFFSET + 32 + LENGTH_PREFIX_SIZE
SYMBOL_OFFSET = NAME_OFFSET + MAX_NAME_LENGTH + LENGTH_PREFIX_SIZE
URI_OFFSET = SYMBOL_OFFSET + MAX_SYMBOL_LENGTH + LENGTH_PREFIX_SIZE
SELLER_FEE_OFFSET = URI_OFFSET + MAX_URI_LENGTH
CREATORS_FLAG_OFFSET = SELLER_FEE_OFFSET + 2
CREATORS_OFFSET = CREATORS_FLAG_OFFSET + 1 + 4

GMA_CHUNK_SIZE = 100


def filter_bytes(value: FilterValue) -> bytes:
    if isinstance(value, bool):
        return bytes([int(value)])
    if isinstance(value, Pubkey):
        return bytes(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Cannot filter on negative integer {value}")
        return value.to_bytes(max(1, (value.bit_length() + 7) // 8), "little")
    raise TypeError(f"Unsupported filter value {value!r}")


def padded(value: str, limit: int, field: str) -> bytes:
    raw = value.encode()
    if len(raw) > limit:
        raise LayoutLengthError(field, len(raw), limit)
    return raw.ljust(limit, b"\x00")


class GpaBuilder:
    """Program account scan built from byte filters, evaluated by the RPC node."""

    def __init__(self, rpc: RpcClient, program_id: Pubkey) -> None:
        self.rpc = rpc
        self.program_id = program_id
        self.filters: List[AccountFilter] = []
        self.data_size: Optional[int] = None
        self.data_slice: Optional[Tuple[int, int]] = None
        self.sort_callback: Optional[Callable[[UnparsedAccount, UnparsedAccount], int]] = None

    def where(self, offset: int, value: FilterValue) -> "GpaBuilder":
        self.filters.append(AccountFilter(byte_offset=offset, expected_bytes=filter_bytes(value)))
        return self

    def where_size(self, data_size: int) -> "GpaBuilder":
        self.data_size = data_size
        return self

    def slice(self, offset: int, length: int) -> "GpaBuilder":
        self.data_slice = (offset, length)
        return self

    def without_data(self) -> "GpaBuilder":
        return self.slice(0, 0)

    def sort_using(self, callback: Callable[[UnparsedAccount, UnparsedAccount], int]) -> "GpaBuilder":
        self.sort_callback = callback
        return self

    def matches(self, data: bytes) -> bool:
        if self.data_size is not None and len(data) != self.data_size:
            return False
        return all(f.matches(data) for f in self.filters)

    def apply_slice(self, data: bytes) -> bytes:
        if self.data_slice is None:
            return data
        offset, length = self.data_slice
        return data[offset : offset + length]

    async def get(self) -> List[UnparsedAccount]:
        accounts = await self.rpc.get_program_accounts(
            self.program_id,
            filters=list(self.filters),
            data_size=self.data_size,
            data_slice=self.data_slice,
        )
        logger.debug("program_accounts_found program=%s count=%s", self.program_id, len(accounts))
        if self.sort_callback is not None:
            accounts = sorted(accounts, key=cmp_to_key(self.sort_callback))
        return accounts

    async def get_and_map(self, callback: Callable[[UnparsedAccount], T]) -> List[T]:
        return [callback(account) for account in await self.get()]

    async def get_addresses(self) -> List[Pubkey]:
        return await self.get_and_map(lambda account: account.address)

    async def get_data_as_public_keys(self) -> List[Pubkey]:
        return await self.get_and_map(lambda account: Pubkey(account.data[:32]))

    async def get_multiple_accounts(
        self, callback: Optional[Callable[[UnparsedAccount], Pubkey]] = None
    ) -> "GmaBuilder":
        addresses = await self.get_and_map(callback or (lambda account: account.address))
        return GmaBuilder(self.rpc, addresses)


class MetadataGpaBuilder(GpaBuilder):
    def where_key(self, key: int = KEY_METADATA_V1) -> "MetadataGpaBuilder":
        self.where(KEY_OFFSET, bytes([key]))
        return self

    def where_update_authority(self, update_authority: Pubkey) -> "MetadataGpaBuilder":
        self.where(UPDATE_AUTHORITY_OFFSET, update_authority)
        return self

    def select_update_authority(self) -> "MetadataGpaBuilder":
        self.slice(UPDATE_AUTHORITY_OFFSET, 32)
        return self

    def where_mint(self, mint: Pubkey) -> "MetadataGpaBuilder":
        self.where(MINT_OFFSET, mint)
        return self

    def select_mint(self) -> "MetadataGpaBuilder":
        self.slice(MINT_OFFSET, 32)
        return self

    def where_name(self, name: str) -> "MetadataGpaBuilder":
        self.where(NAME_OFFSET, padded(name, MAX_NAME_LENGTH, "name"))
        return self

    def select_name(self) -> "MetadataGpaBuilder":
        self.slice(NAME_OFFSET, MAX_NAME_LENGTH)
        return self

    def where_symbol(self, symbol: str) -> "MetadataGpaBuilder":
        self.where(SYMBOL_OFFSET, padded(symbol, MAX_SYMBOL_LENGTH, "symbol"))
        return self

    def select_symbol(self) -> "MetadataGpaBuilder":
        self.slice(SYMBOL_OFFSET, MAX_SYMBOL_LENGTH)
        return self

    def where_uri(self, uri: str) -> "MetadataGpaBuilder":
        self.where(URI_OFFSET, padded(uri, MAX_URI_LENGTH, "uri"))
        return self

    def select_uri(self) -> "MetadataGpaBuilder":
        self.slice(URI_OFFSET, MAX_URI_LENGTH)
        return self

    def where_seller_fee_basis_points(self, basis_points: int) -> "MetadataGpaBuilder":
        self.where(SELLER_FEE_OFFSET, basis_points.to_bytes(2, "little"))
        return self

    def select_seller_fee_basis_points(self) -> "MetadataGpaBuilder":
        self.slice(SELLER_FEE_OFFSET, 2)
        return self

    def where_creator(self, position: int, creator: Pubkey) -> "MetadataGpaBuilder":
        self.where(creator_offset(position), creator)
        return self

    def select_creator(self, position: int) -> "MetadataGpaBuilder":
        self.slice(creator_offset(position), 32)
        return self


def creator_offset(position: int) -> int:
    if not 1 <= position <= MAX_CREATOR_LIMIT:
        raise InvalidCreatorPositionError(position, MAX_CREATOR_LIMIT)
    return CREATORS_OFFSET + (position - 1) * MAX_CREATOR_LEN


class GmaBuilder:
    """Fetches a known address list in chunks the RPC node accepts."""

    def __init__(self, rpc: RpcClient, addresses: Sequence[Pubkey], chunk_size: int = GMA_CHUNK_SIZE) -> None:
        self.rpc = rpc
        self.addresses = list(addresses)
        self.chunk_size = chunk_size

    async def get(self) -> List[UnparsedAccount]:
        return await self.get_between(0, len(self.addresses))

    async def get_first(self, n: Optional[int] = None) -> List[UnparsedAccount]:
        return await self.get_between(0, self.chunk_size if n is None else n)

    async def get_between(self, start: int, end: int) -> List[UnparsedAccount]:
        selected = self.addresses[max(0, start) : max(0, end)]
        chunks = [selected[i : i + self.chunk_size] for i in range(0, len(selected), self.chunk_size)]
        tasks = [asyncio.ensure_future(self.rpc.get_multiple_accounts(chunk)) for chunk in chunks]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        return [account for chunk in results for account in chunk]

    async def get_page(self, page: int, per_page: Optional[int] = None) -> List[UnparsedAccount]:
        per_page = per_page or self.chunk_size
        start = (page - 1) * per_page
        return await self.get_between(start, start + per_page)
