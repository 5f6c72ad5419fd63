from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel
from solders.pubkey import Pubkey

from assetforge.errors import AccountNotFoundError, UnexpectedAccountError
from assetforge.layouts import (
    KEY_EDITION_V1,
    KEY_MASTER_EDITION_V1,
    KEY_MASTER_EDITION_V2,
    KEY_METADATA_V1,
    EditionAccountLayout,
    MasterEditionAccountLayout,
    MetadataAccountLayout,
)
from assetforge.rpc import UnparsedAccount


class JsonAttribute(BaseModel):
    trait_type: Optional[str] = None
    value: Any = None

    class Config:
        extra = "allow"


class JsonMetadata(BaseModel):
    name: Optional[str] = None
    symbol: Optional[str] = None
    description: Optional[str] = None
    seller_fee_basis_points: Optional[int] = None
    image: Optional[str] = None
    animation_url: Optional[str] = None
    external_url: Optional[str] = None
    attributes: List[JsonAttribute] = []
    properties: Dict[str, Any] = {}

    class Config:
        extra = "allow"


@dataclass(frozen=True)
class Creator:
    address: Pubkey
    verified: bool = False
    share: int = 100


@dataclass(frozen=True)
class Collection:
    key: Pubkey
    verified: bool = False


@dataclass(frozen=True)
class Uses:
    use_method: int
    remaining: int
    total: int


@dataclass(frozen=True)
class Metadata:
    address: Pubkey
    mint_address: Pubkey
    update_authority: Pubkey
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int
    creators: Tuple[Creator, ...] = ()
    primary_sale_happened: bool = False
    is_mutable: bool = True
    edition_nonce: Optional[int] = None
    token_standard: Optional[int] = None
    collection: Optional[Collection] = None
    uses: Optional[Uses] = None
    json: Optional[JsonMetadata] = None
    json_loaded: bool = False


@dataclass(frozen=True)
class MasterEdition:
    address: Pubkey
    supply: int
    max_supply: Optional[int]


@dataclass(frozen=True)
class PrintEdition:
    address: Pubkey
    parent: Pubkey
    number: int


@dataclass(frozen=True)
class Nft:
    metadata: Metadata
    edition: Optional[Union[MasterEdition, PrintEdition]] = None

    @property
    def address(self) -> Pubkey:
        return self.metadata.mint_address

    @property
    def is_nft(self) -> bool:
        return self.edition is not None


def _pubkey(raw: Any) -> Pubkey:
    return Pubkey(bytes(raw))


def _text(value: str) -> str:
    # names are stored padded with NUL bytes
    return value.rstrip("\x00")


def assert_account_exists(account: UnparsedAccount, account_type: Optional[str] = None) -> None:
    if not account.exists:
        raise AccountNotFoundError(account.address, account_type)


def parse_metadata_account(account: UnparsedAccount) -> Metadata:
    assert_account_exists(account, "Metadata")
    if not account.data or account.data[0] != KEY_METADATA_V1:
        raise UnexpectedAccountError(account.address, "Metadata")
    try:
        raw = MetadataAccountLayout.parse(account.data)
    except Exception as exc:  # noqa: BLE001
        raise UnexpectedAccountError(account.address, "Metadata", cause=exc) from exc
    creators = tuple(Creator(_pubkey(c.address), bool(c.verified), c.share) for c in raw.creators or [])
    collection = Collection(_pubkey(raw.collection.key), bool(raw.collection.verified)) if raw.collection else None
    uses = Uses(raw.uses.use_method, raw.uses.remaining, raw.uses.total) if raw.uses else None
    return Metadata(
        address=account.address,
        mint_address=_pubkey(raw.mint),
        update_authority=_pubkey(raw.update_authority),
        name=_text(raw.name),
        symbol=_text(raw.symbol),
        uri=_text(raw.uri),
        seller_fee_basis_points=raw.seller_fee_basis_points,
        creators=creators,
        primary_sale_happened=bool(raw.primary_sale_happened),
        is_mutable=bool(raw.is_mutable),
        edition_nonce=raw.edition_nonce,
        token_standard=raw.token_standard,
        collection=collection,
        uses=uses,
    )


def parse_master_edition_account(account: UnparsedAccount) -> MasterEdition:
    assert_account_exists(account, "MasterEdition")
    if not account.data or account.data[0] not in (KEY_MASTER_EDITION_V1, KEY_MASTER_EDITION_V2):
        raise UnexpectedAccountError(account.address, "MasterEdition")
    try:
        raw = MasterEditionAccountLayout.parse(account.data)
    except Exception as exc:  # noqa: BLE001
        raise UnexpectedAccountError(account.address, "MasterEdition", cause=exc) from exc
    return MasterEdition(address=account.address, supply=raw.supply, max_supply=raw.max_supply)


def parse_edition_account(account: UnparsedAccount) -> Union[MasterEdition, PrintEdition]:
    assert_account_exists(account, "Edition")
    if account.data and account.data[0] == KEY_EDITION_V1:
        try:
            raw = EditionAccountLayout.parse(account.data)
        except Exception as exc:  # noqa: BLE001
            raise UnexpectedAccountError(account.address, "Edition", cause=exc) from exc
        return PrintEdition(address=account.address, parent=_pubkey(raw.parent), number=raw.edition)
    return parse_master_edition_account(account)
