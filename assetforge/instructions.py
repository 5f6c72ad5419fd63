from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

from assetforge.authority import (
    AuthorizationData,
    PayloadMerkleProof,
    PayloadSeeds,
    ResolvedAuthorization,
)
from assetforge.errors import LayoutLengthError, UnreachableCaseError
from assetforge.layouts import (
    IX_CREATE_MASTER_EDITION_V3,
    IX_CREATE_METADATA_ACCOUNT_V3,
    IX_LOCK,
    IX_MINT_NEW_EDITION_FROM_MASTER_EDITION_VIA_TOKEN,
    IX_UNLOCK,
    IX_UNVERIFY_COLLECTION,
    IX_UNVERIFY_SIZED_COLLECTION_ITEM,
    IX_UPDATE_METADATA_ACCOUNT_V2,
    IX_VERIFY_COLLECTION,
    IX_VERIFY_SIZED_COLLECTION_ITEM,
    CollectionDetailsLayout,
    CreateMasterEditionArgsLayout,
    CreateMetadataAccountArgsV3Layout,
    LockArgsLayout,
    MintNewEditionArgsLayout,
    PayloadTypeLayout,
    UnlockArgsLayout,
    UpdateMetadataAccountArgsV2Layout,
)
from assetforge.models import Collection, Creator, Metadata, Uses
from assetforge.programs import (
    SYSTEM_PROGRAM_ID,
    SYSVAR_INSTRUCTIONS_PUBKEY,
    TOKEN_AUTH_RULES_PROGRAM_ID,
    TOKEN_METADATA_PROGRAM_ID,
)

MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_URI_LENGTH = 200
MAX_CREATOR_LIMIT = 5


@dataclass(frozen=True)
class DataV2:
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int
    creators: Optional[Tuple[Creator, ...]] = None
    collection: Optional[Collection] = None
    uses: Optional[Uses] = None

    @classmethod
    def from_metadata(cls, metadata: Metadata) -> "DataV2":
        return cls(
            name=metadata.name,
            symbol=metadata.symbol,
            uri=metadata.uri,
            seller_fee_basis_points=metadata.seller_fee_basis_points,
            creators=metadata.creators or None,
            collection=metadata.collection,
            uses=metadata.uses,
        )

    def validate(self) -> None:
        for label, value, limit in (
            ("name", self.name, MAX_NAME_LENGTH),
            ("symbol", self.symbol, MAX_SYMBOL_LENGTH),
            ("uri", self.uri, MAX_URI_LENGTH),
        ):
            size = len(value.encode())
            if size > limit:
                raise LayoutLengthError(label, size, limit)
        if self.creators is not None and len(self.creators) > MAX_CREATOR_LIMIT:
            raise LayoutLengthError("creators", len(self.creators), MAX_CREATOR_LIMIT)

    def to_layout(self) -> Dict[str, Any]:
        self.validate()
        creators = None
        if self.creators is not None:
            creators = [
                {"address": list(bytes(c.address)), "verified": c.verified, "share": c.share} for c in self.creators
            ]
        collection = None
        if self.collection is not None:
            collection = {"verified": self.collection.verified, "key": list(bytes(self.collection.key))}
        uses = None
        if self.uses is not None:
            uses = {"use_method": self.uses.use_method, "remaining": self.uses.remaining, "total": self.uses.total}
        return {
            "name": self.name,
            "symbol": self.symbol,
            "uri": self.uri,
            "seller_fee_basis_points": self.seller_fee_basis_points,
            "creators": creators,
            "collection": collection,
            "uses": uses,
        }


def encode_create_metadata_v3(data: DataV2, is_mutable: bool, collection_size: Optional[int]) -> bytes:
    details = None if collection_size is None else CollectionDetailsLayout.enum.V1(size=collection_size)
    args = CreateMetadataAccountArgsV3Layout.build(
        {"data": data.to_layout(), "is_mutable": is_mutable, "collection_details": details}
    )
    return bytes([IX_CREATE_METADATA_ACCOUNT_V3]) + args


def encode_create_master_edition_v3(max_supply: Optional[int]) -> bytes:
    return bytes([IX_CREATE_MASTER_EDITION_V3]) + CreateMasterEditionArgsLayout.build({"max_supply": max_supply})


def encode_update_metadata_v2(
    data: Optional[DataV2],
    new_update_authority: Optional[Pubkey],
    primary_sale_happened: Optional[bool],
    is_mutable: Optional[bool],
) -> bytes:
    args = UpdateMetadataAccountArgsV2Layout.build(
        {
            "data": data.to_layout() if data is not None else None,
            "update_authority": list(bytes(new_update_authority)) if new_update_authority else None,
            "primary_sale_happened": primary_sale_happened,
            "is_mutable": is_mutable,
        }
    )
    return bytes([IX_UPDATE_METADATA_ACCOUNT_V2]) + args


def encode_mint_new_edition(edition: int) -> bytes:
    return bytes([IX_MINT_NEW_EDITION_FROM_MASTER_EDITION_VIA_TOKEN]) + MintNewEditionArgsLayout.build({"edition": edition})


def encode_authorization_data(data: Optional[AuthorizationData]) -> Optional[Dict[str, Any]]:
    if data is None:
        return None
    entries: Dict[str, Any] = {}
    for key, value in data.payload.items():
        if isinstance(value, bool):
            raise UnreachableCaseError(value)
        if isinstance(value, Pubkey):
            entries[key] = PayloadTypeLayout.enum.Pubkey(value=list(bytes(value)))
        elif isinstance(value, PayloadSeeds):
            entries[key] = PayloadTypeLayout.enum.Seeds(seeds=[bytes(seed) for seed in value.seeds])
        elif isinstance(value, PayloadMerkleProof):
            entries[key] = PayloadTypeLayout.enum.MerkleProof(proof=[list(leaf) for leaf in value.proof])
        elif isinstance(value, int):
            entries[key] = PayloadTypeLayout.enum.Number(value=value)
        else:
            raise UnreachableCaseError(value)
    return {"payload": {"map": entries}}


def encode_lock(authorization_data: Optional[AuthorizationData]) -> bytes:
    args = LockArgsLayout.build(LockArgsLayout.enum.V1(authorization_data=encode_authorization_data(authorization_data)))
    return bytes([IX_LOCK]) + args


def encode_unlock(authorization_data: Optional[AuthorizationData]) -> bytes:
    args = UnlockArgsLayout.build(
        UnlockArgsLayout.enum.V1(authorization_data=encode_authorization_data(authorization_data))
    )
    return bytes([IX_UNLOCK]) + args


def build_create_metadata_v3_ix(
    metadata: Pubkey,
    mint: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    update_authority: Pubkey,
    data: DataV2,
    is_mutable: bool = True,
    collection_size: Optional[int] = None,
    program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID,
    system_program: Pubkey = SYSTEM_PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=metadata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=update_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=system_program, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, encode_create_metadata_v3(data, is_mutable, collection_size), accounts)


def build_create_master_edition_v3_ix(
    edition: Pubkey,
    mint: Pubkey,
    update_authority: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    metadata: Pubkey,
    max_supply: Optional[int] = 0,
    program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
    system_program: Pubkey = SYSTEM_PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=edition, is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=True),
        AccountMeta(pubkey=update_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=mint_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=metadata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=token_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=system_program, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, encode_create_master_edition_v3(max_supply), accounts)


def build_update_metadata_v2_ix(
    metadata: Pubkey,
    update_authority: Pubkey,
    data: Optional[DataV2] = None,
    new_update_authority: Optional[Pubkey] = None,
    primary_sale_happened: Optional[bool] = None,
    is_mutable: Optional[bool] = None,
    program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=metadata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=update_authority, is_signer=True, is_writable=False),
    ]
    data_bytes = encode_update_metadata_v2(data, new_update_authority, primary_sale_happened, is_mutable)
    return Instruction(program_id, data_bytes, accounts)


def build_verify_collection_ix(
    metadata: Pubkey,
    collection_authority: Pubkey,
    payer: Pubkey,
    collection_mint: Pubkey,
    collection_metadata: Pubkey,
    collection_master_edition: Pubkey,
    collection_authority_record: Optional[Pubkey] = None,
    sized: bool = False,
    program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=metadata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=collection_authority, is_signer=True, is_writable=not sized),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=collection_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=collection_metadata, is_signer=False, is_writable=sized),
        AccountMeta(pubkey=collection_master_edition, is_signer=False, is_writable=False),
    ]
    if collection_authority_record is not None:
        accounts.append(AccountMeta(pubkey=collection_authority_record, is_signer=False, is_writable=False))
    discriminant = IX_VERIFY_SIZED_COLLECTION_ITEM if sized else IX_VERIFY_COLLECTION
    return Instruction(program_id, bytes([discriminant]), accounts)


def build_unverify_collection_ix(
    metadata: Pubkey,
    collection_authority: Pubkey,
    payer: Pubkey,
    collection_mint: Pubkey,
    collection_metadata: Pubkey,
    collection_master_edition: Pubkey,
    collection_authority_record: Optional[Pubkey] = None,
    sized: bool = False,
    program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID,
) -> Instruction:
    accounts: List[AccountMeta] = [
        AccountMeta(pubkey=metadata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=collection_authority, is_signer=True, is_writable=not sized),
    ]
    # only the sized variant takes a payer
    if sized:
        accounts.append(AccountMeta(pubkey=payer, is_signer=True, is_writable=True))
    accounts.extend(
        [
            AccountMeta(pubkey=collection_mint, is_signer=False, is_writable=False),
            AccountMeta(pubkey=collection_metadata, is_signer=False, is_writable=sized),
            AccountMeta(pubkey=collection_master_edition, is_signer=False, is_writable=False),
        ]
    )
    if collection_authority_record is not None:
        accounts.append(AccountMeta(pubkey=collection_authority_record, is_signer=False, is_writable=False))
    discriminant = IX_UNVERIFY_SIZED_COLLECTION_ITEM if sized else IX_UNVERIFY_COLLECTION
    return Instruction(program_id, bytes([discriminant]), accounts)


def build_mint_new_edition_ix(
    new_metadata: Pubkey,
    new_edition: Pubkey,
    master_edition: Pubkey,
    new_mint: Pubkey,
    edition_marker: Pubkey,
    new_mint_authority: Pubkey,
    payer: Pubkey,
    token_account_owner: Pubkey,
    token_account: Pubkey,
    new_metadata_update_authority: Pubkey,
    metadata: Pubkey,
    edition: int,
    program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
    system_program: Pubkey = SYSTEM_PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=new_metadata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=new_edition, is_signer=False, is_writable=True),
        AccountMeta(pubkey=master_edition, is_signer=False, is_writable=True),
        AccountMeta(pubkey=new_mint, is_signer=False, is_writable=True),
        AccountMeta(pubkey=edition_marker, is_signer=False, is_writable=True),
        AccountMeta(pubkey=new_mint_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=token_account_owner, is_signer=True, is_writable=False),
        AccountMeta(pubkey=token_account, is_signer=False, is_writable=False),
        AccountMeta(pubkey=new_metadata_update_authority, is_signer=False, is_writable=False),
        AccountMeta(pubkey=metadata, is_signer=False, is_writable=False),
        AccountMeta(pubkey=token_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=system_program, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, encode_mint_new_edition(edition), accounts)


def _lock_accounts(
    authorization: ResolvedAuthorization,
    token: Pubkey,
    mint: Pubkey,
    metadata: Pubkey,
    edition: Optional[Pubkey],
    token_record: Optional[Pubkey],
    payer: Pubkey,
    program_id: Pubkey,
    system_program: Pubkey,
    token_program: Optional[Pubkey],
    auth_rules_program: Pubkey,
) -> List[AccountMeta]:
    def optional(pubkey: Optional[Pubkey], is_writable: bool = False) -> AccountMeta:
        # absent optional accounts are filled with the program id
        if pubkey is None:
            return AccountMeta(pubkey=program_id, is_signer=False, is_writable=False)
        return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=is_writable)

    accounts = authorization.accounts
    rules = accounts.authorization_rules
    return [
        AccountMeta(pubkey=accounts.authority, is_signer=True, is_writable=False),
        optional(accounts.approver),
        AccountMeta(pubkey=token, is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=metadata, is_signer=False, is_writable=True),
        optional(edition),
        optional(token_record, is_writable=True),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=system_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSVAR_INSTRUCTIONS_PUBKEY, is_signer=False, is_writable=False),
        optional(token_program),
        optional(auth_rules_program if rules is not None else None),
        optional(rules),
    ]


def build_lock_ix(
    authorization: ResolvedAuthorization,
    token: Pubkey,
    mint: Pubkey,
    metadata: Pubkey,
    edition: Optional[Pubkey],
    payer: Pubkey,
    token_record: Optional[Pubkey] = None,
    program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID,
    system_program: Pubkey = SYSTEM_PROGRAM_ID,
    token_program: Optional[Pubkey] = TOKEN_PROGRAM_ID,
    auth_rules_program: Pubkey = TOKEN_AUTH_RULES_PROGRAM_ID,
) -> Instruction:
    accounts = _lock_accounts(
        authorization, token, mint, metadata, edition, token_record, payer, program_id, system_program, token_program, auth_rules_program
    )
    return Instruction(program_id, encode_lock(authorization.data.authorization_data), accounts)


def build_unlock_ix(
    authorization: ResolvedAuthorization,
    token: Pubkey,
    mint: Pubkey,
    metadata: Pubkey,
    edition: Optional[Pubkey],
    payer: Pubkey,
    token_record: Optional[Pubkey] = None,
    program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID,
    system_program: Pubkey = SYSTEM_PROGRAM_ID,
    token_program: Optional[Pubkey] = TOKEN_PROGRAM_ID,
    auth_rules_program: Pubkey = TOKEN_AUTH_RULES_PROGRAM_ID,
) -> Instruction:
    accounts = _lock_accounts(
        authorization, token, mint, metadata, edition, token_record, payer, program_id, system_program, token_program, auth_rules_program
    )
    return Instruction(program_id, encode_unlock(authorization.data.authorization_data), accounts)
