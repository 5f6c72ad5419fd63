from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from assetforge.authority import Authority, AuthorizationDetails, resolve_authorization
from assetforge.composer import Composer, InstructionRecord
from assetforge.errors import MissingInputDataError
from assetforge.gpa import GmaBuilder
from assetforge.instructions import (
    DataV2,
    build_create_master_edition_v3_ix,
    build_create_metadata_v3_ix,
    build_lock_ix,
    build_mint_new_edition_ix,
    build_unlock_ix,
    build_unverify_collection_ix,
    build_update_metadata_v2_ix,
    build_verify_collection_ix,
)
from assetforge.models import (
    Collection,
    Creator,
    Metadata,
    Nft,
    Uses,
    parse_edition_account,
    parse_master_edition_account,
    parse_metadata_account,
)
from assetforge.operations import Operation, OperationDispatcher, OperationScope, send_composer, use_operation
from assetforge.pdas import (
    associated_token_pda,
    collection_authority_record_pda,
    edition_marker_pda,
    edition_pda,
    master_edition_pda,
    metadata_pda,
    token_record_pda,
)
from assetforge.token_ops import CreateTokenWithMintInput, create_token_with_mint_builder

if TYPE_CHECKING:
    from assetforge.client import AssetClient

logger = logging.getLogger("assetforge")

TOKEN_STANDARD_PROGRAMMABLE_NON_FUNGIBLE = 4

create_nft_operation = use_operation("CreateNftOperation")
find_nft_by_mint_operation = use_operation("FindNftByMintOperation")
find_nfts_by_mint_list_operation = use_operation("FindNftsByMintListOperation")
find_nfts_by_creator_operation = use_operation("FindNftsByCreatorOperation")
find_nfts_by_update_authority_operation = use_operation("FindNftsByUpdateAuthorityOperation")
update_nft_operation = use_operation("UpdateNftOperation")
verify_nft_collection_operation = use_operation("VerifyNftCollectionOperation")
unverify_nft_collection_operation = use_operation("UnverifyNftCollectionOperation")
print_new_edition_operation = use_operation("PrintNewEditionOperation")
lock_nft_operation = use_operation("LockNftOperation")
unlock_nft_operation = use_operation("UnlockNftOperation")


@dataclass(frozen=True)
class CreateNftInput:
    uri: str
    name: str
    seller_fee_basis_points: int
    symbol: str = ""
    creators: Optional[Tuple[Creator, ...]] = None
    is_mutable: bool = True
    max_supply: Optional[int] = 0
    mint: Optional[Keypair] = None
    update_authority: Optional[Keypair] = None
    mint_authority: Optional[Keypair] = None
    token_owner: Optional[Pubkey] = None
    collection: Optional[Pubkey] = None
    uses: Optional[Uses] = None
    is_collection: bool = False
    collection_size: int = 0


@dataclass(frozen=True)
class FindNftByMintInput:
    mint_address: Pubkey
    load_json_metadata: bool = True


@dataclass(frozen=True)
class FindNftsByMintListInput:
    mints: Sequence[Pubkey]


@dataclass(frozen=True)
class FindNftsByCreatorInput:
    creator: Pubkey
    position: int = 1


@dataclass(frozen=True)
class FindNftsByUpdateAuthorityInput:
    update_authority: Pubkey


@dataclass(frozen=True)
class UpdateNftInput:
    """Fields left as None keep their on-chain value."""

    nft: Nft
    update_authority: Optional[Keypair] = None
    name: Optional[str] = None
    symbol: Optional[str] = None
    uri: Optional[str] = None
    seller_fee_basis_points: Optional[int] = None
    creators: Optional[Tuple[Creator, ...]] = None
    uses: Optional[Uses] = None
    new_update_authority: Optional[Pubkey] = None
    primary_sale_happened: Optional[bool] = None
    is_mutable: Optional[bool] = None
    collection: Optional[Pubkey] = None
    clear_collection: bool = False
    collection_authority: Optional[Keypair] = None
    collection_is_sized: bool = True
    old_collection_authority: Optional[Keypair] = None
    old_collection_is_sized: bool = True


@dataclass(frozen=True)
class VerifyNftCollectionInput:
    mint: Pubkey
    collection_mint: Pubkey
    collection_authority: Optional[Keypair] = None
    is_sized_collection: bool = True
    is_delegated: bool = False


UnverifyNftCollectionInput = VerifyNftCollectionInput


@dataclass(frozen=True)
class PrintNewEditionInput:
    original_mint: Pubkey
    new_mint: Optional[Keypair] = None
    new_owner: Optional[Pubkey] = None
    new_update_authority: Optional[Pubkey] = None
    new_mint_authority: Optional[Keypair] = None
    original_token_account_owner: Optional[Keypair] = None
    original_token_account: Optional[Pubkey] = None
    original_supply: Optional[int] = None


@dataclass(frozen=True)
class LockNftInput:
    nft: Nft
    authority: Authority
    token: Optional[Pubkey] = None
    token_owner: Optional[Pubkey] = None
    authorization_details: Optional[AuthorizationDetails] = None


UnlockNftInput = LockNftInput


def is_programmable(metadata: Metadata) -> bool:
    return metadata.token_standard == TOKEN_STANDARD_PROGRAMMABLE_NON_FUNGIBLE


async def create_nft_builder(client: "AssetClient", params: CreateNftInput, scope: OperationScope) -> Composer:
    payer = scope.require_payer()
    update_authority = params.update_authority or payer
    mint_authority = params.mint_authority or payer
    program_id = client.programs.token_metadata(scope.programs)

    token_composer = await create_token_with_mint_builder(
        client,
        CreateTokenWithMintInput(
            decimals=0,
            initial_supply=1,
            mint=params.mint,
            mint_authority=mint_authority,
            owner=params.token_owner,
        ),
        scope,
    )
    mint_address = token_composer.get_context()["mint_address"]
    metadata = metadata_pda(mint_address, program_id)
    master_edition = master_edition_pda(mint_address, program_id)

    creators = params.creators
    if creators is None:
        creators = (Creator(address=update_authority.pubkey(), verified=True, share=100),)
    collection = Collection(key=params.collection, verified=False) if params.collection is not None else None
    data = DataV2(
        name=params.name,
        symbol=params.symbol,
        uri=params.uri,
        seller_fee_basis_points=params.seller_fee_basis_points,
        creators=creators,
        collection=collection,
        uses=params.uses,
    )
    metadata_ix = build_create_metadata_v3_ix(
        metadata=metadata,
        mint=mint_address,
        mint_authority=mint_authority.pubkey(),
        payer=payer.pubkey(),
        update_authority=update_authority.pubkey(),
        data=data,
        is_mutable=params.is_mutable,
        collection_size=params.collection_size if params.is_collection else None,
        program_id=program_id,
        system_program=client.programs.system(scope.programs),
    )
    edition_ix = build_create_master_edition_v3_ix(
        edition=master_edition,
        mint=mint_address,
        update_authority=update_authority.pubkey(),
        mint_authority=mint_authority.pubkey(),
        payer=payer.pubkey(),
        metadata=metadata,
        max_supply=params.max_supply,
        program_id=program_id,
        token_program=client.programs.token(scope.programs),
        system_program=client.programs.system(scope.programs),
    )
    return (
        Composer.make()
        .set_fee_payer(payer)
        .add(token_composer)
        .set_context(metadata_address=metadata, master_edition_address=master_edition)
        .add(
            InstructionRecord(metadata_ix, signers=(payer, mint_authority, update_authority), key="create_metadata"),
            InstructionRecord(edition_ix, signers=(payer, mint_authority, update_authority), key="create_master_edition"),
        )
    )


def update_nft_builder(client: "AssetClient", params: UpdateNftInput, scope: OperationScope) -> Composer:
    payer = scope.require_payer()
    update_authority = params.update_authority or payer
    program_id = client.programs.token_metadata(scope.programs)
    metadata = params.nft.metadata
    current = DataV2.from_metadata(metadata)

    old_collection = metadata.collection
    new_collection = old_collection
    if params.clear_collection:
        new_collection = None
    elif params.collection is not None and (old_collection is None or old_collection.key != params.collection):
        new_collection = Collection(key=params.collection, verified=False)

    updated = DataV2(
        name=current.name if params.name is None else params.name,
        symbol=current.symbol if params.symbol is None else params.symbol,
        uri=current.uri if params.uri is None else params.uri,
        seller_fee_basis_points=(
            current.seller_fee_basis_points
            if params.seller_fee_basis_points is None
            else params.seller_fee_basis_points
        ),
        creators=current.creators if params.creators is None else params.creators,
        collection=new_collection,
        uses=current.uses if params.uses is None else params.uses,
    )
    should_update = (
        updated != current
        or params.new_update_authority is not None
        or params.primary_sale_happened is not None
        or params.is_mutable is not None
    )
    collection_changed = new_collection is not old_collection
    unverify_old = collection_changed and old_collection is not None and old_collection.verified
    verify_new = collection_changed and new_collection is not None and params.collection_authority is not None

    def unverify(composer: Composer) -> Composer:
        authority = params.old_collection_authority or update_authority
        ix = build_unverify_collection_ix(
            metadata=metadata.address,
            collection_authority=authority.pubkey(),
            payer=payer.pubkey(),
            collection_mint=old_collection.key,
            collection_metadata=metadata_pda(old_collection.key, program_id),
            collection_master_edition=master_edition_pda(old_collection.key, program_id),
            sized=params.old_collection_is_sized,
            program_id=program_id,
        )
        return composer.add(InstructionRecord(ix, signers=(payer, authority), key="unverify_collection"))

    def update(composer: Composer) -> Composer:
        ix = build_update_metadata_v2_ix(
            metadata=metadata.address,
            update_authority=update_authority.pubkey(),
            data=updated if updated != current else None,
            new_update_authority=params.new_update_authority,
            primary_sale_happened=params.primary_sale_happened,
            is_mutable=params.is_mutable,
            program_id=program_id,
        )
        return composer.add(InstructionRecord(ix, signers=(update_authority,), key="update_metadata"))

    def verify(composer: Composer) -> Composer:
        authority = params.collection_authority
        ix = build_verify_collection_ix(
            metadata=metadata.address,
            collection_authority=authority.pubkey(),
            payer=payer.pubkey(),
            collection_mint=new_collection.key,
            collection_metadata=metadata_pda(new_collection.key, program_id),
            collection_master_edition=master_edition_pda(new_collection.key, program_id),
            sized=params.collection_is_sized,
            program_id=program_id,
        )
        return composer.add(InstructionRecord(ix, signers=(payer, authority), key="verify_collection"))

    # unverify has to run while the metadata still points at the old collection
    return (
        Composer.make()
        .set_fee_payer(payer)
        .when(unverify_old, unverify)
        .when(should_update, update)
        .when(verify_new, verify)
    )


def _collection_ix_args(client: "AssetClient", params: VerifyNftCollectionInput, scope: OperationScope) -> Dict[str, Any]:
    payer = scope.require_payer()
    authority = params.collection_authority or payer
    program_id = client.programs.token_metadata(scope.programs)
    record = None
    if params.is_delegated:
        record = collection_authority_record_pda(params.collection_mint, authority.pubkey(), program_id)
    return {
        "metadata": metadata_pda(params.mint, program_id),
        "collection_authority": authority.pubkey(),
        "payer": payer.pubkey(),
        "collection_mint": params.collection_mint,
        "collection_metadata": metadata_pda(params.collection_mint, program_id),
        "collection_master_edition": master_edition_pda(params.collection_mint, program_id),
        "collection_authority_record": record,
        "sized": params.is_sized_collection,
        "program_id": program_id,
    }


def verify_nft_collection_builder(
    client: "AssetClient", params: VerifyNftCollectionInput, scope: OperationScope
) -> Composer:
    payer = scope.require_payer()
    authority = params.collection_authority or payer
    ix = build_verify_collection_ix(**_collection_ix_args(client, params, scope))
    return Composer.make().set_fee_payer(payer).add(InstructionRecord(ix, signers=(payer, authority), key="verify_collection"))


def unverify_nft_collection_builder(
    client: "AssetClient", params: UnverifyNftCollectionInput, scope: OperationScope
) -> Composer:
    payer = scope.require_payer()
    authority = params.collection_authority or payer
    ix = build_unverify_collection_ix(**_collection_ix_args(client, params, scope))
    return Composer.make().set_fee_payer(payer).add(InstructionRecord(ix, signers=(payer, authority), key="unverify_collection"))


async def print_new_edition_builder(
    client: "AssetClient", params: PrintNewEditionInput, scope: OperationScope
) -> Composer:
    if params.original_supply is None:
        raise MissingInputDataError("original_supply", "Fetch the master edition first or let the handler do it.")
    payer = scope.require_payer()
    program_id = client.programs.token_metadata(scope.programs)
    new_mint_authority = params.new_mint_authority or payer
    original_owner = params.original_token_account_owner or payer
    original_token = params.original_token_account or associated_token_pda(
        params.original_mint,
        original_owner.pubkey(),
        client.programs.token(scope.programs),
        client.programs.associated_token(scope.programs),
    )
    edition = params.original_supply + 1

    token_composer = await create_token_with_mint_builder(
        client,
        CreateTokenWithMintInput(
            decimals=0,
            initial_supply=1,
            mint=params.new_mint,
            mint_authority=new_mint_authority,
            owner=params.new_owner,
        ),
        scope,
    )
    new_mint = token_composer.get_context()["mint_address"]
    new_metadata = metadata_pda(new_mint, program_id)
    new_edition = edition_pda(new_mint, program_id)
    ix = build_mint_new_edition_ix(
        new_metadata=new_metadata,
        new_edition=new_edition,
        master_edition=master_edition_pda(params.original_mint, program_id),
        new_mint=new_mint,
        edition_marker=edition_marker_pda(params.original_mint, edition, program_id),
        new_mint_authority=new_mint_authority.pubkey(),
        payer=payer.pubkey(),
        token_account_owner=original_owner.pubkey(),
        token_account=original_token,
        new_metadata_update_authority=params.new_update_authority or payer.pubkey(),
        metadata=metadata_pda(params.original_mint, program_id),
        edition=edition,
        program_id=program_id,
        token_program=client.programs.token(scope.programs),
        system_program=client.programs.system(scope.programs),
    )
    return (
        Composer.make()
        .set_fee_payer(payer)
        .add(token_composer)
        .set_context(
            metadata_address=new_metadata,
            edition_address=new_edition,
            edition_number=edition,
        )
        .add(
            InstructionRecord(ix, signers=(payer, new_mint_authority, original_owner), key="mint_new_edition")
        )
    )


def _lock_args(client: "AssetClient", params: LockNftInput, scope: OperationScope) -> Tuple[Dict[str, Any], Tuple[Keypair, ...]]:
    payer = scope.require_payer()
    program_id = client.programs.token_metadata(scope.programs)
    metadata = params.nft.metadata
    mint = metadata.mint_address
    authorization = resolve_authorization(
        client.programs, mint, params.authority, params.authorization_details, scope.programs
    )
    token = authorization.accounts.token or params.token
    if token is None and params.token_owner is not None:
        token = associated_token_pda(
            mint,
            params.token_owner,
            client.programs.token(scope.programs),
            client.programs.associated_token(scope.programs),
        )
    if token is None:
        raise MissingInputDataError("token", "Provide the token account or its owner.")
    edition = params.nft.edition.address if params.nft.is_nft else None
    token_record = token_record_pda(mint, token, program_id) if is_programmable(metadata) else None
    args = {
        "authorization": authorization,
        "token": token,
        "mint": mint,
        "metadata": metadata.address,
        "edition": edition,
        "payer": payer.pubkey(),
        "token_record": token_record,
        "program_id": program_id,
        "system_program": client.programs.system(scope.programs),
        "token_program": client.programs.token(scope.programs),
        "auth_rules_program": client.programs.token_auth_rules(scope.programs),
    }
    return args, (payer,) + authorization.signers


def lock_nft_builder(client: "AssetClient", params: LockNftInput, scope: OperationScope) -> Composer:
    args, signers = _lock_args(client, params, scope)
    return Composer.make().set_fee_payer(signers[0]).add(InstructionRecord(build_lock_ix(**args), signers=signers, key="lock"))


def unlock_nft_builder(client: "AssetClient", params: UnlockNftInput, scope: OperationScope) -> Composer:
    args, signers = _lock_args(client, params, scope)
    return Composer.make().set_fee_payer(signers[0]).add(InstructionRecord(build_unlock_ix(**args), signers=signers, key="unlock"))


async def handle_create_nft(operation: Operation, client: "AssetClient", scope: OperationScope) -> Dict[str, Any]:
    builder = await create_nft_builder(client, operation.input, scope)
    output = await send_composer(builder, client.rpc, scope)
    nft = await client.execute(find_nft_by_mint_operation(FindNftByMintInput(output["mint_address"])), scope=scope)
    logger.info("nft_created mint=%s signature=%s", output["mint_address"], output["response"].signature)
    return {**output, "nft": nft}


async def handle_find_nft_by_mint(operation: Operation, client: "AssetClient", scope: OperationScope) -> Nft:
    params: FindNftByMintInput = operation.input
    program_id = client.programs.token_metadata(scope.programs)
    metadata_account, edition_account = await client.rpc.get_multiple_accounts(
        [metadata_pda(params.mint_address, program_id), edition_pda(params.mint_address, program_id)],
        scope.commitment,
    )
    scope.throw_if_canceled()
    metadata = parse_metadata_account(metadata_account)
    edition = parse_edition_account(edition_account) if edition_account.exists else None
    if params.load_json_metadata:
        json = await client.json_loader.load_metadata(metadata.uri)
        scope.throw_if_canceled()
        metadata = replace(metadata, json=json, json_loaded=True)
    return Nft(metadata=metadata, edition=edition)


async def handle_find_nfts_by_mint_list(
    operation: Operation, client: "AssetClient", scope: OperationScope
) -> List[Optional[Metadata]]:
    params: FindNftsByMintListInput = operation.input
    program_id = client.programs.token_metadata(scope.programs)
    addresses = [metadata_pda(mint, program_id) for mint in params.mints]
    accounts = await GmaBuilder(client.rpc, addresses).get()
    scope.throw_if_canceled()
    return [parse_metadata_account(account) if account.exists else None for account in accounts]


async def _find_by_mints(client: "AssetClient", mints: List[Pubkey], scope: OperationScope) -> List[Metadata]:
    scope.throw_if_canceled()
    found = await client.execute(find_nfts_by_mint_list_operation(FindNftsByMintListInput(mints)), scope=scope)
    scope.throw_if_canceled()
    return [metadata for metadata in found if metadata is not None]


async def handle_find_nfts_by_creator(
    operation: Operation, client: "AssetClient", scope: OperationScope
) -> List[Metadata]:
    params: FindNftsByCreatorInput = operation.input
    mints = await (
        client.metadata_gpa(scope.programs)
        .where_key()
        .select_mint()
        .where_creator(params.position, params.creator)
        .get_data_as_public_keys()
    )
    return await _find_by_mints(client, mints, scope)


async def handle_find_nfts_by_update_authority(
    operation: Operation, client: "AssetClient", scope: OperationScope
) -> List[Metadata]:
    params: FindNftsByUpdateAuthorityInput = operation.input
    mints = await (
        client.metadata_gpa(scope.programs)
        .where_key()
        .select_mint()
        .where_update_authority(params.update_authority)
        .get_data_as_public_keys()
    )
    return await _find_by_mints(client, mints, scope)


async def handle_update_nft(operation: Operation, client: "AssetClient", scope: OperationScope) -> Dict[str, Any]:
    return await send_composer(update_nft_builder(client, operation.input, scope), client.rpc, scope)


async def handle_verify_nft_collection(
    operation: Operation, client: "AssetClient", scope: OperationScope
) -> Dict[str, Any]:
    return await send_composer(verify_nft_collection_builder(client, operation.input, scope), client.rpc, scope)


async def handle_unverify_nft_collection(
    operation: Operation, client: "AssetClient", scope: OperationScope
) -> Dict[str, Any]:
    return await send_composer(unverify_nft_collection_builder(client, operation.input, scope), client.rpc, scope)


async def handle_print_new_edition(operation: Operation, client: "AssetClient", scope: OperationScope) -> Dict[str, Any]:
    params: PrintNewEditionInput = operation.input
    if params.original_supply is None:
        program_id = client.programs.token_metadata(scope.programs)
        account = await client.rpc.get_account(master_edition_pda(params.original_mint, program_id), scope.commitment)
        scope.throw_if_canceled()
        params = replace(params, original_supply=parse_master_edition_account(account).supply)
    builder = await print_new_edition_builder(client, params, scope)
    return await send_composer(builder, client.rpc, scope)


async def handle_lock_nft(operation: Operation, client: "AssetClient", scope: OperationScope) -> Dict[str, Any]:
    return await send_composer(lock_nft_builder(client, operation.input, scope), client.rpc, scope)


async def handle_unlock_nft(operation: Operation, client: "AssetClient", scope: OperationScope) -> Dict[str, Any]:
    return await send_composer(unlock_nft_builder(client, operation.input, scope), client.rpc, scope)


def register_nft_operations(dispatcher: OperationDispatcher) -> None:
    dispatcher.register(create_nft_operation, handle_create_nft)
    dispatcher.register(find_nft_by_mint_operation, handle_find_nft_by_mint)
    dispatcher.register(find_nfts_by_mint_list_operation, handle_find_nfts_by_mint_list)
    dispatcher.register(find_nfts_by_creator_operation, handle_find_nfts_by_creator)
    dispatcher.register(find_nfts_by_update_authority_operation, handle_find_nfts_by_update_authority)
    dispatcher.register(update_nft_operation, handle_update_nft)
    dispatcher.register(verify_nft_collection_operation, handle_verify_nft_collection)
    dispatcher.register(unverify_nft_collection_operation, handle_unverify_nft_collection)
    dispatcher.register(print_new_edition_operation, handle_print_new_edition)
    dispatcher.register(lock_nft_operation, handle_lock_nft)
    dispatcher.register(unlock_nft_operation, handle_unlock_nft)
