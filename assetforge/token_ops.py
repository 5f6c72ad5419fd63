from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account
from spl.token._layouts import MINT_LAYOUT
from spl.token.instructions import (
    ApproveParams,
    InitializeMintParams,
    MintToParams,
    RevokeParams,
    TransferParams,
    approve,
    initialize_mint,
    mint_to,
    revoke,
    transfer,
)

from assetforge.composer import Composer, InstructionRecord
from assetforge.operations import Operation, OperationDispatcher, OperationScope, send_composer, use_operation
from assetforge.pdas import associated_token_pda
from assetforge.programs import SYSVAR_RENT_PUBKEY

if TYPE_CHECKING:
    from assetforge.client import AssetClient

create_mint_operation = use_operation("CreateMintOperation")
create_token_operation = use_operation("CreateTokenOperation")
create_token_with_mint_operation = use_operation("CreateTokenWithMintOperation")
mint_tokens_operation = use_operation("MintTokensOperation")
send_tokens_operation = use_operation("SendTokensOperation")
approve_token_delegate_authority_operation = use_operation("ApproveTokenDelegateAuthorityOperation")
revoke_token_delegate_authority_operation = use_operation("RevokeTokenDelegateAuthorityOperation")


@dataclass(frozen=True)
class CreateMintInput:
    decimals: int = 0
    mint: Optional[Keypair] = None
    mint_authority: Optional[Pubkey] = None
    freeze_authority: Optional[Pubkey] = None  # defaults to the mint authority


@dataclass(frozen=True)
class CreateTokenInput:
    mint: Pubkey
    owner: Optional[Pubkey] = None


@dataclass(frozen=True)
class CreateTokenWithMintInput:
    decimals: int = 0
    initial_supply: int = 0
    mint: Optional[Keypair] = None
    mint_authority: Optional[Keypair] = None
    freeze_authority: Optional[Pubkey] = None
    owner: Optional[Pubkey] = None


@dataclass(frozen=True)
class MintTokensInput:
    mint: Pubkey
    amount: int
    to_owner: Optional[Pubkey] = None
    to_token: Optional[Pubkey] = None
    mint_authority: Optional[Keypair] = None
    to_token_exists: Optional[bool] = None  # None: look it up before building


@dataclass(frozen=True)
class SendTokensInput:
    mint: Pubkey
    amount: int
    to_owner: Pubkey
    to_token: Optional[Pubkey] = None
    from_owner: Optional[Keypair] = None
    from_token: Optional[Pubkey] = None
    to_token_exists: Optional[bool] = None


@dataclass(frozen=True)
class ApproveTokenDelegateAuthorityInput:
    mint: Pubkey
    delegate: Pubkey
    amount: int = 1
    owner: Optional[Keypair] = None
    token: Optional[Pubkey] = None


@dataclass(frozen=True)
class RevokeTokenDelegateAuthorityInput:
    mint: Pubkey
    owner: Optional[Keypair] = None
    token: Optional[Pubkey] = None


def token_address(client: "AssetClient", mint: Pubkey, owner: Pubkey, scope: OperationScope) -> Pubkey:
    return associated_token_pda(
        mint, owner, client.programs.token(scope.programs), client.programs.associated_token(scope.programs)
    )


def build_create_ata_ix(
    payer: Pubkey, owner: Pubkey, mint: Pubkey, ata: Pubkey, token_program: Pubkey, associated_program: Pubkey, system_program: Pubkey
) -> Instruction:
    metas = [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=ata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=system_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=token_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSVAR_RENT_PUBKEY, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id=associated_program, data=bytes([0]), accounts=metas)


async def create_mint_builder(client: "AssetClient", params: CreateMintInput, scope: OperationScope) -> Composer:
    payer = scope.require_payer()
    mint = params.mint or Keypair()
    mint_authority = params.mint_authority or payer.pubkey()
    token_program = client.programs.token(scope.programs)
    space = MINT_LAYOUT.sizeof()
    lamports = await client.rpc.get_rent(space, scope.commitment)
    create_ix = create_account(
        CreateAccountParams(
            from_pubkey=payer.pubkey(),
            to_pubkey=mint.pubkey(),
            lamports=lamports,
            space=space,
            owner=token_program,
        )
    )
    init_ix = initialize_mint(
        InitializeMintParams(
            decimals=params.decimals,
            program_id=token_program,
            mint=mint.pubkey(),
            mint_authority=mint_authority,
            freeze_authority=params.freeze_authority or mint_authority,
        )
    )
    return (
        Composer.make()
        .set_fee_payer(payer)
        .set_context(mint_signer=mint, mint_address=mint.pubkey())
        .add(
            InstructionRecord(create_ix, signers=(payer, mint), key="create_account"),
            InstructionRecord(init_ix, key="initialize_mint"),
        )
    )


def create_token_builder(client: "AssetClient", params: CreateTokenInput, scope: OperationScope) -> Composer:
    payer = scope.require_payer()
    owner = params.owner or payer.pubkey()
    ata = token_address(client, params.mint, owner, scope)
    ix = build_create_ata_ix(
        payer.pubkey(),
        owner,
        params.mint,
        ata,
        client.programs.token(scope.programs),
        client.programs.associated_token(scope.programs),
        client.programs.system(scope.programs),
    )
    return (
        Composer.make()
        .set_fee_payer(payer)
        .set_context(token_address=ata)
        .add(InstructionRecord(ix, signers=(payer,), key="create_associated_token_account"))
    )


def mint_tokens_builder(client: "AssetClient", params: MintTokensInput, scope: OperationScope) -> Composer:
    payer = scope.require_payer()
    authority = params.mint_authority or payer
    owner = params.to_owner or payer.pubkey()
    destination = params.to_token or token_address(client, params.mint, owner, scope)
    ix = mint_to(
        MintToParams(
            program_id=client.programs.token(scope.programs),
            mint=params.mint,
            dest=destination,
            mint_authority=authority.pubkey(),
            amount=params.amount,
            signers=[],
        )
    )
    return (
        Composer.make()
        .set_fee_payer(payer)
        .set_context(token_address=destination)
        .unless(
            params.to_token_exists,
            lambda c: c.add(create_token_builder(client, CreateTokenInput(mint=params.mint, owner=owner), scope)),
        )
        .add(InstructionRecord(ix, signers=(authority,), key="mint_tokens"))
    )


async def create_token_with_mint_builder(
    client: "AssetClient", params: CreateTokenWithMintInput, scope: OperationScope
) -> Composer:
    payer = scope.require_payer()
    mint_authority = params.mint_authority or payer
    mint_composer = await create_mint_builder(
        client,
        CreateMintInput(
            decimals=params.decimals,
            mint=params.mint,
            mint_authority=mint_authority.pubkey(),
            freeze_authority=params.freeze_authority,
        ),
        scope,
    )
    mint_address = mint_composer.get_context()["mint_address"]
    token_composer = create_token_builder(client, CreateTokenInput(mint=mint_address, owner=params.owner), scope)
    destination = token_composer.get_context()["token_address"]
    supply = MintTokensInput(
        mint=mint_address,
        amount=params.initial_supply,
        to_token=destination,
        mint_authority=mint_authority,
        to_token_exists=True,
    )
    return (
        Composer.make()
        .set_fee_payer(payer)
        .add(mint_composer, token_composer)
        .when(params.initial_supply > 0, lambda c: c.add(mint_tokens_builder(client, supply, scope)))
    )


def send_tokens_builder(client: "AssetClient", params: SendTokensInput, scope: OperationScope) -> Composer:
    payer = scope.require_payer()
    from_owner = params.from_owner or payer
    source = params.from_token or token_address(client, params.mint, from_owner.pubkey(), scope)
    destination = params.to_token or token_address(client, params.mint, params.to_owner, scope)
    ix = transfer(
        TransferParams(
            program_id=client.programs.token(scope.programs),
            source=source,
            dest=destination,
            owner=from_owner.pubkey(),
            amount=params.amount,
            signers=[],
        )
    )
    return (
        Composer.make()
        .set_fee_payer(payer)
        .set_context(token_address=destination)
        .unless(
            params.to_token_exists,
            lambda c: c.add(create_token_builder(client, CreateTokenInput(mint=params.mint, owner=params.to_owner), scope)),
        )
        .add(InstructionRecord(ix, signers=(from_owner,), key="transfer_tokens"))
    )


def approve_token_delegate_authority_builder(
    client: "AssetClient", params: ApproveTokenDelegateAuthorityInput, scope: OperationScope
) -> Composer:
    payer = scope.require_payer()
    owner = params.owner or payer
    token = params.token or token_address(client, params.mint, owner.pubkey(), scope)
    ix = approve(
        ApproveParams(
            program_id=client.programs.token(scope.programs),
            source=token,
            delegate=params.delegate,
            owner=owner.pubkey(),
            amount=params.amount,
            signers=[],
        )
    )
    return Composer.make().set_fee_payer(payer).add(InstructionRecord(ix, signers=(owner,), key="approve_delegate_authority"))


def revoke_token_delegate_authority_builder(
    client: "AssetClient", params: RevokeTokenDelegateAuthorityInput, scope: OperationScope
) -> Composer:
    payer = scope.require_payer()
    owner = params.owner or payer
    token = params.token or token_address(client, params.mint, owner.pubkey(), scope)
    ix = revoke(
        RevokeParams(program_id=client.programs.token(scope.programs), account=token, owner=owner.pubkey(), signers=[])
    )
    return Composer.make().set_fee_payer(payer).add(InstructionRecord(ix, signers=(owner,), key="revoke_delegate_authority"))


async def token_account_exists(client: "AssetClient", address: Optional[Pubkey], scope: OperationScope) -> bool:
    if address is None:
        return False
    account = await client.rpc.get_account(address, scope.commitment)
    scope.throw_if_canceled()
    return account.exists


async def handle_create_mint(operation: Operation, client: "AssetClient", scope: OperationScope) -> Dict[str, Any]:
    builder = await create_mint_builder(client, operation.input, scope)
    return await send_composer(builder, client.rpc, scope)


async def handle_create_token(operation: Operation, client: "AssetClient", scope: OperationScope) -> Dict[str, Any]:
    return await send_composer(create_token_builder(client, operation.input, scope), client.rpc, scope)


async def handle_create_token_with_mint(
    operation: Operation, client: "AssetClient", scope: OperationScope
) -> Dict[str, Any]:
    builder = await create_token_with_mint_builder(client, operation.input, scope)
    return await send_composer(builder, client.rpc, scope)


async def handle_mint_tokens(operation: Operation, client: "AssetClient", scope: OperationScope) -> Dict[str, Any]:
    params: MintTokensInput = operation.input
    if params.to_token_exists is None:
        payer = scope.require_payer()
        destination = params.to_token or token_address(client, params.mint, params.to_owner or payer.pubkey(), scope)
        exists = await token_account_exists(client, destination, scope)
        params = MintTokensInput(
            mint=params.mint,
            amount=params.amount,
            to_owner=params.to_owner,
            to_token=destination,
            mint_authority=params.mint_authority,
            to_token_exists=exists,
        )
    return await send_composer(mint_tokens_builder(client, params, scope), client.rpc, scope)


async def handle_send_tokens(operation: Operation, client: "AssetClient", scope: OperationScope) -> Dict[str, Any]:
    params: SendTokensInput = operation.input
    if params.to_token_exists is None:
        destination = params.to_token or token_address(client, params.mint, params.to_owner, scope)
        exists = await token_account_exists(client, destination, scope)
        params = SendTokensInput(
            mint=params.mint,
            amount=params.amount,
            to_owner=params.to_owner,
            to_token=destination,
            from_owner=params.from_owner,
            from_token=params.from_token,
            to_token_exists=exists,
        )
    return await send_composer(send_tokens_builder(client, params, scope), client.rpc, scope)


async def handle_approve_token_delegate_authority(
    operation: Operation, client: "AssetClient", scope: OperationScope
) -> Dict[str, Any]:
    return await send_composer(
        approve_token_delegate_authority_builder(client, operation.input, scope), client.rpc, scope
    )


async def handle_revoke_token_delegate_authority(
    operation: Operation, client: "AssetClient", scope: OperationScope
) -> Dict[str, Any]:
    return await send_composer(revoke_token_delegate_authority_builder(client, operation.input, scope), client.rpc, scope)


def register_token_operations(dispatcher: OperationDispatcher) -> None:
    dispatcher.register(create_mint_operation, handle_create_mint)
    dispatcher.register(create_token_operation, handle_create_token)
    dispatcher.register(create_token_with_mint_operation, handle_create_token_with_mint)
    dispatcher.register(mint_tokens_operation, handle_mint_tokens)
    dispatcher.register(send_tokens_operation, handle_send_tokens)
    dispatcher.register(approve_token_delegate_authority_operation, handle_approve_token_delegate_authority)
    dispatcher.register(revoke_token_delegate_authority_operation, handle_revoke_token_delegate_authority)
