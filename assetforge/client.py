from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from assetforge.gpa import MetadataGpaBuilder
from assetforge.nft_ops import (
    CreateNftInput,
    FindNftByMintInput,
    FindNftsByCreatorInput,
    FindNftsByMintListInput,
    FindNftsByUpdateAuthorityInput,
    LockNftInput,
    PrintNewEditionInput,
    UnlockNftInput,
    UnverifyNftCollectionInput,
    UpdateNftInput,
    VerifyNftCollectionInput,
    create_nft_operation,
    find_nft_by_mint_operation,
    find_nfts_by_creator_operation,
    find_nfts_by_mint_list_operation,
    find_nfts_by_update_authority_operation,
    lock_nft_operation,
    print_new_edition_operation,
    register_nft_operations,
    unlock_nft_operation,
    unverify_nft_collection_operation,
    update_nft_operation,
    verify_nft_collection_operation,
)
from assetforge.operations import (
    Operation,
    OperationDefaults,
    OperationDispatcher,
    OperationScope,
    resolve_scope,
)
from assetforge.programs import DEFAULT_PROGRAMS, Program, ProgramRegistry
from assetforge.rpc import ConfirmOptions, RpcClient
from assetforge.settings import Settings, configure_logging, load_keypair
from assetforge.storage import JsonLoader
from assetforge.token_ops import (
    ApproveTokenDelegateAuthorityInput,
    CreateMintInput,
    CreateTokenInput,
    CreateTokenWithMintInput,
    MintTokensInput,
    RevokeTokenDelegateAuthorityInput,
    SendTokensInput,
    approve_token_delegate_authority_operation,
    create_mint_operation,
    create_token_operation,
    create_token_with_mint_operation,
    mint_tokens_operation,
    register_token_operations,
    revoke_token_delegate_authority_operation,
    send_tokens_operation,
)

logger = logging.getLogger("assetforge")


class AssetClient:
    """Entry point: owns the connection, the program registry and the operation handlers.

    Everything here is fixed at construction; operations read it through
    a per-call scope built by `scope()`.
    """

    def __init__(
        self,
        connection: AsyncClient,
        cluster: str = "devnet",
        payer: Optional[Keypair] = None,
        programs: Sequence[Program] = DEFAULT_PROGRAMS,
        commitment: Optional[Commitment] = None,
        confirm_options: Optional[ConfirmOptions] = None,
        json_loader: Optional[JsonLoader] = None,
    ) -> None:
        self.connection = connection
        self.programs = ProgramRegistry(cluster, programs)
        self.rpc = RpcClient(connection, self.programs, default_fee_payer=payer)
        self.defaults = OperationDefaults(
            cluster=cluster,
            payer=payer,
            commitment=commitment,
            confirm_options=confirm_options or ConfirmOptions(commitment=commitment),
        )
        self.json_loader = json_loader or JsonLoader()
        self.dispatcher = OperationDispatcher()
        register_token_operations(self.dispatcher)
        register_nft_operations(self.dispatcher)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "AssetClient":
        settings = settings or Settings()
        configure_logging(settings.log_level)
        payer = load_keypair(settings.payer_keypair_path) if settings.payer_keypair_path else None
        programs = tuple(DEFAULT_PROGRAMS)
        if settings.token_metadata_program_id:
            default = ProgramRegistry(settings.cluster, programs).get("TokenMetadataProgram")
            override = Program(
                name=default.name,
                address=Pubkey.from_string(settings.token_metadata_program_id),
                error_codes=default.error_codes,
            )
            programs = programs + (override,)
        commitment = Commitment(settings.commitment)
        logger.info("client_configured cluster=%s rpc_url=%s payer=%s", settings.cluster, settings.rpc_url, payer.pubkey() if payer else None)
        return cls(
            AsyncClient(settings.rpc_url, commitment=commitment),
            cluster=settings.cluster,
            payer=payer,
            programs=programs,
            commitment=commitment,
            confirm_options=ConfirmOptions(
                commitment=commitment,
                skip_preflight=settings.skip_preflight,
                max_retries=settings.max_retries,
            ),
            json_loader=JsonLoader(timeout=settings.json_timeout_seconds),
        )

    @property
    def cluster(self) -> str:
        return self.programs.cluster

    def scope(self, **options: Any) -> OperationScope:
        return resolve_scope(self.defaults, **options)

    async def execute(self, operation: Operation, scope: Optional[OperationScope] = None, **options: Any) -> Any:
        return await self.dispatcher.execute(operation, self, scope or self.scope(**options))

    def metadata_gpa(self, programs: Sequence[Program] = ()) -> MetadataGpaBuilder:
        return MetadataGpaBuilder(self.rpc, self.programs.token_metadata(programs))

    def nfts(self) -> "NftClient":
        return NftClient(self)

    def tokens(self) -> "TokenClient":
        return TokenClient(self)

    async def close(self) -> None:
        await self.connection.close()

    async def __aenter__(self) -> "AssetClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class NftClient:
    def __init__(self, client: AssetClient) -> None:
        self.client = client

    async def create(self, params: CreateNftInput, **options: Any) -> Any:
        return await self.client.execute(create_nft_operation(params), **options)

    async def find_by_mint(self, mint_address: Pubkey, load_json_metadata: bool = True, **options: Any) -> Any:
        return await self.client.execute(
            find_nft_by_mint_operation(FindNftByMintInput(mint_address, load_json_metadata)), **options
        )

    async def find_all_by_mint_list(self, mints: Sequence[Pubkey], **options: Any) -> Any:
        return await self.client.execute(find_nfts_by_mint_list_operation(FindNftsByMintListInput(mints)), **options)

    async def find_all_by_creator(self, creator: Pubkey, position: int = 1, **options: Any) -> Any:
        return await self.client.execute(
            find_nfts_by_creator_operation(FindNftsByCreatorInput(creator, position)), **options
        )

    async def find_all_by_update_authority(self, update_authority: Pubkey, **options: Any) -> Any:
        return await self.client.execute(
            find_nfts_by_update_authority_operation(FindNftsByUpdateAuthorityInput(update_authority)), **options
        )

    async def update(self, params: UpdateNftInput, **options: Any) -> Any:
        return await self.client.execute(update_nft_operation(params), **options)

    async def verify_collection(self, params: VerifyNftCollectionInput, **options: Any) -> Any:
        return await self.client.execute(verify_nft_collection_operation(params), **options)

    async def unverify_collection(self, params: UnverifyNftCollectionInput, **options: Any) -> Any:
        return await self.client.execute(unverify_nft_collection_operation(params), **options)

    async def print_new_edition(self, params: PrintNewEditionInput, **options: Any) -> Any:
        return await self.client.execute(print_new_edition_operation(params), **options)

    async def lock(self, params: LockNftInput, **options: Any) -> Any:
        return await self.client.execute(lock_nft_operation(params), **options)

    async def unlock(self, params: UnlockNftInput, **options: Any) -> Any:
        return await self.client.execute(unlock_nft_operation(params), **options)


class TokenClient:
    def __init__(self, client: AssetClient) -> None:
        self.client = client

    async def create_mint(self, params: CreateMintInput, **options: Any) -> Any:
        return await self.client.execute(create_mint_operation(params), **options)

    async def create_token(self, params: CreateTokenInput, **options: Any) -> Any:
        return await self.client.execute(create_token_operation(params), **options)

    async def create_token_with_mint(self, params: CreateTokenWithMintInput, **options: Any) -> Any:
        return await self.client.execute(create_token_with_mint_operation(params), **options)

    async def mint(self, params: MintTokensInput, **options: Any) -> Any:
        return await self.client.execute(mint_tokens_operation(params), **options)

    async def send(self, params: SendTokensInput, **options: Any) -> Any:
        return await self.client.execute(send_tokens_operation(params), **options)

    async def approve_delegate_authority(self, params: ApproveTokenDelegateAuthorityInput, **options: Any) -> Any:
        return await self.client.execute(approve_token_delegate_authority_operation(params), **options)

    async def revoke_delegate_authority(self, params: RevokeTokenDelegateAuthorityInput, **options: Any) -> Any:
        return await self.client.execute(revoke_token_delegate_authority_operation(params), **options)
