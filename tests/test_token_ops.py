import unittest
from unittest.mock import AsyncMock, Mock

from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from assetforge.client import AssetClient
from assetforge.pdas import associated_token_pda
from assetforge.rpc import UnparsedAccount
from assetforge.token_ops import (
    ApproveTokenDelegateAuthorityInput,
    CreateTokenWithMintInput,
    MintTokensInput,
    SendTokensInput,
    approve_token_delegate_authority_builder,
    create_token_with_mint_builder,
    mint_tokens_operation,
    send_tokens_builder,
)


def make_client(payer: Keypair) -> AssetClient:
    connection = Mock()
    connection.get_minimum_balance_for_rent_exemption = AsyncMock(return_value=Mock(value=1461600))
    connection.get_latest_blockhash = AsyncMock(
        return_value=Mock(value=Mock(blockhash=Hash.new_unique(), last_valid_block_height=50))
    )
    connection.send_raw_transaction = AsyncMock(return_value=Mock(value=Signature.default()))
    connection.confirm_transaction = AsyncMock(return_value=Mock(value=[Mock(err=None)]))
    return AssetClient(connection, payer=payer)


def record_keys(composer) -> list:
    return [record.key for record in composer.get_instructions_with_signers()]


class TokenBuilderTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.payer = Keypair()
        self.client = make_client(self.payer)
        self.scope = self.client.scope()

    async def test_create_token_with_mint_skips_minting_without_supply(self) -> None:
        builder = await create_token_with_mint_builder(self.client, CreateTokenWithMintInput(), self.scope)
        self.assertEqual(record_keys(builder), ["create_account", "initialize_mint", "create_associated_token_account"])
        context = builder.get_context()
        self.assertEqual(context["token_address"], associated_token_pda(context["mint_address"], self.payer.pubkey()))

    async def test_create_token_with_mint_and_supply(self) -> None:
        builder = await create_token_with_mint_builder(
            self.client, CreateTokenWithMintInput(initial_supply=1000), self.scope
        )
        self.assertEqual(record_keys(builder)[-1], "mint_tokens")
        self.client.connection.get_minimum_balance_for_rent_exemption.assert_awaited_once()

    def test_send_tokens_creates_destination_when_missing(self) -> None:
        mint = Pubkey.new_unique()
        params = SendTokensInput(mint=mint, amount=5, to_owner=Pubkey.new_unique(), to_token_exists=False)
        self.assertEqual(
            record_keys(send_tokens_builder(self.client, params, self.scope)),
            ["create_associated_token_account", "transfer_tokens"],
        )
        existing = SendTokensInput(mint=mint, amount=5, to_owner=Pubkey.new_unique(), to_token_exists=True)
        self.assertEqual(record_keys(send_tokens_builder(self.client, existing, self.scope)), ["transfer_tokens"])

    def test_approve_delegate_signed_by_owner(self) -> None:
        owner = Keypair()
        builder = approve_token_delegate_authority_builder(
            self.client,
            ApproveTokenDelegateAuthorityInput(mint=Pubkey.new_unique(), delegate=Pubkey.new_unique(), owner=owner),
            self.scope,
        )
        self.assertEqual([s.pubkey() for s in builder.get_signers()], [self.payer.pubkey(), owner.pubkey()])

    async def test_mint_tokens_looks_up_destination(self) -> None:
        mint = Pubkey.new_unique()
        self.client.rpc.get_account = AsyncMock(
            return_value=UnparsedAccount(address=associated_token_pda(mint, self.payer.pubkey()), exists=True)
        )
        output = await self.client.execute(mint_tokens_operation(MintTokensInput(mint=mint, amount=10)))
        self.client.rpc.get_account.assert_awaited_once()
        self.assertEqual(output["token_address"], associated_token_pda(mint, self.payer.pubkey()))
        self.client.connection.send_raw_transaction.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
