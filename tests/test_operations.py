import unittest
from unittest.mock import AsyncMock, Mock

from solana.rpc.commitment import Confirmed, Finalized
from solders.keypair import Keypair

from assetforge.composer import Composer
from assetforge.errors import (
    ExpectedSignerError,
    NoInstructionsToSendError,
    OperationCanceledError,
    OperationHandlerAlreadyRegisteredError,
    OperationHandlerMissingError,
    RpcError,
)
from assetforge.operations import (
    CancellationToken,
    OperationDefaults,
    OperationDispatcher,
    resolve_scope,
    send_composer,
    use_operation,
)
from assetforge.rpc import ConfirmOptions

echo_operation = use_operation("EchoOperation")


class OperationDispatcherTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.dispatcher = OperationDispatcher()
        self.scope = resolve_scope(OperationDefaults(cluster="devnet"))

    async def test_dispatches_to_registered_handler(self) -> None:
        handler = AsyncMock(return_value="done")
        self.dispatcher.register(echo_operation, handler)
        result = await self.dispatcher.execute(echo_operation("hi"), Mock(), self.scope)
        self.assertEqual(result, "done")
        operation, _, scope = handler.await_args.args
        self.assertEqual(operation.input, "hi")
        self.assertEqual(scope.operation_key, "EchoOperation")

    async def test_missing_handler(self) -> None:
        with self.assertRaises(OperationHandlerMissingError):
            await self.dispatcher.execute(echo_operation(), Mock(), self.scope)

    def test_duplicate_registration(self) -> None:
        self.dispatcher.register(echo_operation, AsyncMock())
        with self.assertRaises(OperationHandlerAlreadyRegisteredError):
            self.dispatcher.register(echo_operation, AsyncMock())
        self.assertEqual(self.dispatcher.keys(), ("EchoOperation",))

    async def test_canceled_before_dispatch(self) -> None:
        handler = AsyncMock()
        self.dispatcher.register(echo_operation, handler)
        token = CancellationToken()
        token.cancel()
        scope = resolve_scope(OperationDefaults(cluster="devnet"), cancellation=token)
        with self.assertRaises(OperationCanceledError) as ctx:
            await self.dispatcher.execute(echo_operation(), Mock(), scope)
        self.assertNotIsInstance(ctx.exception, RpcError)
        handler.assert_not_awaited()

    async def test_cancel_between_round_trips(self) -> None:
        token = CancellationToken()

        async def handler(operation, client, scope):
            await client.first_round_trip()
            token.cancel()
            scope.throw_if_canceled()
            await client.second_round_trip()

        client = Mock(first_round_trip=AsyncMock(), second_round_trip=AsyncMock())
        self.dispatcher.register(echo_operation, handler)
        scope = resolve_scope(OperationDefaults(cluster="devnet"), cancellation=token)
        with self.assertRaises(OperationCanceledError):
            await self.dispatcher.execute(echo_operation(), client, scope)
        client.first_round_trip.assert_awaited_once()
        client.second_round_trip.assert_not_awaited()


class ResolveScopeTests(unittest.TestCase):
    def test_fills_defaults(self) -> None:
        payer = Keypair()
        scope = resolve_scope(OperationDefaults(cluster="devnet", payer=payer, commitment=Confirmed))
        self.assertIs(scope.require_payer(), payer)
        self.assertEqual(scope.commitment, Confirmed)
        self.assertEqual(scope.confirm_options.commitment, Confirmed)
        self.assertFalse(scope.is_canceled())

    def test_explicit_values_win(self) -> None:
        payer = Keypair()
        scope = resolve_scope(OperationDefaults(cluster="devnet", payer=Keypair()), payer=payer)
        self.assertIs(scope.payer, payer)

    def test_mainnet_forces_finalized(self) -> None:
        defaults = OperationDefaults(cluster="mainnet-beta", confirm_options=ConfirmOptions(commitment=Confirmed))
        self.assertEqual(resolve_scope(defaults).confirm_options.commitment, Finalized)
        explicit = resolve_scope(defaults, confirm_options=ConfirmOptions(commitment=Confirmed))
        self.assertEqual(explicit.confirm_options.commitment, Finalized)

    def test_missing_payer(self) -> None:
        with self.assertRaises(ExpectedSignerError):
            resolve_scope(OperationDefaults(cluster="devnet")).require_payer()


class SendComposerTests(unittest.IsolatedAsyncioTestCase):
    async def test_empty_composer_is_an_error(self) -> None:
        rpc = Mock(send_and_confirm_transaction=AsyncMock())
        scope = resolve_scope(OperationDefaults(cluster="devnet"))
        with self.assertRaises(NoInstructionsToSendError):
            await send_composer(Composer.make(), rpc, scope)
        rpc.send_and_confirm_transaction.assert_not_awaited()


if __name__ == "__main__":
    unittest.main()
