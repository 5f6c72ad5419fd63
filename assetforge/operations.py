from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple

from solana.rpc.commitment import Commitment
from solders.keypair import Keypair

from assetforge.errors import (
    ExpectedSignerError,
    NoInstructionsToSendError,
    OperationCanceledError,
    OperationHandlerAlreadyRegisteredError,
    OperationHandlerMissingError,
)
from assetforge.composer import Composer
from assetforge.programs import Program
from assetforge.rpc import ConfirmOptions, RpcClient, make_confirm_options_finalized_on_mainnet

if TYPE_CHECKING:
    from assetforge.client import AssetClient

logger = logging.getLogger("assetforge")


@dataclass(frozen=True)
class Operation:
    key: str
    input: Any = None


class OperationConstructor:
    def __init__(self, key: str) -> None:
        self.key = key

    def __call__(self, input: Any = None) -> Operation:
        return Operation(self.key, input)

    def __repr__(self) -> str:
        return f"OperationConstructor({self.key!r})"


def use_operation(key: str) -> OperationConstructor:
    return OperationConstructor(key)


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a running handler."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_canceled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class OperationDefaults:
    cluster: str
    payer: Optional[Keypair] = None
    commitment: Optional[Commitment] = None
    confirm_options: ConfirmOptions = ConfirmOptions()


@dataclass(frozen=True)
class OperationScope:
    payer: Optional[Keypair]
    commitment: Optional[Commitment]
    confirm_options: ConfirmOptions
    programs: Tuple[Program, ...]
    cancellation: CancellationToken
    operation_key: Optional[str] = None

    def is_canceled(self) -> bool:
        return self.cancellation.is_canceled

    def throw_if_canceled(self) -> None:
        if self.cancellation.is_canceled:
            logger.info("operation_canceled key=%s", self.operation_key)
            raise OperationCanceledError(self.operation_key)

    def require_payer(self) -> Keypair:
        if self.payer is None:
            raise ExpectedSignerError("payer")
        return self.payer


def resolve_scope(
    defaults: OperationDefaults,
    payer: Optional[Keypair] = None,
    commitment: Optional[Commitment] = None,
    confirm_options: Optional[ConfirmOptions] = None,
    programs: Sequence[Program] = (),
    cancellation: Optional[CancellationToken] = None,
) -> OperationScope:
    """Fill every unset option from the client defaults, once, at the call boundary."""
    commitment = commitment or defaults.commitment
    if confirm_options is None:
        confirm_options = defaults.confirm_options
        if commitment is not None and confirm_options.commitment is None:
            confirm_options = replace(confirm_options, commitment=commitment)
    return OperationScope(
        payer=payer or defaults.payer,
        commitment=commitment,
        confirm_options=make_confirm_options_finalized_on_mainnet(defaults.cluster, confirm_options),
        programs=tuple(programs),
        cancellation=cancellation or CancellationToken(),
    )


OperationHandler = Callable[[Operation, "AssetClient", OperationScope], Awaitable[Any]]


class OperationDispatcher:
    def __init__(self) -> None:
        self._handlers: Dict[str, OperationHandler] = {}

    def register(self, constructor: OperationConstructor, handler: OperationHandler) -> None:
        if constructor.key in self._handlers:
            raise OperationHandlerAlreadyRegisteredError(constructor.key)
        self._handlers[constructor.key] = handler

    def get(self, operation: Operation) -> OperationHandler:
        handler = self._handlers.get(operation.key)
        if handler is None:
            raise OperationHandlerMissingError(operation.key)
        return handler

    def keys(self) -> Tuple[str, ...]:
        return tuple(self._handlers)

    async def execute(self, operation: Operation, client: "AssetClient", scope: OperationScope) -> Any:
        handler = self.get(operation)
        scope = replace(scope, operation_key=operation.key)
        scope.throw_if_canceled()
        logger.debug("operation_started key=%s", operation.key)
        result = await handler(operation, client, scope)
        logger.debug("operation_finished key=%s", operation.key)
        return result


async def send_composer(composer: Composer, rpc: RpcClient, scope: OperationScope) -> Dict[str, Any]:
    if composer.is_empty():
        raise NoInstructionsToSendError(scope.operation_key or "unknown")
    scope.throw_if_canceled()
    output = await composer.send_and_confirm(rpc, scope.confirm_options)
    scope.throw_if_canceled()
    return output
