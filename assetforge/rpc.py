from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, List, Optional, Sequence, Tuple

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed, Finalized
from solana.rpc.types import DataSliceOpts, MemcmpOpts, TxOpts
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from assetforge.composer import Composer
from assetforge.errors import (
    AssetForgeError,
    ExpectedSignerError,
    FailedToConfirmTransactionError,
    FailedToConfirmTransactionWithResponseError,
    FailedToSendTransactionError,
    NoInstructionsToSendError,
    ParsedProgramError,
    UnknownProgramError,
)
from assetforge.programs import Program, ProgramRegistry

logger = logging.getLogger("assetforge")

INSTRUCTION_ERROR_PATTERN = re.compile(r"Error processing Instruction (\d+):")


@dataclass(frozen=True)
class ConfirmOptions:
    commitment: Optional[Commitment] = None
    preflight_commitment: Optional[Commitment] = None
    skip_preflight: bool = False
    max_retries: Optional[int] = None

    def to_tx_opts(self) -> TxOpts:
        return TxOpts(
            skip_confirmation=True,
            skip_preflight=self.skip_preflight,
            preflight_commitment=self.preflight_commitment or self.commitment or Confirmed,
            max_retries=self.max_retries,
        )


def make_confirm_options_finalized_on_mainnet(cluster: str, options: Optional[ConfirmOptions] = None) -> ConfirmOptions:
    options = options or ConfirmOptions()
    if cluster == "mainnet-beta":
        return replace(options, commitment=Finalized)
    return options


@dataclass(frozen=True)
class AccountFilter:
    byte_offset: int
    expected_bytes: bytes

    def matches(self, data: bytes) -> bool:
        end = self.byte_offset + len(self.expected_bytes)
        return len(data) >= end and data[self.byte_offset : end] == self.expected_bytes


@dataclass(frozen=True)
class UnparsedAccount:
    address: Pubkey
    data: bytes = b""
    owner: Optional[Pubkey] = None
    lamports: int = 0
    executable: bool = False
    exists: bool = True


@dataclass(frozen=True)
class LatestBlockhash:
    blockhash: Hash
    last_valid_block_height: int


@dataclass(frozen=True)
class SendAndConfirmResponse:
    signature: Signature
    confirm_response: Any
    blockhash: Hash
    last_valid_block_height: int


def to_unparsed_account(address: Pubkey, account: Any) -> UnparsedAccount:
    if account is None:
        return UnparsedAccount(address=address, exists=False)
    return UnparsedAccount(
        address=address,
        data=bytes(account.data),
        owner=account.owner,
        lamports=account.lamports,
        executable=account.executable,
    )


def error_details(exc: BaseException) -> Tuple[str, List[str]]:
    payload = exc.args[0] if exc.args else None
    message = getattr(payload, "message", None) or str(exc)
    logs = getattr(getattr(payload, "data", None), "logs", None) or []
    return message, list(logs)


class RpcClient:
    """Thin async layer over solana-py that speaks in composers and plain accounts."""

    def __init__(
        self,
        connection: AsyncClient,
        programs: ProgramRegistry,
        default_fee_payer: Optional[Keypair] = None,
    ) -> None:
        self.connection = connection
        self.programs = programs
        self.default_fee_payer = default_fee_payer

    @property
    def cluster(self) -> str:
        return self.programs.cluster

    async def get_account(self, address: Pubkey, commitment: Optional[Commitment] = None) -> UnparsedAccount:
        resp = await self.connection.get_account_info(address, commitment=commitment, encoding="base64")
        return to_unparsed_account(address, resp.value)

    async def get_multiple_accounts(
        self, addresses: Sequence[Pubkey], commitment: Optional[Commitment] = None
    ) -> List[UnparsedAccount]:
        if not addresses:
            return []
        resp = await self.connection.get_multiple_accounts(list(addresses), commitment=commitment, encoding="base64")
        return [to_unparsed_account(address, account) for address, account in zip(addresses, resp.value)]

    async def get_program_accounts(
        self,
        program_id: Pubkey,
        filters: Sequence[AccountFilter] = (),
        data_size: Optional[int] = None,
        data_slice: Optional[Tuple[int, int]] = None,
        commitment: Optional[Commitment] = None,
    ) -> List[UnparsedAccount]:
        rpc_filters: List[Any] = [MemcmpOpts(offset=f.byte_offset, bytes=f.expected_bytes) for f in filters]
        if data_size is not None:
            rpc_filters.append(data_size)
        slice_opts = DataSliceOpts(offset=data_slice[0], length=data_slice[1]) if data_slice else None
        logger.debug(
            "program_accounts_scan program=%s filters=%s data_size=%s slice=%s",
            program_id,
            len(filters),
            data_size,
            data_slice,
        )
        resp = await self.connection.get_program_accounts(
            program_id,
            commitment=commitment,
            encoding="base64",
            data_slice=slice_opts,
            filters=rpc_filters or None,
        )
        return [to_unparsed_account(keyed.pubkey, keyed.account) for keyed in resp.value or []]

    async def get_rent(self, space: int, commitment: Optional[Commitment] = None) -> int:
        resp = await self.connection.get_minimum_balance_for_rent_exemption(space, commitment=commitment)
        return resp.value

    async def get_latest_blockhash(self, commitment: Optional[Commitment] = None) -> LatestBlockhash:
        resp = await self.connection.get_latest_blockhash(commitment=commitment)
        return LatestBlockhash(resp.value.blockhash, resp.value.last_valid_block_height)

    def prepare_transaction(self, composer: Composer, blockhash: Hash) -> VersionedTransaction:
        if composer.fee_payer is None:
            if self.default_fee_payer is None:
                raise ExpectedSignerError("fee_payer")
            composer = composer.set_fee_payer(self.default_fee_payer)
        return composer.to_transaction(blockhash)

    def parse_program_error(
        self, exc: BaseException, instructions: Sequence[Instruction], overrides: Sequence[Program] = ()
    ) -> AssetForgeError:
        message, logs = error_details(exc)
        match = INSTRUCTION_ERROR_PATTERN.search(message)
        if not match:
            return FailedToSendTransactionError(exc, logs)
        index = int(match.group(1))
        if index >= len(instructions):
            return FailedToSendTransactionError(exc, logs)
        program = self.programs.find(instructions[index].program_id, overrides)
        if program is None:
            return FailedToSendTransactionError(exc, logs)
        resolved = program.resolve_error(message)
        if resolved is None:
            return UnknownProgramError(program.name, exc, logs)
        code, name = resolved
        return ParsedProgramError(program.name, code, name, exc, logs)

    async def send_transaction(
        self,
        transaction: VersionedTransaction,
        confirm_options: Optional[ConfirmOptions] = None,
        instructions: Sequence[Instruction] = (),
    ) -> Signature:
        options = confirm_options or ConfirmOptions()
        try:
            resp = await self.connection.send_raw_transaction(bytes(transaction), opts=options.to_tx_opts())
        except Exception as exc:  # noqa: BLE001
            error = self.parse_program_error(exc, instructions)
            logger.error("transaction_send_failed error_key=%s error=%s", error.key, exc)
            raise error from exc
        return resp.value

    async def confirm_transaction(
        self,
        signature: Signature,
        commitment: Optional[Commitment] = None,
        last_valid_block_height: Optional[int] = None,
    ) -> Any:
        try:
            resp = await self.connection.confirm_transaction(
                signature, commitment, last_valid_block_height=last_valid_block_height
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("transaction_confirm_failed signature=%s error=%s", signature, exc)
            raise FailedToConfirmTransactionError(exc) from exc
        status = resp.value[0] if resp.value else None
        if status is not None and status.err is not None:
            logger.error("transaction_confirm_failed signature=%s err=%s", signature, status.err)
            raise FailedToConfirmTransactionWithResponseError(signature, status.err)
        return resp

    async def send_and_confirm_transaction(
        self, composer: Composer, confirm_options: Optional[ConfirmOptions] = None
    ) -> SendAndConfirmResponse:
        if composer.is_empty():
            raise NoInstructionsToSendError("send_and_confirm_transaction")
        options = confirm_options or ConfirmOptions()
        latest = await self.get_latest_blockhash(options.preflight_commitment or options.commitment)
        transaction = self.prepare_transaction(composer, latest.blockhash)
        signature = await self.send_transaction(transaction, options, composer.get_instructions())
        logger.info(
            "transaction_sent signature=%s instructions=%s blockhash=%s",
            signature,
            composer.instruction_count(),
            latest.blockhash,
        )
        confirm_response = await self.confirm_transaction(signature, options.commitment, latest.last_valid_block_height)
        logger.info("transaction_confirmed signature=%s commitment=%s", signature, options.commitment)
        return SendAndConfirmResponse(
            signature=signature,
            confirm_response=confirm_response,
            blockhash=latest.blockhash,
            last_valid_block_height=latest.last_valid_block_height,
        )
