from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from assetforge.errors import ExpectedSignerError, NoInstructionsToSendError

if TYPE_CHECKING:
    from assetforge.rpc import ConfirmOptions, RpcClient

# Anything exposing pubkey() and sign_message(); solders Keypair in practice.
Signer = Keypair


@dataclass(frozen=True)
class InstructionRecord:
    instruction: Instruction
    signers: Tuple[Signer, ...] = ()
    key: Optional[str] = None


Fragment = Union[InstructionRecord, "Composer"]


def dedupe_signers(signers: Sequence[Signer]) -> List[Signer]:
    seen = set()
    unique: List[Signer] = []
    for signer in signers:
        address = signer.pubkey()
        if address in seen:
            continue
        seen.add(address)
        unique.append(signer)
    return unique


@dataclass(frozen=True)
class Composer:
    """Ordered instructions, their signers and a context map, sent as one transaction.

    A composer is a value: every method that changes it returns a new
    composer and leaves the receiver untouched. Adding another composer
    flattens its records in place and merges its context over ours.
    """

    records: Tuple[InstructionRecord, ...] = ()
    fee_payer: Optional[Signer] = None
    context: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def make(cls) -> "Composer":
        return cls()

    def _merge(self, fragments: Sequence[Fragment]) -> Tuple[List[InstructionRecord], Dict[str, Any]]:
        records: List[InstructionRecord] = []
        context: Dict[str, Any] = {}
        for fragment in fragments:
            if isinstance(fragment, Composer):
                records.extend(fragment.records)
                context.update(fragment.context)
            elif isinstance(fragment, InstructionRecord):
                records.append(fragment)
            else:
                raise TypeError(f"Cannot add {type(fragment).__name__} to a composer")
        return records, context

    def add(self, *fragments: Fragment) -> "Composer":
        records, context = self._merge(fragments)
        return replace(self, records=self.records + tuple(records), context={**self.context, **context})

    append = add

    def prepend(self, *fragments: Fragment) -> "Composer":
        records, context = self._merge(fragments)
        return replace(self, records=tuple(records) + self.records, context={**self.context, **context})

    def set_fee_payer(self, fee_payer: Signer) -> "Composer":
        return replace(self, fee_payer=fee_payer)

    def get_fee_payer(self) -> Optional[Pubkey]:
        return self.fee_payer.pubkey() if self.fee_payer is not None else None

    def set_context(self, partial: Optional[Mapping[str, Any]] = None, **values: Any) -> "Composer":
        return replace(self, context={**self.context, **(partial or {}), **values})

    def get_context(self) -> Dict[str, Any]:
        return dict(self.context)

    def when(self, condition: Any, compose: Callable[["Composer"], "Composer"]) -> "Composer":
        return compose(self) if condition else self

    def unless(self, condition: Any, compose: Callable[["Composer"], "Composer"]) -> "Composer":
        return self.when(not condition, compose)

    def is_empty(self) -> bool:
        return not self.records

    def instruction_count(self) -> int:
        return len(self.records)

    def get_instructions(self) -> List[Instruction]:
        return [record.instruction for record in self.records]

    def get_instructions_with_signers(self) -> List[InstructionRecord]:
        return list(self.records)

    def get_signers(self) -> List[Signer]:
        signers: List[Signer] = [self.fee_payer] if self.fee_payer is not None else []
        for record in self.records:
            signers.extend(record.signers)
        return dedupe_signers(signers)

    def _key_index(self, key: str) -> int:
        for index, record in enumerate(self.records):
            if record.key == key:
                return index
        raise KeyError(key)

    def split_before_key(self, key: str) -> Tuple["Composer", "Composer"]:
        index = self._key_index(key)
        return replace(self, records=self.records[:index]), replace(self, records=self.records[index:])

    def split_after_key(self, key: str) -> Tuple["Composer", "Composer"]:
        index = self._key_index(key) + 1
        return replace(self, records=self.records[:index]), replace(self, records=self.records[index:])

    def to_message(self, blockhash: Hash) -> MessageV0:
        if self.fee_payer is None:
            raise ExpectedSignerError("fee_payer")
        return MessageV0.try_compile(self.fee_payer.pubkey(), self.get_instructions(), [], blockhash)

    def to_transaction(self, blockhash: Hash) -> VersionedTransaction:
        message = self.to_message(blockhash)
        by_address = {signer.pubkey(): signer for signer in self.get_signers()}
        required = message.account_keys[: message.header.num_required_signatures]
        ordered: List[Signer] = []
        for address in required:
            signer = by_address.get(address)
            if signer is None:
                raise ExpectedSignerError(str(address))
            ordered.append(signer)
        return VersionedTransaction(message, ordered)

    async def send_and_confirm(self, rpc: "RpcClient", confirm_options: Optional["ConfirmOptions"] = None) -> Dict[str, Any]:
        if self.is_empty():
            raise NoInstructionsToSendError("send_and_confirm")
        response = await rpc.send_and_confirm_transaction(self, confirm_options)
        return {**self.context, "response": response}
