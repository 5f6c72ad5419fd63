from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from solders.pubkey import Pubkey
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from assetforge.errors import ProgramNotRecognizedError

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")
TOKEN_AUTH_RULES_PROGRAM_ID = Pubkey.from_string("auth9SigNpDKz4sJJ1DfCTuZrZNSAgh9sFD3rboVmgg")
SYSVAR_RENT_PUBKEY = Pubkey.from_string("SysvarRent111111111111111111111111111111111")
SYSVAR_INSTRUCTIONS_PUBKEY = Pubkey.from_string("Sysvar1nstructions1111111111111111111111111")

CUSTOM_ERROR_PATTERN = re.compile(r"custom program error: 0x([0-9a-fA-F]+)")

TOKEN_METADATA_ERRORS: Dict[int, str] = {
    0: "InstructionUnpackError",
    1: "InstructionPackError",
    2: "NotRentExempt",
    3: "AlreadyInitialized",
    4: "Uninitialized",
    5: "InvalidMetadataKey",
    6: "InvalidEditionKey",
    7: "UpdateAuthorityIncorrect",
    8: "UpdateAuthorityIsNotSigner",
    9: "NotMintAuthority",
    10: "InvalidMintAuthority",
    11: "NameTooLong",
    12: "SymbolTooLong",
    13: "UriTooLong",
    14: "UpdateAuthorityMustBeEqualToMetadataAuthorityAndSigner",
    15: "MintMismatch",
    16: "EditionsMustHaveExactlyOneToken",
}

TOKEN_ERRORS: Dict[int, str] = {
    0: "NotRentExempt",
    1: "InsufficientFunds",
    2: "InvalidMint",
    3: "MintMismatch",
    4: "OwnerMismatch",
    5: "FixedSupply",
    6: "AlreadyInUse",
    7: "InvalidNumberOfProvidedSigners",
    8: "InvalidNumberOfRequiredSigners",
    9: "UninitializedState",
    10: "NativeNotSupported",
    11: "NonNativeHasBalance",
    12: "InvalidInstruction",
    13: "InvalidState",
    14: "Overflow",
    15: "AuthorityTypeNotSupported",
    16: "MintCannotFreeze",
    17: "AccountFrozen",
    18: "MintDecimalsMismatch",
    19: "NonNativeNotSupported",
}


@dataclass(frozen=True)
class Program:
    name: str
    address: Pubkey
    clusters: Tuple[str, ...] = ()  # empty means every cluster
    error_codes: Mapping[int, str] = field(default_factory=dict)

    def supports(self, cluster: str) -> bool:
        return not self.clusters or cluster in self.clusters

    def resolve_error(self, message: str) -> Optional[Tuple[int, str]]:
        match = CUSTOM_ERROR_PATTERN.search(message or "")
        if not match:
            return None
        code = int(match.group(1), 16)
        name = self.error_codes.get(code)
        if name is None:
            return None
        return code, name


DEFAULT_PROGRAMS: Tuple[Program, ...] = (
    Program("SystemProgram", SYSTEM_PROGRAM_ID),
    Program("TokenProgram", TOKEN_PROGRAM_ID, error_codes=TOKEN_ERRORS),
    Program("AssociatedTokenProgram", ASSOCIATED_TOKEN_PROGRAM_ID),
    Program("TokenMetadataProgram", TOKEN_METADATA_PROGRAM_ID, error_codes=TOKEN_METADATA_ERRORS),
    Program("TokenAuthorizationRulesProgram", TOKEN_AUTH_RULES_PROGRAM_ID),
)


class ProgramRegistry:
    """Read-only name/address lookup for the programs of one cluster.

    Later registrations shadow earlier ones with the same name; per-call
    overrides passed to ``get`` shadow everything.
    """

    def __init__(self, cluster: str, programs: Iterable[Program] = DEFAULT_PROGRAMS) -> None:
        self.cluster = cluster
        self._programs: Tuple[Program, ...] = tuple(programs)

    def with_programs(self, programs: Iterable[Program]) -> "ProgramRegistry":
        return ProgramRegistry(self.cluster, self._programs + tuple(programs))

    def all(self, overrides: Sequence[Program] = ()) -> Tuple[Program, ...]:
        candidates = tuple(overrides) + tuple(reversed(self._programs))
        return tuple(p for p in candidates if p.supports(self.cluster))

    def get(self, name_or_address: Union[str, Pubkey], overrides: Sequence[Program] = ()) -> Program:
        for program in self.all(overrides):
            if isinstance(name_or_address, Pubkey):
                if program.address == name_or_address:
                    return program
            elif program.name == name_or_address:
                return program
        raise ProgramNotRecognizedError(name_or_address, self.cluster)

    def find(self, address: Pubkey, overrides: Sequence[Program] = ()) -> Optional[Program]:
        for program in self.all(overrides):
            if program.address == address:
                return program
        return None

    def system(self, overrides: Sequence[Program] = ()) -> Pubkey:
        return self.get("SystemProgram", overrides).address

    def token(self, overrides: Sequence[Program] = ()) -> Pubkey:
        return self.get("TokenProgram", overrides).address

    def associated_token(self, overrides: Sequence[Program] = ()) -> Pubkey:
        return self.get("AssociatedTokenProgram", overrides).address

    def token_metadata(self, overrides: Sequence[Program] = ()) -> Pubkey:
        return self.get("TokenMetadataProgram", overrides).address

    def token_auth_rules(self, overrides: Sequence[Program] = ()) -> Pubkey:
        return self.get("TokenAuthorizationRulesProgram", overrides).address
