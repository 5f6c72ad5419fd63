from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Optional, Sequence, Tuple, Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from assetforge.errors import DelegateRoleMismatchError, MissingInputDataError, UnreachableCaseError
from assetforge.pdas import associated_token_pda, delegate_record_pda
from assetforge.programs import Program, ProgramRegistry


class AuthorityKind(IntEnum):
    NONE = 0
    METADATA = 1
    DELEGATE = 2
    HOLDER = 3


class DelegateRole(Enum):
    AUTHORITY = "authority"
    COLLECTION = "collection"
    USE = "use"
    UPDATE = "update"
    TRANSFER = "transfer"
    UTILITY = "utility"
    SALE = "sale"

    @property
    def seed(self) -> str:
        return DELEGATE_ROLE_SEEDS[self]

    @property
    def is_token_role(self) -> bool:
        return self in TOKEN_DELEGATE_ROLES


DELEGATE_ROLE_SEEDS: Dict[DelegateRole, str] = {
    DelegateRole.AUTHORITY: "authority_delegate",
    DelegateRole.COLLECTION: "collection_delegate",
    DelegateRole.USE: "use_delegate",
    DelegateRole.UPDATE: "update_delegate",
    DelegateRole.TRANSFER: "persistent_delegate",
    DelegateRole.UTILITY: "persistent_delegate",
    DelegateRole.SALE: "persistent_delegate",
}

TOKEN_DELEGATE_ROLES = frozenset({DelegateRole.TRANSFER, DelegateRole.UTILITY, DelegateRole.SALE})


def delegate_role_default_data(role: DelegateRole) -> str:
    """Name of the delegate-args variant a role uses when the caller gives none."""
    if role is DelegateRole.COLLECTION:
        return "CollectionV1"
    raise MissingInputDataError("delegate_data", f"The {role.value} delegate role requires explicit delegate data.")


@dataclass(frozen=True)
class MetadataAuthority:
    signer: Keypair


@dataclass(frozen=True)
class MetadataDelegateAuthority:
    role: DelegateRole
    namespace: Pubkey  # update authority of the asset
    delegate: Keypair


@dataclass(frozen=True)
class TokenDelegateAuthority:
    role: DelegateRole
    owner: Pubkey
    delegate: Keypair


@dataclass(frozen=True)
class HolderAuthority:
    owner: Keypair
    token: Pubkey


Authority = Union[MetadataAuthority, MetadataDelegateAuthority, TokenDelegateAuthority, HolderAuthority]


@dataclass(frozen=True)
class PayloadSeeds:
    seeds: Tuple[bytes, ...]


@dataclass(frozen=True)
class PayloadMerkleProof:
    proof: Tuple[bytes, ...]  # 32-byte leaves


PayloadValue = Union[Pubkey, int, PayloadSeeds, PayloadMerkleProof]


@dataclass(frozen=True)
class AuthorizationData:
    payload: Dict[str, PayloadValue] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthorizationDetails:
    rules: Pubkey
    data: Optional[AuthorizationData] = None


@dataclass(frozen=True)
class AuthorizationAccounts:
    authority: Pubkey
    token: Optional[Pubkey] = None
    approver: Optional[Pubkey] = None
    delegate_record: Optional[Pubkey] = None
    authorization_rules: Optional[Pubkey] = None


@dataclass(frozen=True)
class AuthorizationArgs:
    authority_kind: AuthorityKind
    authorization_data: Optional[AuthorizationData] = None


@dataclass(frozen=True)
class ResolvedAuthorization:
    accounts: AuthorizationAccounts
    signers: Tuple[Keypair, ...]
    data: AuthorizationArgs


def authority_signer(authority: Authority) -> Keypair:
    if isinstance(authority, MetadataAuthority):
        return authority.signer
    if isinstance(authority, (MetadataDelegateAuthority, TokenDelegateAuthority)):
        return authority.delegate
    if isinstance(authority, HolderAuthority):
        return authority.owner
    raise UnreachableCaseError(authority)


def resolve_authorization(
    registry: ProgramRegistry,
    mint: Pubkey,
    authority: Authority,
    authorization_details: Optional[AuthorizationDetails] = None,
    programs: Sequence[Program] = (),
) -> ResolvedAuthorization:
    """Map an authority variant onto the accounts, signer and args an instruction needs.

    Pure: addresses are derived locally and nothing is fetched, so an
    unsupported variant fails before any network call is made.
    """
    rules = authorization_details.rules if authorization_details else None
    auth_data = authorization_details.data if authorization_details else None

    if isinstance(authority, MetadataAuthority):
        return ResolvedAuthorization(
            accounts=AuthorizationAccounts(authority=authority.signer.pubkey(), authorization_rules=rules),
            signers=(authority.signer,),
            data=AuthorizationArgs(AuthorityKind.METADATA, auth_data),
        )

    if isinstance(authority, MetadataDelegateAuthority):
        if authority.role.is_token_role:
            raise DelegateRoleMismatchError(authority.role, "metadata delegate")
        delegate = authority.delegate.pubkey()
        record = delegate_record_pda(
            mint, authority.role.seed, authority.namespace, delegate, registry.token_metadata(programs)
        )
        return ResolvedAuthorization(
            accounts=AuthorizationAccounts(
                authority=delegate,
                approver=authority.namespace,
                delegate_record=record,
                authorization_rules=rules,
            ),
            signers=(authority.delegate,),
            data=AuthorizationArgs(AuthorityKind.DELEGATE, auth_data),
        )

    if isinstance(authority, TokenDelegateAuthority):
        if not authority.role.is_token_role:
            raise DelegateRoleMismatchError(authority.role, "token delegate")
        # Token delegate records are keyed by owner only.
        record = delegate_record_pda(mint, authority.role.seed, authority.owner, None, registry.token_metadata(programs))
        token = associated_token_pda(
            mint, authority.owner, registry.token(programs), registry.associated_token(programs)
        )
        return ResolvedAuthorization(
            accounts=AuthorizationAccounts(
                authority=authority.delegate.pubkey(),
                token=token,
                approver=authority.owner,
                delegate_record=record,
                authorization_rules=rules,
            ),
            signers=(authority.delegate,),
            data=AuthorizationArgs(AuthorityKind.DELEGATE, auth_data),
        )

    if isinstance(authority, HolderAuthority):
        return ResolvedAuthorization(
            accounts=AuthorizationAccounts(
                authority=authority.owner.pubkey(),
                token=authority.token,
                authorization_rules=rules,
            ),
            signers=(authority.owner,),
            data=AuthorizationArgs(AuthorityKind.HOLDER, auth_data),
        )

    raise UnreachableCaseError(authority)
