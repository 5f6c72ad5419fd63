from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from solders.pubkey import Pubkey
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from assetforge.errors import InvalidSeedsError
from assetforge.programs import TOKEN_METADATA_PROGRAM_ID

METADATA_SEED = b"metadata"
EDITION_SEED = b"edition"
COLLECTION_AUTHORITY_SEED = b"collection_authority"
USER_SEED = b"user"
TOKEN_RECORD_SEED = b"token_record"
BURN_SEED = b"burn"

EDITION_MARKER_BIT_SIZE = 248
MAX_SEED_LENGTH = 32
MAX_SEEDS = 16


@dataclass(frozen=True)
class Pda:
    address: Pubkey
    bump: int
    seeds: Tuple[bytes, ...]
    program_id: Pubkey


def derive(program_id: Pubkey, seeds: Sequence[bytes]) -> Pda:
    seeds = tuple(bytes(seed) for seed in seeds)
    if len(seeds) > MAX_SEEDS:
        raise InvalidSeedsError(f"At most {MAX_SEEDS} seeds are allowed, got {len(seeds)}.")
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise InvalidSeedsError(f"Seed {seed!r} is longer than {MAX_SEED_LENGTH} bytes.")
    address, bump = Pubkey.find_program_address(list(seeds), program_id)
    return Pda(address=address, bump=bump, seeds=seeds, program_id=program_id)


def metadata_seeds(mint: Pubkey, program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID) -> Tuple[bytes, ...]:
    return (METADATA_SEED, bytes(program_id), bytes(mint))


def metadata_pda(mint: Pubkey, program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID) -> Pubkey:
    return derive(program_id, metadata_seeds(mint, program_id)).address


def master_edition_pda(mint: Pubkey, program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID) -> Pubkey:
    return derive(program_id, metadata_seeds(mint, program_id) + (EDITION_SEED,)).address


# Master editions and printed editions share a seed schema.
edition_pda = master_edition_pda


def edition_marker_pda(mint: Pubkey, edition: int, program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID) -> Pubkey:
    if edition < 0:
        raise InvalidSeedsError(f"Edition number must not be negative, got {edition}.")
    bucket = str(edition // EDITION_MARKER_BIT_SIZE).encode()
    return derive(program_id, metadata_seeds(mint, program_id) + (EDITION_SEED, bucket)).address


def collection_authority_record_pda(
    mint: Pubkey, collection_authority: Pubkey, program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID
) -> Pubkey:
    seeds = metadata_seeds(mint, program_id) + (COLLECTION_AUTHORITY_SEED, bytes(collection_authority))
    return derive(program_id, seeds).address


def use_authority_record_pda(mint: Pubkey, use_authority: Pubkey, program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID) -> Pubkey:
    return derive(program_id, metadata_seeds(mint, program_id) + (USER_SEED, bytes(use_authority))).address


def delegate_record_pda(
    mint: Pubkey,
    role_seed: str,
    namespace: Pubkey,
    delegate: Optional[Pubkey] = None,
    program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID,
) -> Pubkey:
    seeds = metadata_seeds(mint, program_id) + (role_seed.encode(), bytes(namespace))
    if delegate is not None:
        seeds += (bytes(delegate),)
    return derive(program_id, seeds).address


def token_record_pda(mint: Pubkey, token: Pubkey, program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID) -> Pubkey:
    return derive(program_id, metadata_seeds(mint, program_id) + (TOKEN_RECORD_SEED, bytes(token))).address


def burner_pda(program_id: Pubkey = TOKEN_METADATA_PROGRAM_ID) -> Pubkey:
    return derive(program_id, (METADATA_SEED, bytes(program_id), BURN_SEED)).address


def associated_token_pda(
    mint: Pubkey,
    owner: Pubkey,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
    associated_token_program_id: Pubkey = ASSOCIATED_TOKEN_PROGRAM_ID,
) -> Pubkey:
    return derive(associated_token_program_id, (bytes(owner), bytes(token_program_id), bytes(mint))).address
