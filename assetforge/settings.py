from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings
from solders.keypair import Keypair

logger = logging.getLogger("assetforge")

CLUSTERS = ("mainnet-beta", "devnet", "testnet", "localnet")


class Settings(BaseSettings):
    rpc_url: str = "https://api.devnet.solana.com"
    cluster: str = "devnet"
    commitment: str = "confirmed"
    payer_keypair_path: Optional[str] = None
    token_metadata_program_id: Optional[str] = None  # optional: overrides the registered program address
    skip_preflight: bool = False
    max_retries: Optional[int] = None
    json_timeout_seconds: float = 10.0
    log_level: str = "INFO"

    class Config:
        env_prefix = "ASSETFORGE_"
        env_file = ".env"
        env_file_encoding = "utf-8"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))


def load_keypair(path: str) -> Keypair:
    """Read a solana-keygen file: a bare byte list or an object with `secretKey`."""
    source = Path(path).expanduser()
    try:
        raw = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ValueError(f"Cannot read keypair {source}: {exc}") from exc
    secret = raw.get("secretKey") if isinstance(raw, dict) else raw
    if not isinstance(secret, list):
        raise ValueError(f"Unsupported keypair format in {source}")
    try:
        return Keypair.from_bytes(bytes(secret))
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Invalid keypair bytes in {source}: {exc}") from exc
