from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import requests

from assetforge.models import JsonMetadata

logger = logging.getLogger("assetforge")


class JsonLoader:
    def __init__(self, timeout: float = 10.0, session: Optional[requests.Session] = None) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()

    def _fetch(self, uri: str) -> Any:
        resp = self.session.get(uri, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    async def download_json(self, uri: str) -> Any:
        return await asyncio.to_thread(self._fetch, uri)

    async def load_metadata(self, uri: str) -> Optional[JsonMetadata]:
        """Fetch and validate the off-chain JSON document; any failure yields None."""
        if not uri:
            return None
        try:
            payload = await self.download_json(uri)
            return JsonMetadata.model_validate(payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("json_metadata_fetch_failed uri=%s error=%s", uri, exc, exc_info=True)
            return None
