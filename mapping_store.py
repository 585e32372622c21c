# mapping_store.py
import asyncio
import json
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from errors import NotFound, StoreError

logger = logging.getLogger("mapping_store")

MAPPINGS_FILE = os.getenv(
    "MAPPINGS_FILE",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "discordMappings.json"),
)
FILE_MODE = 0o644


def normalize_address(address: str) -> str:
    return address.strip().lower()


def find_address(mappings: Dict[str, str], identity: str) -> Optional[str]:
    for address, bound in mappings.items():
        if bound == identity:
            return address
    return None


class MappingStore:
    """
    Wallet address -> Discord identity mappings kept in one JSON document.

    Nothing is cached: every call re-reads the file. Writers go through
    transaction() so that load + modify + save runs under a single lock.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or MAPPINGS_FILE
        self._lock = asyncio.Lock()

    def initialize(self) -> None:
        if os.path.exists(self.path):
            return
        logger.info("Mappings file %s not found, creating it", self.path)
        self.save({})

    def load(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except FileNotFoundError:
            try:
                self.initialize()
            except StoreError:
                logger.exception("Could not create mappings file (continuing with empty set)")
            return {}
        except (OSError, ValueError):
            logger.exception("Error loading mappings from %s", self.path)
            return {}

        if not isinstance(raw, dict):
            logger.error("Mappings file %s does not hold a JSON object, ignoring it", self.path)
            return {}

        mappings: Dict[str, str] = {}
        for address, identity in raw.items():
            if isinstance(address, str) and isinstance(identity, str):
                mappings[normalize_address(address)] = identity
            else:
                logger.warning("Dropping malformed mapping entry %r", address)
        return mappings

    def save(self, mappings: Dict[str, str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        payload = json.dumps(mappings, indent=2)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".mappings-", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            # mkstemp creates the file 0600
            os.chmod(tmp_path, FILE_MODE)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.exception("Error saving mappings to %s", self.path)
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StoreError("Failed to save mappings") from exc

    def get(self, address: str) -> str:
        identity = self.load().get(normalize_address(address))
        if identity is None:
            raise NotFound("Discord ID not found for this address")
        return identity

    async def lookup(self, address: str) -> str:
        return await asyncio.to_thread(self.get, address)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Dict[str, str]]:
        # changes made to the yielded dict are saved only if the block exits cleanly
        async with self._lock:
            mappings = await asyncio.to_thread(self.load)
            yield mappings
            await asyncio.to_thread(self.save, mappings)

    async def delete(self, address: str) -> bool:
        key = normalize_address(address)
        async with self._lock:
            mappings = await asyncio.to_thread(self.load)
            if key not in mappings:
                return False
            del mappings[key]
            await asyncio.to_thread(self.save, mappings)
        logger.info("Removed mapping for %s", key)
        return True
