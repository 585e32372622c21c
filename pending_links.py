# pending_links.py
import logging
import secrets
import time
from typing import Dict, Optional, Tuple

from mapping_store import normalize_address

logger = logging.getLogger("pending_links")

PENDING_TTL_SECONDS = 600
STATE_PREFIX = "link_"


class PendingLinkStore:
    """
    Opaque OAuth state tokens, each bound to the wallet address that asked for it.

    Tokens are one-time-use and expire after PENDING_TTL_SECONDS. The store is
    process-local, so run a single worker.
    """

    def __init__(self, ttl: float = PENDING_TTL_SECONDS):
        self.ttl = ttl
        self._pending: Dict[str, Tuple[str, float]] = {}

    def issue(self, address: str) -> str:
        state = STATE_PREFIX + secrets.token_urlsafe(32)
        self._pending[state] = (normalize_address(address), time.monotonic() + self.ttl)
        self._evict_expired()
        logger.info("Issued link state %s... for %s", state[:12], normalize_address(address))
        return state

    def consume(self, state: str) -> Optional[str]:
        self._evict_expired()
        entry = self._pending.pop(state, None)
        if entry is None:
            return None
        address, expires_at = entry
        if time.monotonic() >= expires_at:
            return None
        return address

    @staticmethod
    def is_issued_state(state: str) -> bool:
        return state.startswith(STATE_PREFIX)

    def __len__(self) -> int:
        return len(self._pending)

    def _evict_expired(self) -> None:
        now = time.monotonic()
        expired = [k for k, (_, exp) in self._pending.items() if now >= exp]
        for k in expired:
            del self._pending[k]
