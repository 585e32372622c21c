# link_manager.py
import logging
from dataclasses import dataclass
from typing import Optional

from discord_client import DiscordClient
from errors import BadRequest, Conflict, NotFound
from mapping_store import MappingStore, find_address, normalize_address
from pending_links import PendingLinkStore

logger = logging.getLogger("link_manager")


@dataclass
class LinkResult:
    address: str
    identity: str


class LinkManager:
    """
    Drives one linking attempt from an OAuth callback to a committed mapping,
    and serves the lookup / forgive operations over the same store.
    """

    def __init__(
        self,
        store: MappingStore,
        discord: DiscordClient,
        pending: Optional[PendingLinkStore] = None,
    ):
        self.store = store
        self.discord = discord
        self.pending = pending

    def resolve_address(self, state: str) -> str:
        # states issued by /discord/login map to an address; anything else is the address itself
        if PendingLinkStore.is_issued_state(state):
            address = self.pending.consume(state) if self.pending is not None else None
            if address is None:
                raise BadRequest("State is invalid or expired, restart the Discord login")
            return address
        address = normalize_address(state)
        if not address:
            raise BadRequest("Missing code or state")
        return address

    async def link(self, code: Optional[str], state: Optional[str]) -> LinkResult:
        if not code or not code.strip() or not state or not state.strip():
            raise BadRequest("Missing code or state")

        address = self.resolve_address(state)

        access_token = await self.discord.exchange_code(code)
        identity = await self.discord.fetch_identity(access_token)

        async with self.store.transaction() as mappings:
            existing = find_address(mappings, identity)
            if existing is not None and existing != address:
                logger.warning(
                    "Refusing to link %s to %s: already bound to %s", address, identity, existing
                )
                raise Conflict(
                    f"Discord account is already linked to {existing}",
                    existing_address=existing,
                )
            previous = mappings.get(address)
            mappings[address] = identity

        if previous == identity:
            logger.info("Re-linked %s to %s", address, identity)
        else:
            logger.info("Linked %s to %s", address, identity)
        return LinkResult(address=address, identity=identity)

    async def lookup(self, address: str) -> str:
        return await self.store.lookup(address)

    async def forgive(self, address: Optional[str]) -> bool:
        if not address or not address.strip():
            raise BadRequest("Address is required")
        if not await self.store.delete(address):
            raise NotFound("No Discord ID found for this address")
        return True
