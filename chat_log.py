# chat_log.py
import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

from errors import BadRequest
from models import ChatMessage

logger = logging.getLogger("chat_log")


class ChatLog:
    """
    Append-only chat history held in memory; it starts empty on every restart.
    """

    def __init__(self):
        self._messages: List[ChatMessage] = []
        self._lock = asyncio.Lock()

    async def append(self, author: Optional[str], text: Optional[str]) -> ChatMessage:
        if not author or not author.strip() or not text or not text.strip():
            raise BadRequest("User and text are required")
        message = ChatMessage(
            author=author,
            text=text,
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )
        async with self._lock:
            self._messages.append(message)
        logger.debug("Chat message from %s (%d total)", author, len(self._messages))
        return message

    def list(self) -> List[ChatMessage]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)
