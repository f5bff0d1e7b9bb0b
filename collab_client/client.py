"""Top level client wiring configuration, transport and services."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import aiohttp

from .config import Config
from .conversation.decryptor import Decryptor
from .core.scheduler import Scheduler
from .encryption.service import EncryptionService, LocalEncryptionService
from .http_client import HttpClient
from .services import Avatar, Board, Conversation, Rooms, Team


logger = logging.getLogger(__name__)


class CollabClient:
    """
    Entry point of the SDK.

    Usage::

        async with CollabClient(Config.get_instance()) as client:
            room = await client.rooms.get(room_id)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        encryption: Optional[EncryptionService] = None,
        session: Optional[aiohttp.ClientSession] = None,
        scheduler: Optional[Scheduler] = None,
        clusters: Optional[Dict[str, str]] = None,
    ) -> None:
        self.config = config or Config.get_instance()
        self.http = HttpClient(self.config, session=session)
        self.encryption = encryption or LocalEncryptionService()
        self.decryptor = Decryptor.from_config(self.encryption, self.config)

        self.avatar = Avatar(self.http, self.config, scheduler=scheduler)
        self.board = Board(self.http, self.encryption, self.config)
        self.conversation = Conversation(self.http, self.decryptor)
        self.rooms = Rooms(self.http, self.conversation, clusters=clusters)
        self.team = Team(self.http, self.encryption, self.decryptor)

    async def __aenter__(self) -> "CollabClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Flush pending avatar lookups and close the http session."""
        await self.avatar.batcher.drain()
        await self.http.close()
        logger.debug("client closed")
