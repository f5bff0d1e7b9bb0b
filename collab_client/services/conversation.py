"""Conversation service: fetches conversations and threads, decrypted."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Union

from ..conversation.decryptor import Decryptor
from ..conversation.transforms import ObjectType
from ..http_client import HttpClient
from ..utils import ServiceError


logger = logging.getLogger(__name__)

ConversationRef = Union[str, Dict[str, Any]]


class Conversation:
    """Thin wrapper over the conversation service that decrypts every response."""

    def __init__(self, http: HttpClient, decryptor: Decryptor) -> None:
        self.http = http
        self.decryptor = decryptor

    async def get(self, conversation: ConversationRef, **qs: Any) -> Dict[str, Any]:
        """
        Fetch one conversation.

        Args:
            conversation: Conversation id, or a mapping with ``url`` or ``id``.
            **qs: Query string, e.g. ``activitiesLimit=0``.

        Returns:
            Decrypted conversation.
        """
        if isinstance(conversation, dict):
            url, conversation_id = conversation.get("url"), conversation.get("id")
        else:
            url, conversation_id = None, conversation
        if not url and not conversation_id:
            raise ServiceError("`conversation` must have a `url` or an `id`.")

        if url:
            response = await self.http.request("GET", uri=url, qs=qs)
        else:
            response = await self.http.request(
                "GET", service="conversation", resource=f"conversations/{conversation_id}", qs=qs
            )

        result = await self.decryptor.decrypt_conversation(response.body)
        return result.value

    async def list(self, **qs: Any) -> List[Dict[str, Any]]:
        """List conversations, decrypting each one."""
        response = await self.http.request(
            "GET", service="conversation", resource="conversations", qs=qs
        )
        items = (response.body or {}).get("items") or []
        results = await asyncio.gather(
            *(self.decryptor.decrypt_conversation(item) for item in items)
        )
        return [result.value for result in results]

    async def list_threads(self, **qs: Any) -> List[Dict[str, Any]]:
        """List threads, decrypting each child activity."""
        response = await self.http.request("GET", service="conversation", resource="threads", qs=qs)
        items = (response.body or {}).get("items") or []
        results = await asyncio.gather(
            *(self.decryptor.decrypt_as(ObjectType.THREAD, item) for item in items)
        )
        return [result.value for result in results]
