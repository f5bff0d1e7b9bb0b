"""Tests for client wiring."""

from __future__ import annotations

import asyncio
import unittest

from collab_client import CollabClient
from collab_client.config import Config
from collab_client.core.scheduler import ManualScheduler


class TestCollabClient(unittest.TestCase):
    def test_services_share_transport_and_decryptor(self) -> None:
        config = Config(access_token="token", decryption_failure_message="[hidden]")
        client = CollabClient(config, scheduler=ManualScheduler())

        self.assertIs(client.board.http, client.http)
        self.assertIs(client.rooms.conversation, client.conversation)
        self.assertIs(client.team.decryptor, client.decryptor)
        self.assertEqual(client.decryptor.context.failure_message, "[hidden]")

    def test_context_manager_closes(self) -> None:
        async def scenario() -> None:
            async with CollabClient(Config(access_token="token"), scheduler=ManualScheduler()) as client:
                self.assertEqual(client.avatar.batcher.queued, 0)

        asyncio.run(scenario())


if __name__ == "__main__":
    unittest.main()
