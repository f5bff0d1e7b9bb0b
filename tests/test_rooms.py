"""Tests for the rooms service."""

from __future__ import annotations

import asyncio
import time
import unittest
from typing import Any, Dict, List
from unittest import mock

from collab_client.common.hydra import build_hydra_person_id, build_hydra_room_id
from collab_client.http_client import HttpResponse
from collab_client.services.rooms import NEVER_SEEN, Rooms


class FakeHttp:
    def __init__(self, status_code: int = 200, body: Any = None) -> None:
        self.status_code = status_code
        self.body = body
        self.calls: List[Dict[str, Any]] = []

    async def request(self, method: str = "GET", **kwargs: Any) -> HttpResponse:
        self.calls.append(dict(kwargs, method=method))
        return HttpResponse(status_code=self.status_code, body=self.body)


def make_rooms(http: FakeHttp = None, conversations: Any = None) -> Rooms:
    conversation = mock.Mock()
    conversation.list = mock.AsyncMock(return_value=conversations or [])
    conversation.get = mock.AsyncMock()
    return Rooms(http or FakeHttp(), conversation)


class TestRoomsReadStatus(unittest.TestCase):
    def test_list_with_read_status_sorted_by_last_activity(self) -> None:
        conversations = [
            {
                "id": "c1",
                "tags": ["ONE_ON_ONE"],
                "computedTitle": "Spock",
                "lastReadableActivityDate": "2024-01-01T00:00:00.000Z",
                "lastSeenActivityDate": "2024-01-01T00:00:00.000Z",
            },
            {
                "id": "c2",
                "tags": [],
                "displayName": "Bridge",
                "lastRelevantActivityDate": "2024-03-01T00:00:00.000Z",
            },
        ]
        rooms = make_rooms(conversations=conversations)
        result = asyncio.run(rooms.list_with_read_status())

        items = result["items"]
        self.assertEqual([item["id"] for item in items], [build_hydra_room_id("c2"), build_hydra_room_id("c1")])
        self.assertEqual(items[0]["type"], "group")
        self.assertEqual(items[0]["title"], "Bridge")
        self.assertEqual(items[0]["lastSeenActivityDate"], NEVER_SEEN)
        self.assertEqual(items[1]["type"], "direct")
        self.assertEqual(items[1]["title"], "Spock")

        rooms.conversation.list.assert_awaited_once_with(
            activitiesLimit=0, computeTitleIfEmpty=True, conversationsLimit=1000, isActive=True
        )

    def test_max_recent_limits_to_recent_conversations(self) -> None:
        rooms = make_rooms()
        asyncio.run(rooms.list_with_read_status(30))

        options = rooms.conversation.list.await_args.kwargs
        self.assertEqual(options["conversationsLimit"], 30)
        fourteen_days_ago = (time.time() - 14 * 24 * 3600) * 1000
        self.assertAlmostEqual(options["sinceDate"], fourteen_days_ago, delta=60_000)

    def test_max_recent_out_of_range(self) -> None:
        rooms = make_rooms()
        for value in (-1, 101):
            with self.assertRaises(ValueError):
                asyncio.run(rooms.list_with_read_status(value))
        rooms.conversation.list.assert_not_awaited()

    def test_get_with_read_status(self) -> None:
        rooms = make_rooms()
        rooms.conversation.get.return_value = {
            "id": "c9",
            "displayName": "Engineering",
            "lastReadableActivityDate": "2024-02-02T00:00:00.000Z",
        }
        info = asyncio.run(rooms.get_with_read_status(build_hydra_room_id("c9")))

        rooms.conversation.get.assert_awaited_once_with("c9", computeTitleIfEmpty=True, activitiesLimit=0)
        self.assertEqual(info["id"], build_hydra_room_id("c9"))
        self.assertEqual(info["lastActivityDate"], "2024-02-02T00:00:00.000Z")


class TestRoomsCrud(unittest.TestCase):
    def test_remove_returns_none_on_no_content(self) -> None:
        http = FakeHttp(status_code=204)
        rooms = make_rooms(http)
        self.assertIsNone(asyncio.run(rooms.remove({"id": "r1"})))
        self.assertEqual(http.calls[0]["method"], "DELETE")
        self.assertEqual(http.calls[0]["resource"], "rooms/r1")

    def test_get_unwraps_items(self) -> None:
        rooms = make_rooms(FakeHttp(body={"items": [{"id": "r1"}]}))
        self.assertEqual(asyncio.run(rooms.get("r1")), [{"id": "r1"}])

    def test_update_puts_room(self) -> None:
        http = FakeHttp(body={"id": "r1", "title": "New"})
        rooms = make_rooms(http)
        asyncio.run(rooms.update({"id": "r1", "title": "New"}))
        self.assertEqual(http.calls[0]["method"], "PUT")
        self.assertEqual(http.calls[0]["body"], {"id": "r1", "title": "New"})

    def test_list_returns_page(self) -> None:
        rooms = make_rooms(FakeHttp(body={"items": [{"id": "r1"}, {"id": "r2"}]}))
        page = asyncio.run(rooms.list(max=2))
        self.assertEqual(len(page), 2)


class TestRoomEvents(unittest.TestCase):
    def setUp(self) -> None:
        self.rooms = make_rooms()
        self.events: List[Dict[str, Any]] = []

    def test_create_activity_emits_created(self) -> None:
        self.rooms.on("created", self.events.append)
        activity = {
            "verb": "create",
            "published": "2024-04-04T00:00:00.000Z",
            "actor": {"entryUUID": "user-1"},
            "object": {"id": "conv-1", "tags": ["LOCKED"]},
        }
        event = self.rooms.handle_activity(activity)

        self.assertEqual(self.events, [event])
        self.assertEqual(event["event"], "created")
        self.assertEqual(event["data"]["id"], build_hydra_room_id("conv-1"))
        self.assertEqual(event["data"]["creatorId"], build_hydra_person_id("user-1"))
        self.assertEqual(event["data"]["lastActivity"], "2024-04-04T00:00:00.000Z")
        self.assertTrue(event["data"]["isLocked"])
        self.assertEqual(event["data"]["type"], "group")

    def test_update_activity_reads_target_tags(self) -> None:
        self.rooms.on("updated", self.events.append)
        activity = {
            "verb": "update",
            "actor": {"entryUUID": "user-1"},
            "object": {},
            "target": {"id": "conv-2", "tags": ["ONE_ON_ONE"]},
        }
        event = self.rooms.handle_activity(activity)

        self.assertEqual(event["data"]["id"], build_hydra_room_id("conv-2"))
        self.assertEqual(event["data"]["type"], "direct")
        self.assertFalse(event["data"]["isLocked"])
        self.assertEqual(len(self.events), 1)

    def test_other_verbs_are_ignored(self) -> None:
        self.rooms.on("created", self.events.append)
        self.assertIsNone(self.rooms.handle_activity({"verb": "post"}))
        self.assertEqual(self.events, [])

    def test_malformed_activity_is_logged(self) -> None:
        self.rooms.on("updated", self.events.append)
        with self.assertLogs("collab_client.services.rooms", level="ERROR"):
            self.assertIsNone(self.rooms.handle_activity({"verb": "lock", "object": {}}))
        self.assertEqual(self.events, [])

    def test_off_removes_listener(self) -> None:
        self.rooms.on("created", self.events.append)
        self.rooms.off("created")
        self.rooms.handle_activity({
            "verb": "create",
            "actor": {"entryUUID": "user-1"},
            "object": {"id": "conv-1"},
        })
        self.assertEqual(self.events, [])


if __name__ == "__main__":
    unittest.main()
