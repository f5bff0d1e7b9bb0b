"""Tests for the board service."""

from __future__ import annotations

import asyncio
import tempfile
import unittest
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from collab_client.config import Config
from collab_client.encryption import LocalEncryptionService, LocalKms
from collab_client.encryption.kms import KEY_URI_PREFIX
from collab_client.http_client import HttpResponse
from collab_client.services.board import Board
from collab_client.utils import RequestError, ServiceError


KEY = f"{KEY_URI_PREFIX}board"
CHANNEL = {
    "channelUrl": "https://board.test/channels/1",
    "aclUrl": "https://acl.test/acls/1",
    "kmsResourceUrl": "kms://local/resources/1",
    "defaultEncryptionKeyUrl": KEY,
}
CONVERSATION = {
    "aclUrl": "https://acl.test/acls/conv",
    "kmsResourceObjectUrl": "kms://local/resources/conv",
}


class FakeHttp:
    """Records calls; ``responder`` maps a call to a response body."""

    def __init__(self, responder: Optional[Callable[[Dict[str, Any]], Any]] = None) -> None:
        self.responder = responder or (lambda call: {})
        self.calls: List[Dict[str, Any]] = []
        self.uploads: List[Dict[str, Any]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def request(self, method: str = "GET", **kwargs: Any) -> HttpResponse:
        call = dict(kwargs, method=method)
        self.calls.append(call)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            return HttpResponse(status_code=200, body=self.responder(call))
        finally:
            self.in_flight -= 1

    async def upload(self, uri: str, data: bytes, qs: Any = None) -> Dict[str, Any]:
        self.uploads.append({"uri": uri, "data": data, "qs": qs})
        return {"downloadUrl": "https://files.test/image-1"}


class TestBoard(unittest.TestCase):
    def setUp(self) -> None:
        self.encryption = LocalEncryptionService(LocalKms(iterations=1))
        self.config = Config(access_token="token", board_contents_per_page_for_add=2)

    def make_board(self, http: FakeHttp) -> Board:
        return Board(http, self.encryption, self.config)

    def test_add_content_sends_chunks_in_sequence(self) -> None:
        http = FakeHttp(lambda call: {"count": len(call["body"])})
        board = self.make_board(http)
        contents = [{"type": "curve", "points": [i, i]} for i in range(5)]

        results = asyncio.run(board.add_content(CHANNEL, contents))

        self.assertEqual(results, [{"count": 2}, {"count": 2}, {"count": 1}])
        self.assertEqual(http.max_in_flight, 1)
        for call in http.calls:
            self.assertEqual(call["method"], "POST")
            self.assertEqual(call["uri"], "https://board.test/channels/1/contents")
            for item in call["body"]:
                self.assertEqual(item["type"], "STRING")
                self.assertEqual(item["encryptionKeyUrl"], KEY)
                self.assertEqual(item["device"], "WEB")

    def test_encrypt_then_decrypt_contents(self) -> None:
        board = self.make_board(FakeHttp())
        contents = [
            {"type": "curve", "points": [1, 2, 3]},
            {
                "displayName": "photo.png",
                "file": {"scr": {"enc": "fernet", "key": "k"}, "mimeType": "image/png"},
            },
        ]

        async def scenario() -> List[Dict[str, Any]]:
            encrypted = await board.encrypt_contents(KEY, contents)
            self.assertEqual([item["type"] for item in encrypted], ["STRING", "FILE"])
            self.assertIsInstance(encrypted[1]["file"]["scr"], str)
            return await board.decrypt_contents({"items": encrypted})

        decrypted = asyncio.run(scenario())

        self.assertEqual(decrypted[0]["points"], [1, 2, 3])
        self.assertNotIn("payload", decrypted[0])
        self.assertEqual(decrypted[1]["file"]["scr"], {"enc": "fernet", "key": "k"})
        self.assertEqual(decrypted[1]["metadata"], {"displayName": "photo.png"})
        self.assertEqual(decrypted[1]["displayName"], "photo.png")
        self.assertNotIn("encryptionKeyUrl", decrypted[1])
        self.assertIsInstance(contents[1]["file"]["scr"], dict)

    def test_file_content_without_metadata(self) -> None:
        board = self.make_board(FakeHttp())

        async def scenario() -> Dict[str, Any]:
            scr = await self.encryption.encrypt_scr(KEY, {"loc": "https://files.test/1"})
            return await board.decrypt_single_file_content(KEY, {"file": {"scr": scr}})

        content = asyncio.run(scenario())
        self.assertEqual(content["metadata"], {})
        self.assertEqual(content["file"]["scr"], {"loc": "https://files.test/1"})

    def test_add_image_uploads_then_adds_file_content(self) -> None:
        def responder(call: Dict[str, Any]) -> Any:
            if call["uri"].endswith("/spaces/open"):
                return {"spaceUrl": "https://files.test/spaces/9"}
            return {"items": call.get("body")}

        http = FakeHttp(responder)
        board = self.make_board(http)

        with tempfile.TemporaryDirectory() as temp_dir:
            image_path = Path(temp_dir) / "sketch.png"
            image_path.write_bytes(b"\x89PNG" + b"\x00" * 60)
            asyncio.run(board.add_image(CHANNEL, image_path, metadata={"displayName": "sketch"}))

        self.assertEqual(http.uploads[0]["uri"], "https://files.test/spaces/9/upload_sessions")
        self.assertEqual(http.uploads[0]["qs"], {"transcode": True})
        self.assertNotEqual(http.uploads[0]["data"][:4], b"\x89PNG")

        add_call = http.calls[-1]
        self.assertEqual(add_call["uri"], "https://board.test/channels/1/contents")
        item = add_call["body"][0]
        self.assertEqual(item["type"], "FILE")
        self.assertEqual(item["file"]["mimeType"], "image/png")
        self.assertEqual(item["file"]["url"], "https://files.test/image-1")
        self.assertEqual(item["file"]["size"], 64)
        self.assertIsInstance(item["payload"], str)

    def test_set_snapshot_image_uses_hidden_space(self) -> None:
        def responder(call: Dict[str, Any]) -> Any:
            if call["uri"].endswith("/spaces/hidden"):
                return {"spaceUrl": "https://files.test/spaces/hidden"}
            return {"image": call["body"]["image"]}

        http = FakeHttp(responder)
        board = self.make_board(http)
        result = asyncio.run(board.set_snapshot_image(CHANNEL, b"snapshot-bytes"))

        patch = http.calls[-1]
        self.assertEqual(patch["method"], "PATCH")
        self.assertEqual(patch["uri"], CHANNEL["channelUrl"])
        self.assertEqual(result["image"]["width"], 1600)
        self.assertEqual(result["image"]["height"], 900)
        self.assertEqual(result["image"]["fileSize"], len(b"snapshot-bytes"))
        self.assertEqual(result["image"]["encryptionKeyUrl"], KEY)
        self.assertIsInstance(result["image"]["scr"], str)

    def test_channel_requests(self) -> None:
        http = FakeHttp()
        board = self.make_board(http)

        async def scenario() -> None:
            await board.create_channel(CONVERSATION, {"type": "whiteboard"})
            await board.delete_channel(CONVERSATION, CHANNEL, prevent_delete_active_channel=True)
            page = await board.get_channels(CONVERSATION, channels_limit=10)
            self.assertEqual(list(page), [])

        asyncio.run(scenario())

        create, lock, unlink, listing = http.calls
        self.assertEqual(create["resource"], "/channels")
        self.assertEqual(create["body"]["aclUrlLink"], CONVERSATION["aclUrl"])
        self.assertEqual(create["body"]["kmsMessage"]["userIds"], [CONVERSATION["kmsResourceObjectUrl"]])
        self.assertEqual(create["body"]["type"], "whiteboard")
        self.assertEqual(lock["uri"], "https://board.test/channels/1/lock")
        self.assertEqual(lock["qs"], {"intent": "delete"})
        self.assertEqual(unlink["method"], "PUT")
        self.assertEqual(unlink["uri"], "https://acl.test/acls/1/links")
        self.assertEqual(unlink["body"]["aclLinkOperation"], "DELETE")
        self.assertEqual(listing["qs"]["channelsLimit"], 10)

    def test_get_channels_requires_conversation(self) -> None:
        board = self.make_board(FakeHttp())
        with self.assertRaises(ServiceError):
            asyncio.run(board.get_channels(None))

    def test_register_to_share_mercury_requires_connection(self) -> None:
        board = self.make_board(FakeHttp())
        with self.assertRaises(ServiceError):
            asyncio.run(board.register_to_share_mercury(CHANNEL, "wss://ws.test", None))
        with self.assertRaises(ServiceError):
            asyncio.run(board.register_to_share_mercury(
                CHANNEL, "wss://ws.test", "https://mercury.test", shared_mercury_enabled=False
            ))

    def test_delete_partial_content_keeps_listed_ids(self) -> None:
        http = FakeHttp()
        board = self.make_board(http)
        asyncio.run(board.delete_partial_content(
            CHANNEL, [{"contentId": "c1", "payload": "x"}, {"contentId": "c2"}]
        ))
        call = http.calls[0]
        self.assertEqual(call["body"], [{"contentId": "c1"}, {"contentId": "c2"}])
        self.assertEqual(call["qs"], {"clearBoard": True})

    def test_process_activity_event(self) -> None:
        board = self.make_board(FakeHttp())

        async def scenario() -> Dict[str, Any]:
            payload = await self.encryption.encrypt_text(KEY, '{"type": "text", "value": "hi"}')
            message = {"contentType": "STRING", "envelope": {"encryptionKeyUrl": KEY}, "payload": payload}
            return await board.process_activity_event(message)

        message = asyncio.run(scenario())
        self.assertEqual(message["payload"], {"type": "text", "value": "hi"})

    def test_authorize_media_injector(self) -> None:
        def responder(call: Dict[str, Any]) -> Any:
            return {"kmsResponse": '{"authorizations": [{"bearer": "bearer-token"}]}'}

        http = FakeHttp(responder)
        board = self.make_board(http)
        self.assertEqual(asyncio.run(board.authorize_media_injector(CHANNEL)), "bearer-token")
        self.assertEqual(http.calls[0]["uri"], "https://board.test/channels/1/sharePolicies/transcoder")
        self.assertIn("kmsMessage", http.calls[0]["body"])

    def test_authorize_media_injector_swallows_errors(self) -> None:
        def responder(call: Dict[str, Any]) -> Any:
            raise RequestError("PUT failed with status 403", status_code=403)

        board = self.make_board(FakeHttp(responder))
        with self.assertLogs("collab_client.services.board", level="WARNING"):
            self.assertIsNone(asyncio.run(board.authorize_media_injector(CHANNEL)))

    def test_unauthorize_media_injector(self) -> None:
        board = self.make_board(FakeHttp())
        kms = self.encryption.kms

        async def scenario() -> List[str]:
            await kms.add_authorization(CHANNEL["kmsResourceUrl"], "transcoder-1")
            await kms.add_authorization(CHANNEL["kmsResourceUrl"], "transcoder-2")
            removed = await board.unauthorize_media_injector(CHANNEL)
            self.assertEqual(await kms.list_authorizations(CHANNEL["kmsResourceUrl"]), [])
            return removed

        self.assertEqual(asyncio.run(scenario()), ["transcoder-1", "transcoder-2"])


if __name__ == "__main__":
    unittest.main()
