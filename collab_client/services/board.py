"""Whiteboard channels and their encrypted contents."""

from __future__ import annotations

import asyncio
import json
import logging
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import aiofiles

from ..common.constants import CONTENT_TYPE_FILE, CONTENT_TYPE_STRING
from ..config import Config
from ..encryption.service import EncryptionService
from ..http_client import HttpClient
from ..page import Page
from ..utils import ServiceError, chunked


logger = logging.getLogger(__name__)

Channel = Dict[str, Any]


async def _read_image(image: Union[str, Path, bytes]) -> bytes:
    if isinstance(image, (bytes, bytearray)):
        return bytes(image)
    async with aiofiles.open(image, "rb") as handle:
        return await handle.read()


def _guess_mime_type(image: Union[str, Path, bytes], default: str = "image/png") -> str:
    if isinstance(image, (bytes, bytearray)):
        return default
    guessed, _ = mimetypes.guess_type(str(image))
    return guessed or default


class Board:
    """
    Board service: channels, contents and image uploads.

    Contents are encrypted with the channel's ``defaultEncryptionKeyUrl``
    before they leave the client, and decrypted on the way back.
    """

    def __init__(
        self,
        http: HttpClient,
        encryption: EncryptionService,
        config: Config,
        device_type: str = "WEB",
    ) -> None:
        self.http = http
        self.encryption = encryption
        self.config = config
        self.device_type = device_type

    async def create_channel(
        self, conversation: Dict[str, Any], channel: Optional[Channel] = None
    ) -> Channel:
        """
        Create a channel bound to a conversation.

        Args:
            conversation: Conversation with ``aclUrl`` and ``kmsResourceObjectUrl``.
            channel: Extra channel attributes.

        Returns:
            Created channel.
        """
        body = {
            "aclUrlLink": conversation.get("aclUrl"),
            "kmsMessage": {
                "method": "create",
                "uri": "/resources",
                "userIds": [conversation.get("kmsResourceObjectUrl")],
                "keyUris": [],
            },
        }
        body.update(channel or {})
        response = await self.http.request("POST", service="board", resource="/channels", body=body)
        return response.body

    async def get_channel(self, channel: Channel) -> Channel:
        response = await self.http.request("GET", uri=channel["channelUrl"])
        return response.body

    async def get_channels(
        self,
        conversation: Optional[Dict[str, Any]],
        channels_limit: Optional[int] = None,
        type: Optional[str] = None,
    ) -> Page:
        """
        List the channels of a conversation.

        Args:
            conversation: Conversation with an ``aclUrl``.
            channels_limit: Page size.
            type: ``whiteboard`` or ``annotated``.

        Returns:
            Page of channels.
        """
        if not conversation:
            raise ServiceError("`conversation` is required")

        qs = {"aclUrlLink": conversation.get("aclUrl"), "channelsLimit": channels_limit, "type": type}
        response = await self.http.request("GET", service="board", resource="/channels", qs=qs)
        return Page(response, self.http)

    async def delete_channel(
        self,
        conversation: Dict[str, Any],
        channel: Channel,
        prevent_delete_active_channel: bool = False,
    ) -> Any:
        """
        Unlink a channel from its conversation.

        Args:
            conversation: Owning conversation.
            channel: Channel to delete.
            prevent_delete_active_channel: Lock first so an active channel fails with 409.

        Returns:
            Response body.
        """
        auth_id = conversation.get("kmsResourceObjectUrl")
        body = {
            "aclLinkType": "INCOMING",
            "linkedAcl": conversation.get("aclUrl"),
            "kmsMessage": {
                "method": "delete",
                "uri": f"{channel.get('kmsResourceUrl')}/authorizations?authId={auth_id}",
            },
            "aclLinkOperation": "DELETE",
        }

        if prevent_delete_active_channel:
            await self.lock_channel_for_deletion(channel)

        response = await self.http.request("PUT", uri=f"{channel['aclUrl']}/links", body=body)
        return response.body

    async def lock_channel_for_deletion(self, channel: Channel) -> Any:
        response = await self.http.request(
            "POST", uri=f"{channel['channelUrl']}/lock", qs={"intent": "delete"}
        )
        return response.body

    async def keep_active(self, channel: Channel) -> Any:
        response = await self.http.request("POST", uri=f"{channel['channelUrl']}/keepAlive")
        return response.body

    async def ping(self) -> Any:
        response = await self.http.request("GET", service="board", resource="/ping")
        return response.body

    async def register(self, data: Dict[str, Any]) -> Any:
        """Register mercury bindings with the board service."""
        response = await self.http.request(
            "POST", service="board", resource="/registrations", body=data
        )
        return response.body

    async def register_to_share_mercury(
        self,
        channel: Channel,
        web_socket_url: str,
        mercury_connection_service_cluster_url: Optional[str],
        shared_mercury_enabled: bool = True,
    ) -> Any:
        """
        Bind a channel to an existing mercury connection.

        Raises:
            ServiceError: If mercury is not connected or sharing is disabled.
        """
        if not mercury_connection_service_cluster_url:
            raise ServiceError(
                "`mercuryConnectionServiceClusterUrl` is not defined, make sure mercury is connected"
            )
        if not shared_mercury_enabled:
            raise ServiceError("`web-shared-mercury` is not enabled")

        body = {
            "mercuryConnectionServiceClusterUrl": mercury_connection_service_cluster_url,
            "webSocketUrl": web_socket_url,
            "action": "ADD",
        }
        response = await self.http.request("POST", uri=f"{channel['channelUrl']}/register", body=body)
        return response.body

    async def unregister_from_shared_mercury(
        self, channel: Channel, binding: str, web_socket_url: str
    ) -> Any:
        body = {"binding": binding, "webSocketUrl": web_socket_url, "action": "REMOVE"}
        response = await self.http.request("POST", uri=f"{channel['channelUrl']}/register", body=body)
        return response.body

    async def get_contents(self, channel: Channel, contents_limit: Optional[int] = None) -> Page:
        qs = {"contentsLimit": contents_limit or self.config.board_contents_per_page_for_get}
        response = await self.http.request("GET", uri=f"{channel['channelUrl']}/contents", qs=qs)
        return Page(response, self.http)

    async def add_content(self, channel: Channel, contents: Sequence[Dict[str, Any]]) -> List[Any]:
        """
        Encrypt and add contents to a channel.

        Chunks are sent one after another; concurrent patches to the same
        channel would race.

        Args:
            channel: Target channel.
            contents: Curves, text and images.

        Returns:
            One response body per chunk.
        """
        results = []
        for part in chunked(list(contents), self.config.board_contents_per_page_for_add):
            results.append(await self._add_content_chunk(channel, part))
        return results

    async def _add_content_chunk(self, channel: Channel, part: List[Dict[str, Any]]) -> Any:
        body = await self.encrypt_contents(channel["defaultEncryptionKeyUrl"], part)
        response = await self.http.request("POST", uri=f"{channel['channelUrl']}/contents", body=body)
        return response.body

    async def add_image(
        self,
        channel: Channel,
        image: Union[str, Path, bytes],
        metadata: Optional[Dict[str, Any]] = None,
        mime_type: Optional[str] = None,
    ) -> List[Any]:
        """
        Upload an image and add it to the channel as FILE content.

        Args:
            channel: Target channel.
            image: Image path or raw bytes.
            metadata: Metadata such as ``displayName``.
            mime_type: Overrides the type guessed from the file name.

        Returns:
            Result of ``add_content``.
        """
        data = await _read_image(image)
        scr = await self._upload_image(channel, data)
        return await self.add_content(channel, [{
            "type": CONTENT_TYPE_FILE,
            "metadata": metadata,
            "file": {
                "mimeType": mime_type or _guess_mime_type(image),
                "scr": scr,
                "size": len(data),
                "url": scr.get("loc"),
            },
        }])

    async def set_snapshot_image(
        self,
        channel: Channel,
        image: Union[str, Path, bytes],
        width: int = 1600,
        height: int = 900,
        mime_type: Optional[str] = None,
    ) -> Channel:
        """Upload a snapshot to the hidden space and attach it to the channel."""
        data = await _read_image(image)
        scr = await self._upload_image(channel, data, hidden_space=True)
        key_url = channel["defaultEncryptionKeyUrl"]
        encrypted_scr = await self.encryption.encrypt_scr(key_url, scr)

        body = {
            "image": {
                "url": scr.get("loc"),
                "height": height,
                "width": width,
                "mimeType": mime_type or _guess_mime_type(image),
                "scr": encrypted_scr,
                "encryptionKeyUrl": key_url,
                "fileSize": len(data),
            }
        }
        response = await self.http.request("PATCH", uri=channel["channelUrl"], body=body)
        return response.body

    async def _upload_image(
        self, channel: Channel, data: bytes, hidden_space: bool = False
    ) -> Dict[str, Any]:
        scr, cdata = await self.encryption.encrypt_binary(data)
        space_url = await self._get_space_url(channel, hidden_space)
        uploaded = await self.http.upload(
            f"{space_url}/upload_sessions", cdata, qs={"transcode": True}
        )
        scr["loc"] = (uploaded or {}).get("downloadUrl")
        return scr

    async def _get_space_url(self, channel: Channel, hidden_space: bool = False) -> str:
        space = "hidden" if hidden_space else "open"
        response = await self.http.request("PUT", uri=f"{channel['channelUrl']}/spaces/{space}")
        return response.body["spaceUrl"]

    async def encrypt_contents(
        self, encryption_key_url: str, contents: Sequence[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """
        Encrypt contents for upload.

        A content with a ``file`` is FILE content, everything else is STRING.

        Args:
            encryption_key_url: Channel's default key url.
            contents: Contents to encrypt.

        Returns:
            Encrypted contents in wire format.
        """
        async def encrypt_one(content: Dict[str, Any]) -> Dict[str, Any]:
            if content.get("file"):
                encrypted = await self.encrypt_single_file_content(encryption_key_url, content)
                content_type = CONTENT_TYPE_FILE
            else:
                encrypted = await self.encrypt_single_content(encryption_key_url, content)
                content_type = CONTENT_TYPE_STRING

            result = {
                "device": self.device_type,
                "type": content_type,
                "encryptionKeyUrl": encryption_key_url,
            }
            for name in ("file", "payload"):
                if name in encrypted:
                    result[name] = encrypted[name]
            return result

        return list(await asyncio.gather(*(encrypt_one(content) for content in contents)))

    async def encrypt_single_content(
        self, encryption_key_url: str, content: Dict[str, Any]
    ) -> Dict[str, Any]:
        payload = await self.encryption.encrypt_text(encryption_key_url, json.dumps(content))
        return {"payload": payload, "encryptionKeyUrl": encryption_key_url}

    async def encrypt_single_file_content(
        self, encryption_key_url: str, content: Dict[str, Any]
    ) -> Dict[str, Any]:
        file = dict(content["file"])
        file["scr"] = await self.encryption.encrypt_scr(encryption_key_url, file["scr"])

        metadata = content.get("metadata")
        if content.get("displayName"):
            metadata = dict(metadata or {}, displayName=content["displayName"])
        if metadata:
            metadata = await self.encryption.encrypt_text(encryption_key_url, json.dumps(metadata))

        return {"file": file, "payload": metadata, "encryptionKeyUrl": encryption_key_url}

    async def decrypt_contents(self, contents: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Decrypt a page of contents.

        Args:
            contents: Mapping with an ``items`` list.

        Returns:
            Decrypted contents without ``payload``/``encryptionKeyUrl``.
        """
        async def decrypt_one(content: Dict[str, Any]) -> Dict[str, Any]:
            content = dict(content)
            key_url = content.pop("encryptionKeyUrl", None)
            if content.get("type") == CONTENT_TYPE_FILE:
                decrypted = await self.decrypt_single_file_content(key_url, content)
                decrypted.pop("payload", None)
                return decrypted

            decrypted = await self.decrypt_single_content(key_url, content.pop("payload", None))
            if not isinstance(decrypted, dict):
                return decrypted
            for name, value in content.items():
                decrypted.setdefault(name, value)
            return decrypted

        items = contents.get("items") or []
        return list(await asyncio.gather(*(decrypt_one(content) for content in items)))

    async def decrypt_single_content(self, encryption_key_url: Optional[str], encrypted_data: str) -> Any:
        plaintext = await self.encryption.decrypt_text(encryption_key_url, encrypted_data)
        return json.loads(plaintext)

    async def decrypt_single_file_content(
        self, encryption_key_url: Optional[str], encrypted_content: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Decrypt FILE content: the file scr and the metadata payload.

        Metadata that is not valid JSON becomes an empty mapping.
        """
        content = dict(encrypted_content)
        file = dict(content.get("file") or {})
        file["scr"] = await self.encryption.decrypt_scr(encryption_key_url, file.get("scr"))
        content["file"] = file

        decrypted_metadata = ""
        if content.get("payload"):
            decrypted_metadata = await self.encryption.decrypt_text(
                encryption_key_url, content["payload"]
            )

        try:
            content["metadata"] = json.loads(decrypted_metadata)
        except ValueError:
            content["metadata"] = {}
        if isinstance(content["metadata"], dict) and content["metadata"].get("displayName"):
            content["displayName"] = content["metadata"]["displayName"]
        return content

    async def process_activity_event(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Decrypt the payload of a board activity event."""
        message = dict(message)
        key_url = (message.get("envelope") or {}).get("encryptionKeyUrl")
        if message.get("contentType") == CONTENT_TYPE_FILE:
            message["payload"] = await self.decrypt_single_file_content(key_url, message["payload"])
        else:
            message["payload"] = await self.decrypt_single_content(key_url, message["payload"])
        return message

    async def delete_all_content(self, channel: Channel) -> Any:
        response = await self.http.request("DELETE", uri=f"{channel['channelUrl']}/contents")
        return response.body

    async def delete_partial_content(
        self, channel: Channel, contents_to_keep: Sequence[Dict[str, Any]]
    ) -> Any:
        """Delete every content of a channel except ``contents_to_keep``."""
        body = [{"contentId": content["contentId"]} for content in contents_to_keep if "contentId" in content]
        response = await self.http.request(
            "POST",
            uri=f"{channel['channelUrl']}/contents",
            body=body,
            qs={"clearBoard": True},
        )
        return response.body

    async def authorize_media_injector(self, board: Optional[Channel]) -> Optional[str]:
        """
        Authorize the transcoder so the board can be shared to mobile.

        Failures are logged and return None; sharing still works without it.

        Returns:
            Bearer of the new authorization, if any.
        """
        if not board:
            raise ServiceError("cannot authorize transcoder without board")

        try:
            request = await self.encryption.kms.prepare_request({
                "method": "create",
                "uri": "/authorizations",
                "resourceUri": board.get("kmsResourceUrl"),
                "anonymous": 1,
            })
            response = await self.http.request(
                "PUT",
                uri=f"{board['channelUrl']}/sharePolicies/transcoder",
                body={"kmsMessage": request["wrapped"]},
            )
            message = await self.encryption.kms.decrypt_kms_message(
                (response.body or {}).get("kmsResponse")
            )
        except Exception as exc:
            logger.warning("failed to authorize media injector: %s", exc)
            return None

        authorizations = (message or {}).get("authorizations") or []
        if authorizations:
            return authorizations[0].get("bearer")
        return None

    async def unauthorize_media_injector(self, board: Optional[Channel]) -> List[str]:
        """
        Remove every transcoder authorization of a board.

        Returns:
            Auth ids removed; ids that failed to be removed are skipped.
        """
        if not board:
            raise ServiceError("cannot unauthorize transcoder without board")

        kro_uri = board.get("kmsResourceUrl")
        authorizations = await self.encryption.kms.list_authorizations(kro_uri)

        async def remove(auth_id: str) -> Optional[str]:
            try:
                await self.encryption.kms.remove_authorization(kro_uri, auth_id)
            except Exception as exc:
                logger.warning("failed to remove authorization %s: %s", auth_id, exc)
                return None
            return auth_id

        removed = await asyncio.gather(*(remove(auth["authId"]) for auth in authorizations))
        return [auth_id for auth_id in removed if auth_id is not None]
