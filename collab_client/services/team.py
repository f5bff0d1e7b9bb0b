"""Teams: groups of conversations sharing one membership list."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from ..conversation.decryptor import Decryptor
from ..conversation.transforms import decrypt_text_prop
from ..encryption.service import EncryptionService
from ..http_client import HttpClient
from ..utils import ServiceError


logger = logging.getLogger(__name__)

Ref = Union[str, Dict[str, Any]]

TEAM_OBJECT_TYPE = "team"
CONVERSATION_OBJECT_TYPE = "conversation"
PERSON_OBJECT_TYPE = "person"


def _id(ref: Ref, name: str) -> str:
    value = ref.get("id") if isinstance(ref, dict) else ref
    if not value:
        raise ServiceError(f"`{name}` must have an `id`.")
    return str(value)


def _person(ref: Ref) -> Dict[str, Any]:
    return {"objectType": PERSON_OBJECT_TYPE, "id": _id(ref, "person")}


def _participants(participants: Iterable[Ref]) -> Dict[str, List[Dict[str, Any]]]:
    return {"items": [_person(participant) for participant in participants]}


class Team:
    """
    Team service.

    Membership and conversation changes are posted as activities to the
    conversation service; each call returns the resulting activity.
    """

    def __init__(
        self,
        http: HttpClient,
        encryption: EncryptionService,
        decryptor: Decryptor,
    ) -> None:
        self.http = http
        self.encryption = encryption
        self.decryptor = decryptor

    async def _create_key(self) -> str:
        keys = await self.encryption.kms.create_unbound_keys(1)
        return keys[0]["uri"]

    async def _encrypt_fields(self, key_url: str, obj: Dict[str, Any], names: Iterable[str]) -> None:
        names = [name for name in names if obj.get(name)]
        ciphertexts = await asyncio.gather(
            *(self.encryption.encrypt_text(key_url, obj[name]) for name in names)
        )
        obj.update(zip(names, ciphertexts))

    async def _decrypt_team(self, team: Any) -> Any:
        if not isinstance(team, dict):
            return team
        team = copy.deepcopy(team)
        key_url = team.get("encryptionKeyUrl")
        await asyncio.gather(
            decrypt_text_prop(self.decryptor.context, "displayName", key_url, team),
            decrypt_text_prop(self.decryptor.context, "summary", key_url, team),
        )

        conversations = team.get("conversations")
        if isinstance(conversations, dict) and isinstance(conversations.get("items"), list):
            results = await asyncio.gather(
                *(self.decryptor.decrypt_conversation(item) for item in conversations["items"])
            )
            conversations["items"] = [result.value for result in results]
        return team

    async def _post_activity(self, verb: str, obj: Dict[str, Any], target: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
        body = {"verb": verb, "object": obj, "target": target}
        body.update(extra)
        logger.debug("posting %s activity to %s %s", verb, target.get("objectType"), target.get("id"))
        response = await self.http.request(
            "POST", service="conversation", resource="activities", body=body
        )
        return response.body

    def _team_target(self, team: Ref) -> Dict[str, Any]:
        return {"objectType": TEAM_OBJECT_TYPE, "id": _id(team, "team")}

    async def create(
        self,
        display_name: str,
        summary: Optional[str] = None,
        participants: Iterable[Ref] = (),
    ) -> Dict[str, Any]:
        """
        Create a team encrypted under a new key.

        Args:
            display_name: Team name.
            summary: Optional description.
            participants: Members, as ids or mappings with an ``id``.

        Returns:
            The created team, decrypted.
        """
        if not display_name:
            raise ServiceError("`display_name` is required.")

        participants = list(participants)
        key_url = await self._create_key()
        body: Dict[str, Any] = {
            "objectType": TEAM_OBJECT_TYPE,
            "displayName": display_name,
            "summary": summary,
            "encryptionKeyUrl": key_url,
            "participants": _participants(participants),
            "kmsMessage": {
                "method": "create",
                "uri": "/resources",
                "userIds": [_id(participant, "participant") for participant in participants],
                "keyUris": [key_url],
            },
        }
        await self._encrypt_fields(key_url, body, ("displayName", "summary"))
        if body["summary"] is None:
            del body["summary"]

        response = await self.http.request("POST", service="conversation", resource="teams", body=body)
        return await self._decrypt_team(response.body)

    async def get(self, team: Ref, **qs: Any) -> Dict[str, Any]:
        response = await self.http.request(
            "GET", service="conversation", resource=f"teams/{_id(team, 'team')}", qs=qs
        )
        return await self._decrypt_team(response.body)

    async def list(self, **qs: Any) -> List[Dict[str, Any]]:
        response = await self.http.request("GET", service="conversation", resource="teams", qs=qs)
        items = (response.body or {}).get("items") or []
        return list(await asyncio.gather(*(self._decrypt_team(item) for item in items)))

    async def update(self, team: Dict[str, Any], obj: Dict[str, Any]) -> Dict[str, Any]:
        """Update a team's display name or summary."""
        key_url = team.get("encryptionKeyUrl")
        if not key_url:
            raise ServiceError("`team` must have an `encryptionKeyUrl`.")
        obj = dict(obj, objectType=obj.get("objectType", TEAM_OBJECT_TYPE))
        await self._encrypt_fields(key_url, obj, ("displayName", "summary"))
        return await self._post_activity(
            "update", obj, self._team_target(team), encryptionKeyUrl=key_url
        )

    async def create_conversation(
        self,
        team: Ref,
        display_name: str,
        participants: Iterable[Ref] = (),
    ) -> Dict[str, Any]:
        """
        Create a new conversation inside a team.

        Returns:
            The created conversation, decrypted.
        """
        participants = list(participants)
        key_url = await self._create_key()
        body: Dict[str, Any] = {
            "objectType": CONVERSATION_OBJECT_TYPE,
            "displayName": display_name,
            "encryptionKeyUrl": key_url,
            "defaultActivityEncryptionKeyUrl": key_url,
            "participants": _participants(participants),
            "kmsMessage": {
                "method": "create",
                "uri": "/resources",
                "userIds": [_id(participant, "participant") for participant in participants],
                "keyUris": [key_url],
            },
        }
        await self._encrypt_fields(key_url, body, ("displayName",))

        response = await self.http.request(
            "POST",
            service="conversation",
            resource=f"teams/{_id(team, 'team')}/conversations",
            body=body,
        )
        result = await self.decryptor.decrypt_conversation(response.body)
        return result.value

    async def add_conversation(self, team: Dict[str, Any], conversation: Dict[str, Any]) -> Dict[str, Any]:
        obj = {"objectType": CONVERSATION_OBJECT_TYPE, "id": _id(conversation, "conversation")}
        kms_message = {
            "method": "create",
            "uri": "/authorizations",
            "resourceUri": conversation.get("kmsResourceObjectUrl"),
            "userIds": [team.get("kmsResourceObjectUrl")],
        }
        return await self._post_activity("add", obj, self._team_target(team), kmsMessage=kms_message)

    async def remove_conversation(self, team: Ref, conversation: Ref) -> Dict[str, Any]:
        obj = {"objectType": CONVERSATION_OBJECT_TYPE, "id": _id(conversation, "conversation")}
        return await self._post_activity("remove", obj, self._team_target(team))

    async def join_conversation(self, team: Ref, conversation: Ref) -> Dict[str, Any]:
        """Join an open conversation of a team the current user belongs to."""
        response = await self.http.request(
            "POST",
            service="conversation",
            resource=(
                f"teams/{_id(team, 'team')}/conversations/"
                f"{_id(conversation, 'conversation')}/participants"
            ),
        )
        return response.body

    async def add_member(self, team: Dict[str, Any], member: Ref) -> Dict[str, Any]:
        kms_message = {
            "method": "create",
            "uri": "/authorizations",
            "resourceUri": team.get("kmsResourceObjectUrl"),
            "userIds": [_id(member, "member")],
        }
        return await self._post_activity(
            "add", _person(member), self._team_target(team), kmsMessage=kms_message
        )

    async def remove_member(self, team: Dict[str, Any], member: Ref) -> Dict[str, Any]:
        member_id = _id(member, "member")
        kms_message = {
            "method": "delete",
            "uri": f"{team.get('kmsResourceObjectUrl')}/authorizations?authId={member_id}",
        }
        return await self._post_activity(
            "leave", _person(member), self._team_target(team), kmsMessage=kms_message
        )

    async def assign_moderator(self, team: Ref, member: Ref) -> Dict[str, Any]:
        return await self._post_activity("assignModerator", _person(member), self._team_target(team))

    async def unassign_moderator(self, team: Ref, member: Ref) -> Dict[str, Any]:
        return await self._post_activity("unassignModerator", _person(member), self._team_target(team))

    async def archive(self, target: Dict[str, Any]) -> Dict[str, Any]:
        """Archive a team or a team conversation."""
        return await self._set_archived("archive", target)

    async def unarchive(self, target: Dict[str, Any]) -> Dict[str, Any]:
        return await self._set_archived("unarchive", target)

    async def _set_archived(self, verb: str, target: Dict[str, Any]) -> Dict[str, Any]:
        object_type = target.get("objectType")
        if object_type not in (TEAM_OBJECT_TYPE, CONVERSATION_OBJECT_TYPE):
            raise ServiceError("`target` must be a team or a conversation.")
        ref = {"objectType": object_type, "id": _id(target, object_type)}
        return await self._post_activity(verb, ref, dict(ref))
