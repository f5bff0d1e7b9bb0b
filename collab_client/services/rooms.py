"""Public rooms API, read status summaries and room events."""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from ..common.constants import (
    ACTIVITY_VERB_CREATE,
    ACTIVITY_VERB_LOCK,
    ACTIVITY_VERB_UNLOCK,
    ACTIVITY_VERB_UPDATE,
    READ_STATUS_SINCE_DAYS,
    ROOM_EVENT_CREATED,
    ROOM_EVENT_UPDATED,
    TAG_LOCKED,
)
from ..common.hydra import (
    build_hydra_person_id,
    build_hydra_room_id,
    deconstruct_hydra_id,
    get_hydra_cluster_string,
    get_hydra_room_type,
)
from ..common.types import RoomInfo
from ..http_client import HttpClient
from ..page import Page
from .conversation import Conversation


logger = logging.getLogger(__name__)

RoomRef = Union[str, Dict[str, Any]]
Listener = Callable[[Dict[str, Any]], Any]

NEVER_SEEN = "1970-01-01T00:00:00.000Z"


def _room_id(room: RoomRef) -> str:
    return room.get("id") if isinstance(room, dict) else room


def build_room_info(conversation: Dict[str, Any], clusters: Optional[Dict[str, str]] = None) -> RoomInfo:
    """
    Summarize a conversation's read status.

    Args:
        conversation: Conversation from the conversation service.
        clusters: Optional host to cluster mapping.

    Returns:
        Room info with a public room id.
    """
    cluster = get_hydra_cluster_string(conversation.get("url"), clusters)
    title = conversation.get("displayName") or conversation.get("computedTitle")
    last_activity_date = (
        conversation.get("lastReadableActivityDate")
        or conversation.get("lastRelevantActivityDate")
    )
    return RoomInfo(
        id=build_hydra_room_id(conversation["id"], cluster),
        type=get_hydra_room_type(conversation.get("tags")),
        last_seen_activity_date=conversation.get("lastSeenActivityDate") or NEVER_SEEN,
        title=title,
        last_activity_date=last_activity_date,
    )


def build_room_info_list(
    conversations: List[Dict[str, Any]], clusters: Optional[Dict[str, str]] = None
) -> List[RoomInfo]:
    """Build room infos sorted by most recent activity first."""
    infos = [build_room_info(conversation, clusters) for conversation in conversations]
    infos.sort(key=lambda info: info.last_activity_date or "", reverse=True)
    return infos


class Rooms:
    """
    Rooms are the public view of group and direct conversations.

    Room events are delivered to listeners registered with ``on()``; feed
    conversation activities to ``handle_activity()``.
    """

    def __init__(
        self,
        http: HttpClient,
        conversation: Conversation,
        clusters: Optional[Dict[str, str]] = None,
    ) -> None:
        self.http = http
        self.conversation = conversation
        self.clusters = clusters or {}
        self.event_envelope: Dict[str, Any] = {"resource": "rooms", "data": {}}
        self._listeners: Dict[str, List[Listener]] = {}

    async def create(self, room: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.http.request("POST", service="hydra", resource="rooms", body=room)
        return response.body

    async def get(self, room: RoomRef, **qs: Any) -> Dict[str, Any]:
        response = await self.http.request(
            "GET", service="hydra", resource=f"rooms/{_room_id(room)}", qs=qs
        )
        body = response.body
        if isinstance(body, dict) and "items" in body:
            return body["items"]
        return body

    async def list(self, **qs: Any) -> Page:
        """
        List the rooms of the current user.

        Args:
            **qs: Query string, e.g. ``max=10``.

        Returns:
            First page of rooms.
        """
        response = await self.http.request("GET", service="hydra", resource="rooms/", qs=qs)
        return Page(response, self.http)

    async def update(self, room: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.http.request(
            "PUT", service="hydra", resource=f"rooms/{room['id']}", body=room
        )
        return response.body

    async def remove(self, room: RoomRef) -> Optional[Dict[str, Any]]:
        response = await self.http.request(
            "DELETE", service="hydra", resource=f"rooms/{_room_id(room)}"
        )
        if response.status_code == 204:
            return None
        return response.body

    async def list_with_read_status(self, max_recent: int = 0) -> Dict[str, List[Dict[str, Any]]]:
        """
        List every room with its last activity and last seen dates.

        Args:
            max_recent: When positive, only that many rooms with activity in
                the last two weeks. At most 100.

        Returns:
            ``{"items": [...]}`` sorted by most recent activity first.

        Raises:
            ValueError: If ``max_recent`` is outside 0..100.
        """
        if max_recent < 0 or max_recent > 100:
            raise ValueError(
                "rooms.list_with_read_status: optional max_recent parameter "
                "must be an integer between 1 and 100"
            )

        options: Dict[str, Any] = {
            "activitiesLimit": 0,
            "computeTitleIfEmpty": True,
            "conversationsLimit": 1000,
            "isActive": True,
        }
        if max_recent > 0:
            since = datetime.now(timezone.utc) - timedelta(days=READ_STATUS_SINCE_DAYS)
            options["conversationsLimit"] = max_recent
            options["sinceDate"] = int(since.timestamp() * 1000)

        conversations = await self.conversation.list(**options)
        infos = build_room_info_list(conversations, self.clusters)
        return {"items": [info.to_dict() for info in infos]}

    async def get_with_read_status(self, room_id: str) -> Dict[str, Any]:
        """Read status of one room, by public room id."""
        parts = deconstruct_hydra_id(room_id)
        conversation = await self.conversation.get(
            parts["id"], computeTitleIfEmpty=True, activitiesLimit=0
        )
        return build_room_info(conversation, self.clusters).to_dict()

    def on(self, event: str, callback: Listener) -> None:
        """Register a listener for ``created`` or ``updated`` room events."""
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Optional[Listener] = None) -> None:
        if callback is None:
            self._listeners.pop(event, None)
            return
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def _trigger(self, event: str, payload: Dict[str, Any]) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(payload)
            except Exception as exc:
                logger.error("rooms:%s listener failed: %s", event, exc)

    def handle_activity(self, activity: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Turn a conversation activity into a room event and notify listeners.

        Args:
            activity: Activity from the conversation service.

        Returns:
            The event delivered, or None if the activity has no room event.
        """
        verb = activity.get("verb")
        if verb == ACTIVITY_VERB_CREATE:
            event_type = ROOM_EVENT_CREATED
        elif verb in (ACTIVITY_VERB_UPDATE, ACTIVITY_VERB_LOCK, ACTIVITY_VERB_UNLOCK):
            logger.debug("generating a rooms:updated based on %s activity", verb)
            event_type = ROOM_EVENT_UPDATED
        else:
            return None

        event = self.get_room_event(activity, event_type)
        if event is not None:
            self._trigger(event_type, event)
        return event

    def get_room_event(self, activity: Dict[str, Any], event_type: str) -> Optional[Dict[str, Any]]:
        """Build a webhook style room event; failures are logged and return None."""
        try:
            event = copy.deepcopy(self.event_envelope)
            data = event.setdefault("data", {})
            cluster = get_hydra_cluster_string(activity.get("url"), self.clusters)
            obj = activity["object"]
            tags = obj.get("tags")

            event["event"] = event_type
            data["created"] = activity.get("published")
            event["actorId"] = build_hydra_person_id(activity["actor"]["entryUUID"], cluster)
            if obj.get("id"):
                data["id"] = build_hydra_room_id(obj["id"], cluster)
            else:
                data["id"] = build_hydra_room_id(activity["target"]["id"], cluster)

            if event_type == ROOM_EVENT_CREATED:
                data["creatorId"] = build_hydra_person_id(activity["actor"]["entryUUID"], cluster)
                data["lastActivity"] = activity.get("published")
            elif event_type == ROOM_EVENT_UPDATED:
                if activity.get("verb") == ACTIVITY_VERB_UPDATE:
                    tags = activity["target"].get("tags")
                if obj.get("creatorUUID"):
                    data["creatorId"] = build_hydra_person_id(obj["creatorUUID"], cluster)
            else:
                raise ValueError("unexpected event type")

            tags = tags or []
            data["type"] = get_hydra_room_type(tags)
            data["isLocked"] = TAG_LOCKED in tags
            return event
        except (KeyError, TypeError, ValueError) as exc:
            logger.error(
                "Unable to generate event from activity for rooms:%s event: %s", event_type, exc
            )
            return None
