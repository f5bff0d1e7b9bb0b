"""Public ("hydra") identifier helpers."""

import base64
from typing import Dict, Iterable, Optional
from urllib.parse import urlparse

from .constants import DEFAULT_CLUSTER, TAG_ONE_ON_ONE


def _to_base64url(value: str) -> str:
    encoded = base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii")
    return encoded.rstrip("=")


def _from_base64url(value: str) -> str:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding).decode("utf-8")


def construct_hydra_id(kind: str, uuid: str, cluster: str = DEFAULT_CLUSTER) -> str:
    """
    Build a public id such as ``ciscospark://us/ROOM/<uuid>`` in base64url.

    Args:
        kind: Resource type (room, people, message...).
        uuid: Internal uuid.
        cluster: Cluster string.

    Returns:
        Public identifier.
    """
    return _to_base64url(f"ciscospark://{cluster}/{kind.upper()}/{uuid}")


def build_hydra_room_id(uuid: str, cluster: str = DEFAULT_CLUSTER) -> str:
    return construct_hydra_id("room", uuid, cluster)


def build_hydra_person_id(uuid: str, cluster: str = DEFAULT_CLUSTER) -> str:
    return construct_hydra_id("people", uuid, cluster)


def deconstruct_hydra_id(hydra_id: str) -> Dict[str, str]:
    """
    Split a public id back into its parts.

    Args:
        hydra_id: Public identifier.

    Returns:
        Mapping with ``id``, ``type`` and ``cluster``.
    """
    try:
        payload = _from_base64url(hydra_id)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValueError(f"Invalid public id: {hydra_id}") from exc
    parts = payload.split("/")
    if len(parts) < 3:
        raise ValueError(f"Invalid public id: {hydra_id}")
    return {"id": parts[-1], "type": parts[-2], "cluster": parts[-3]}


def get_hydra_room_type(tags: Optional[Iterable[str]]) -> str:
    """Return ``direct`` for one-on-one conversations, otherwise ``group``."""
    for tag in tags or ():
        if tag.startswith(TAG_ONE_ON_ONE):
            return "direct"
    return "group"


def get_hydra_cluster_string(
    conversation_url: Optional[str], clusters: Optional[Dict[str, str]] = None
) -> str:
    """
    Resolve the cluster string for a conversation url.

    Args:
        conversation_url: Url of the conversation.
        clusters: Optional host to cluster mapping.

    Returns:
        Cluster string, ``us`` unless the host is mapped elsewhere.
    """
    if not conversation_url or not clusters:
        return DEFAULT_CLUSTER
    host = urlparse(conversation_url).netloc
    return clusters.get(host, DEFAULT_CLUSTER)
