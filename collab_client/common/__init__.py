"""Common constants, types and identifier helpers."""

from .constants import DEFAULT_CLUSTER, JWE_SEGMENT_COUNT
from .hydra import build_hydra_person_id, build_hydra_room_id, deconstruct_hydra_id, get_hydra_room_type
from .types import AvatarUrl, RoomInfo

__all__ = [
    "DEFAULT_CLUSTER",
    "JWE_SEGMENT_COUNT",
    "AvatarUrl",
    "RoomInfo",
    "build_hydra_person_id",
    "build_hydra_room_id",
    "deconstruct_hydra_id",
    "get_hydra_room_type",
]
