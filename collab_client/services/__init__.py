"""Service layer built on the http client, encryption and decryption."""

from .avatar import Avatar, AvatarUrlBatcher
from .board import Board
from .conversation import Conversation
from .rooms import Rooms
from .team import Team

__all__ = ["Avatar", "AvatarUrlBatcher", "Board", "Conversation", "Rooms", "Team"]
