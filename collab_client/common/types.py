"""Type definitions and data models."""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class AvatarUrl:
    """Avatar url delivered to a single avatar lookup."""
    uuid: str
    size: int
    url: str
    has_default_avatar: bool = False
    requested_size: Optional[int] = None

    @property
    def substituted(self) -> bool:
        return self.requested_size is not None and self.requested_size != self.size

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "uuid": self.uuid,
            "size": self.size,
            "url": self.url,
            "hasDefaultAvatar": self.has_default_avatar,
            "requestedSize": self.requested_size,
        }


@dataclass
class RoomInfo:
    """Read status summary for a room."""
    id: str
    type: str
    last_seen_activity_date: str
    title: Optional[str] = None
    last_activity_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "lastSeenActivityDate": self.last_seen_activity_date,
        }
        if self.title:
            data["title"] = self.title
        if self.last_activity_date:
            data["lastActivityDate"] = self.last_activity_date
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoomInfo":
        """Create from dictionary."""
        return cls(
            id=data.get("id", ""),
            type=data.get("type", "group"),
            last_seen_activity_date=data.get("lastSeenActivityDate", ""),
            title=data.get("title"),
            last_activity_date=data.get("lastActivityDate"),
        )
