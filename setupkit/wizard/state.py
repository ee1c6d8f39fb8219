"""
Setup Session State

The single persisted record of where the setup flow stands. There is
one state per store; every transition overwrites it in place.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..utils.clock import utc_now


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


class SessionStatus(str, Enum):
    """Lifecycle status of the setup session."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DISABLED = "disabled"


@dataclass
class SessionState:
    """Progress record for the setup session."""
    status: SessionStatus = SessionStatus.PENDING
    current_step: str = ""
    progress: int = 0
    message: str = ""
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def fresh(cls, now: Optional[datetime] = None) -> "SessionState":
        """Create the state a brand-new store reports."""
        now = now or utc_now()
        return cls(created_at=now, updated_at=now)

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    def advance(self, step: str, progress: int, message: str, now: datetime,
                status: SessionStatus = SessionStatus.IN_PROGRESS) -> None:
        """Move to a new step, keeping the creation time."""
        self.status = status
        self.current_step = step
        self.progress = progress
        self.message = message
        self.updated_at = now
        if status == SessionStatus.COMPLETED:
            self.completed_at = now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "current_step": self.current_step,
            "progress": self.progress,
            "message": self.message,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionState":
        return cls(
            status=SessionStatus(data.get("status", "pending")),
            current_step=data.get("current_step", ""),
            progress=int(data.get("progress", 0)),
            message=data.get("message", ""),
            completed_at=_parse_time(data.get("completed_at")),
            created_at=_parse_time(data.get("created_at")),
            updated_at=_parse_time(data.get("updated_at")),
        )
