from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum
from threading import Lock
import logging

logger = logging.getLogger(__name__)


class ActivityType(str, Enum):
    EXPENSE_CREATED = "EXPENSE_CREATED"
    EXPENSE_UPDATED = "EXPENSE_UPDATED"
    EXPENSE_DELETED = "EXPENSE_DELETED"
    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    SETTLEMENT_COMPLETED = "SETTLEMENT_COMPLETED"
    SETTLEMENT_CANCELLED = "SETTLEMENT_CANCELLED"


class ActivityEvent(BaseModel):
    activity_type: ActivityType
    group_id: str
    user_id: str
    target_user_id: Optional[str] = None
    description: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)


class ActivityLog:
    """
    Append-only activity feed.

    The service schedules `emit` as a background task once an operation has
    succeeded, so nothing in the engine waits on it.
    """

    def __init__(self):
        self._events: List[ActivityEvent] = []
        self._lock = Lock()

    def emit(self, event: ActivityEvent) -> None:
        with self._lock:
            self._events.append(event)
        logger.info(f"Activity {event.activity_type.value} in group {event.group_id}: {event.description}")

    def for_group(self, group_id: str) -> List[ActivityEvent]:
        with self._lock:
            events = [e for e in self._events if e.group_id == group_id]
        return sorted(events, key=lambda e: e.created_at, reverse=True)
