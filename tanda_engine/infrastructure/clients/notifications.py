"""Notification scheduling boundary (delivery transport lives outside the engine)"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Protocol

logger = logging.getLogger(__name__)


class NotificationScheduler(Protocol):
    async def schedule(self, tanda_id: str, due_at: datetime, payload: Dict[str, Any]) -> None: ...

    async def cancel_all(self, tanda_id: str) -> None: ...


@dataclass
class ScheduledNotification:
    tanda_id: str
    due_at: datetime
    payload: Dict[str, Any] = field(default_factory=dict)


class InMemoryNotificationScheduler:
    """Keeps scheduled reminders in memory; a device integration replaces it"""

    def __init__(self):
        self.scheduled: List[ScheduledNotification] = []

    async def schedule(self, tanda_id: str, due_at: datetime, payload: Dict[str, Any]) -> None:
        self.scheduled.append(ScheduledNotification(tanda_id=tanda_id, due_at=due_at, payload=payload))
        logger.info(
            "Reminder scheduled",
            extra={"tanda_id": tanda_id, "due_at": due_at.isoformat(), "type": payload.get("type")},
        )

    async def cancel_all(self, tanda_id: str) -> None:
        before = len(self.scheduled)
        self.scheduled = [n for n in self.scheduled if n.tanda_id != tanda_id]
        if before != len(self.scheduled):
            logger.info("Reminders cancelled", extra={"tanda_id": tanda_id, "count": before - len(self.scheduled)})

    def for_tanda(self, tanda_id: str) -> List[ScheduledNotification]:
        return [n for n in self.scheduled if n.tanda_id == tanda_id]
