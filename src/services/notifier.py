"""Toast-style outcome notifications for operator actions."""

from typing import Callable, Literal, Optional

from pydantic import BaseModel, Field

from src.services.supabase_client import utc_now
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

Level = Literal["success", "warning", "error"]


class Notification(BaseModel):
    """One outcome message."""
    level: Level
    message: str
    created_at: str = Field(default_factory=utc_now)


class Notifier:
    """
    Fire-and-forget notification surface.

    Every notification is logged and kept in `outbox` so a handler can return
    it to the client. An optional sink receives each one as well; sink errors
    are logged and never reach the caller.
    """

    def __init__(self, sink: Optional[Callable[[Notification], None]] = None):
        self.sink = sink
        self.outbox: list[Notification] = []

    def notify(self, level: Level, message: str, **context) -> Notification:
        notification = Notification(level=level, message=message)
        self.outbox.append(notification)

        log = logger.error if level == "error" else logger.warning if level == "warning" else logger.info
        log("Operator notification", notification_level=level, notification=message, **context)

        if self.sink is not None:
            try:
                self.sink(notification)
            except Exception as e:
                logger.warning("Notification sink failed", error=str(e), notification=message)
        return notification

    def success(self, message: str, **context) -> Notification:
        return self.notify("success", message, **context)

    def warning(self, message: str, **context) -> Notification:
        return self.notify("warning", message, **context)

    def error(self, message: str, **context) -> Notification:
        return self.notify("error", message, **context)

    def drain(self) -> list[dict]:
        """Return and clear pending notifications as plain dicts."""
        pending = [n.model_dump() for n in self.outbox]
        self.outbox.clear()
        return pending
