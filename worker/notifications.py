"""
User-facing sync notifications.

Short title/description messages raised by the auto-sync controller and the
offline submitter. A notifier is any callable taking a Notification; the
default just logs them.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, TYPE_CHECKING

from shared.log import create_logger

if TYPE_CHECKING:
    from sync_queue.models import SyncResult

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Notify")


@dataclass(frozen=True)
class Notification:
    """A toast-style message; destructive marks errors."""
    title: str
    description: str = ""
    destructive: bool = False


Notifier = Callable[[Notification], None]


def _entries(n: int) -> str:
    return f"{n} {'entry' if n == 1 else 'entries'}"


def sync_notifications(result: 'SyncResult') -> List[Notification]:
    """
    Messages for a finished sync pass.

    Nothing is returned for an empty or skipped pass.
    """
    notes = []
    if result.skipped:
        return notes
    if result.success > 0:
        notes.append(Notification(
            title="Data synced",
            description=f"Successfully synced {_entries(result.success)}",
        ))
    if result.failed > 0:
        notes.append(Notification(
            title="Sync partially failed",
            description=f"{_entries(result.failed)} failed to sync",
            destructive=True,
        ))
    return notes


SYNC_FAILED = Notification(
    title="Sync failed",
    description="Failed to sync offline data. Will retry later.",
    destructive=True,
)


class LoggingNotifier:
    """Writes notifications to the log (warning level for destructive ones)."""

    def __call__(self, notification: Notification) -> None:
        text = notification.title
        if notification.description:
            text = f"{text}: {notification.description}"
        if notification.destructive:
            log_warn(text)
        else:
            log_info(text)


class CollectingNotifier:
    """Keeps every notification in a list; handy for tests and status pages."""

    def __init__(self, forward: Optional[Notifier] = None):
        self.notifications: List[Notification] = []
        self._forward = forward

    def __call__(self, notification: Notification) -> None:
        self.notifications.append(notification)
        if self._forward is not None:
            self._forward(notification)

    @property
    def titles(self) -> List[str]:
        return [n.title for n in self.notifications]

    def clear(self) -> None:
        self.notifications.clear()


__all__ = [
    'Notification',
    'Notifier',
    'SYNC_FAILED',
    'sync_notifications',
    'LoggingNotifier',
    'CollectingNotifier',
]
