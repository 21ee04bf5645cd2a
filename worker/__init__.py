"""
Background sync for the offline write queue.

Exports the connectivity monitor/poller and the auto-sync controller that
drains the queue when the backend becomes reachable.
"""

from worker.connectivity import ConnectivityMonitor, ConnectivityPoller, Subscription
from worker.auto_sync import AutoSyncController, SyncState
from worker.notifications import Notification, LoggingNotifier, CollectingNotifier, sync_notifications

__all__ = [
    'ConnectivityMonitor',
    'ConnectivityPoller',
    'Subscription',
    'AutoSyncController',
    'SyncState',
    'Notification',
    'LoggingNotifier',
    'CollectingNotifier',
    'sync_notifications',
]
