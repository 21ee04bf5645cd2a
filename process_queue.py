#!/usr/bin/env python3
"""
Manual queue processor for HatchSync.

Run this script to replay all pending offline writes against the backend,
or to inspect the queue and dead letter store from a shell.

Usage:
    python process_queue.py [--data-dir /path/to/data]
    python process_queue.py --stats-only
    python process_queue.py --list
    python process_queue.py --requeue-dlq
"""

import sys
import json
import argparse
import logging

from shared.logging_config import configure_logging

logger = logging.getLogger('HatchSync.manual')

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def show_stats(data_dir):
    """Print queue status counts and DLQ size as JSON."""
    from sync_queue.dlq import DeadLetterQueue
    from sync_queue.manager import QueueManager
    from sync_queue.operations import get_stats

    manager = QueueManager(data_dir)
    stats = get_stats(manager.queue_path)
    dlq = DeadLetterQueue(manager.data_dir)
    stats['dead_letters'] = dlq.get_count()
    errors = dlq.get_error_summary()
    if errors:
        stats['dead_letter_errors'] = errors
    print(json.dumps(stats, indent=2))
    return EXIT_OK


def list_entries(data_dir):
    """Print pending entries, oldest first."""
    from sync_queue.manager import QueueManager
    from sync_queue.offline_queue import OfflineQueue

    queue = OfflineQueue(QueueManager(data_dir))
    views = queue.get_entries()
    if not views:
        print("Queue is empty.")
        return EXIT_OK

    for view in views:
        entry = view.entry
        line = f"{entry.created_at}  {entry.id}  {entry.operation.value:<6}  {entry.table}"
        if view.retry_count:
            line += f"  [failed x{view.retry_count}: {view.error_message}]"
        print(line)
    print(f"{len(views)} pending")
    return EXIT_OK


def requeue_dlq(data_dir):
    """Move every dead letter back to the live queue."""
    from sync_queue.dlq import DeadLetterQueue
    from sync_queue.dlq_recovery import requeue_dead_letters
    from sync_queue.manager import QueueManager
    from sync_queue.offline_queue import OfflineQueue

    manager = QueueManager(data_dir)
    dlq = DeadLetterQueue(manager.data_dir)
    result = requeue_dead_letters(dlq, OfflineQueue(manager))
    logger.info(
        f"Requeued {result.recovered} of {result.total_dlq_entries} dead letters "
        f"({result.failed} unreadable, {result.skipped_missing} missing)"
    )
    return EXIT_OK if result.failed == 0 else EXIT_FAILED


def purge_dlq(data_dir, days):
    from sync_queue.dlq import DeadLetterQueue
    from sync_queue.manager import QueueManager

    manager = QueueManager(data_dir)
    deleted = DeadLetterQueue(manager.data_dir).delete_older_than(days=days)
    logger.info(f"Deleted {deleted} dead letters older than {days} days")
    return EXIT_OK


def process_queue(data_dir, config):
    """Replay all pending entries once."""
    # Import here to allow script to show help without dependencies
    from backend.client import BackendClient
    from backend.health import check_backend_health
    from sync_queue.dlq import DeadLetterQueue
    from sync_queue.manager import QueueManager
    from sync_queue.offline_queue import OfflineQueue
    from validation.config import validate_config

    settings, error = validate_config(config)
    if error:
        logger.error(f"Invalid configuration: {error}")
        logger.error("Set HATCHSYNC_BACKEND_URL and HATCHSYNC_BACKEND_API_KEY or provide hatchsync.yml")
        return EXIT_CONFIG

    configure_logging(settings.log_level, json_output=settings.json_logs)
    settings.log_config()

    manager = QueueManager(data_dir or settings.data_dir)
    dlq = DeadLetterQueue(manager.data_dir)
    dlq.delete_older_than(days=settings.dlq_retention_days)

    with BackendClient(settings.backend_url, settings.backend_api_key, timeout=settings.request_timeout) as client:
        queue = OfflineQueue(
            manager,
            backend=client,
            dlq=dlq,
            max_sync_attempts=settings.max_sync_attempts,
        )

        pending = queue.get_count()
        logger.info(f"Pending entries: {pending}")
        if pending == 0:
            logger.info("Queue is empty. Nothing to process.")
            manager.shutdown()
            return EXIT_OK

        healthy, latency_ms = check_backend_health(client)
        if not healthy:
            logger.error("Backend is unreachable; entries stay queued.")
            manager.shutdown()
            return EXIT_FAILED
        logger.info(f"Backend reachable ({latency_ms:.0f}ms). Starting queue processing...")

        result = queue.sync_all()

    logger.info(
        f"Queue processing complete. Synced: {result.success}, Failed: {result.failed}"
        + (f", Dead-lettered: {result.dead_lettered}" if result.dead_lettered else "")
    )
    logger.info(f"Remaining entries: {queue.get_count()}")
    manager.shutdown()

    return EXIT_OK if result.failed == 0 else EXIT_FAILED


def build_parser():
    parser = argparse.ArgumentParser(description='Process the HatchSync offline queue manually')
    parser.add_argument('--data-dir', '-d', help='Queue data directory (default: HATCHSYNC_DATA or ~/.hatchsync/data)')
    parser.add_argument('--backend-url', help='Backend URL (or set HATCHSYNC_BACKEND_URL)')
    parser.add_argument('--api-key', help='Backend API key (or set HATCHSYNC_BACKEND_API_KEY)')
    parser.add_argument('--stats-only', '-s', action='store_true', help='Only show queue stats')
    parser.add_argument('--list', '-l', action='store_true', help='List pending entries')
    parser.add_argument('--requeue-dlq', action='store_true', help='Move all dead letters back to the queue')
    parser.add_argument('--purge-dlq', type=int, metavar='DAYS', help='Delete dead letters older than DAYS')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    configure_logging('debug' if args.verbose else 'info', json_output=False)

    data_dir = args.data_dir
    if data_dir:
        logger.info(f"Using data directory: {data_dir}")

    if args.stats_only:
        return show_stats(data_dir)
    if args.list:
        return list_entries(data_dir)
    if args.requeue_dlq:
        return requeue_dlq(data_dir)
    if args.purge_dlq is not None:
        return purge_dlq(data_dir, args.purge_dlq)

    # Command line args override env and YAML
    config = {}
    if args.backend_url:
        config['backend_url'] = args.backend_url
    if args.api_key:
        config['backend_api_key'] = args.api_key
    if args.verbose:
        config['log_level'] = 'debug'

    return process_queue(data_dir, config)


if __name__ == '__main__':
    sys.exit(main())
