"""
Change notifications for the role store.

Every committed mutation appends a row to the change log in the same
transaction. A ChangeFeed reads the log in sequence order and hands each event
to the subscribers whose scope matches, so notifications for one address are
delivered in commit order. Writers in this process pump the feed right after
committing; a background poller picks up writes made by other processes.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from . import config
from .db import get_db, init_db
from util.logging import logger

PRUNE_INTERVAL_SEC = 60


@dataclass(frozen=True)
class ChangeEvent:
    seq: int
    collection: str  # wallet_roles, access_requests
    op: str  # insert, update, delete
    wallet_address: str
    record_key: str


class Subscription:
    """Handle returned by subscribe(); release it with unsubscribe() or a with-block."""

    def __init__(self, feed: 'ChangeFeed', token: int):
        self._feed = feed
        self._token = token
        self.active = True

    def unsubscribe(self):
        if self.active:
            self._feed._remove(self._token)
            self.active = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()


class ChangeFeed:

    def __init__(self, db_path: str = None, poll_interval: float = None):
        self.db_path = db_path
        self.poll_interval = poll_interval or config.NOTIFY_POLL_INTERVAL_SEC
        self._subscribers: Dict[int, tuple] = {}
        self._next_token = 0
        self._lock = threading.RLock()
        self._delivering = threading.Lock()
        self._pending = deque()
        self._thread: Optional[threading.Thread] = None
        self._shutdown_event = threading.Event()

        init_db(db_path)
        self._cursor = self._max_seq()

    def _max_seq(self) -> int:
        with get_db(self.db_path) as conn:
            row = conn.execute("SELECT COALESCE(MAX(seq), 0) FROM change_log").fetchone()
            return row[0]

    def subscribe(self, collection: str, callback: Callable[[ChangeEvent], None],
                  wallet_address: str = None) -> Subscription:
        """
        Register interest in a collection, optionally narrowed to one wallet.
        The callback runs on whichever thread pumps the feed.
        """
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = (collection, wallet_address, callback)
        return Subscription(self, token)

    def _remove(self, token: int):
        with self._lock:
            self._subscribers.pop(token, None)

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def poll_once(self) -> int:
        """
        Deliver every change committed since the last poll. Returns the number of events read.

        Reading the log and advancing the cursor happen under the feed lock; callbacks run
        outside it. One thread at a time drains the delivery queue, so events still arrive in
        seq order. A caller that finds another thread delivering queues its events and
        returns without waiting for that thread's subscribers.
        """
        with self._lock:
            with get_db(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT seq, collection, op, wallet_address, record_key FROM change_log "
                    "WHERE seq > ? ORDER BY seq ASC",
                    (self._cursor,)
                ).fetchall()

            for row in rows:
                self._pending.append(ChangeEvent(
                    seq=row['seq'],
                    collection=row['collection'],
                    op=row['op'],
                    wallet_address=row['wallet_address'],
                    record_key=row['record_key'],
                ))
                self._cursor = row['seq']

        self._drain()
        return len(rows)

    def _drain(self):
        while self._delivering.acquire(blocking=False):
            while True:
                with self._lock:
                    if not self._pending:
                        # Released under the feed lock so a queued event always finds a deliverer
                        self._delivering.release()
                        break
                    event = self._pending.popleft()
                self._dispatch(event)
            with self._lock:
                if not self._pending:
                    return

    def _dispatch(self, event: ChangeEvent):
        with self._lock:
            subscribers = list(self._subscribers.values())
        for collection, wallet_address, callback in subscribers:
            if collection != event.collection:
                continue
            if wallet_address is not None and wallet_address != event.wallet_address:
                continue
            try:
                callback(event)
            except Exception as e:
                # One failing subscriber must not block delivery to the others
                logger.error(f"Change subscriber failed for {event.collection} seq {event.seq}: {e}")

    def prune(self, retention_sec: float = None) -> int:
        """Delete change log rows older than the retention window. Returns the number removed."""
        retention_sec = config.CHANGE_LOG_RETENTION_SEC if retention_sec is None else retention_sec
        with get_db(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM change_log WHERE ts < datetime('now', ?)",
                (f"-{int(retention_sec)} seconds",)
            )
            conn.commit()
            removed = cursor.rowcount
        if removed:
            logger.log_operation("change_feed.prune", "pruned", {"rows": removed, "retention_sec": retention_sec})
        return removed

    def start(self):
        """Start polling for changes made by other processes."""
        if self._thread and self._thread.is_alive():
            raise RuntimeError("Change feed already running")

        self._shutdown_event.clear()
        self._thread = threading.Thread(target=self._run, name="docvault-change-feed", daemon=True)
        self._thread.start()
        logger.log_operation("change_feed.start", "running", {"interval_sec": self.poll_interval})

    def _run(self):
        last_prune = 0.0
        while not self._shutdown_event.is_set():
            try:
                self.poll_once()
                if time.monotonic() - last_prune >= PRUNE_INTERVAL_SEC:
                    self.prune()
                    last_prune = time.monotonic()
            except Exception as e:
                logger.error(f"Change feed poll failed: {e}")
            self._shutdown_event.wait(self.poll_interval)

    def stop(self, timeout: float = 5.0):
        """Stop the poller gracefully."""
        self._shutdown_event.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
        logger.log_operation("change_feed.stop", "stopped")
