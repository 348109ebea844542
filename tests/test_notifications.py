"""
Change feed tests - ordering, scoping and the background poller.
"""

import threading
import time

import pytest

from docvault.core.db import ACCESS_REQUESTS, WALLET_ROLES, get_db, init_db, record_change
from docvault.core.notifications import ChangeFeed


def _write_change(db_path, collection, op, address):
    with get_db(db_path) as conn:
        record_change(conn.cursor(), collection, op, address, address)
        conn.commit()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "feed.db")


@pytest.fixture
def feed(db_path):
    feed = ChangeFeed(db_path, poll_interval=0.05)
    yield feed
    feed.stop()


class TestChangeFeed:

    def test_events_delivered_in_commit_order(self, db_path, feed):
        received = []
        feed.subscribe(WALLET_ROLES, received.append)

        for op in ("upsert", "delete", "upsert"):
            _write_change(db_path, WALLET_ROLES, op, "0xabc")

        assert feed.poll_once() == 3
        assert [e.op for e in received] == ["upsert", "delete", "upsert"]
        assert [e.seq for e in received] == sorted(e.seq for e in received)

    def test_existing_history_is_skipped(self, db_path):
        init_db(db_path)
        _write_change(db_path, WALLET_ROLES, "upsert", "0xold")
        feed = ChangeFeed(db_path)
        received = []
        feed.subscribe(WALLET_ROLES, received.append)

        assert feed.poll_once() == 0
        assert received == []

    def test_scoped_by_collection_and_wallet(self, db_path, feed):
        mine, everything = [], []
        feed.subscribe(WALLET_ROLES, mine.append, wallet_address="0xabc")
        feed.subscribe(WALLET_ROLES, everything.append)

        _write_change(db_path, WALLET_ROLES, "upsert", "0xabc")
        _write_change(db_path, WALLET_ROLES, "upsert", "0xdef")
        _write_change(db_path, ACCESS_REQUESTS, "insert", "0xabc")
        feed.poll_once()

        assert [e.wallet_address for e in mine] == ["0xabc"]
        assert [e.wallet_address for e in everything] == ["0xabc", "0xdef"]

    def test_unsubscribe(self, db_path, feed):
        received = []
        with feed.subscribe(WALLET_ROLES, received.append):
            assert feed.subscriber_count() == 1
        assert feed.subscriber_count() == 0

        _write_change(db_path, WALLET_ROLES, "upsert", "0xabc")
        feed.poll_once()
        assert received == []

    def test_background_poller_picks_up_writes(self, db_path, feed):
        delivered = threading.Event()
        feed.subscribe(WALLET_ROLES, lambda event: delivered.set())
        feed.start()

        _write_change(db_path, WALLET_ROLES, "upsert", "0xabc")

        assert delivered.wait(5)

    def test_start_twice_fails(self, feed):
        feed.start()
        with pytest.raises(RuntimeError):
            feed.start()

    def test_poll_does_not_wait_for_busy_subscriber(self, db_path, feed):
        in_callback = threading.Event()
        release = threading.Event()
        received = []

        def slow_subscriber(event):
            received.append(event.wallet_address)
            in_callback.set()
            release.wait(5)

        feed.subscribe(WALLET_ROLES, slow_subscriber)
        feed.start()
        _write_change(db_path, WALLET_ROLES, "upsert", "0xremote")
        assert in_callback.wait(5)

        # A local writer pumping the feed while the poller is inside a callback
        _write_change(db_path, WALLET_ROLES, "upsert", "0xlocal")
        writer = threading.Thread(target=feed.poll_once)
        writer.start()
        writer.join(2)
        finished = not writer.is_alive()
        release.set()

        assert finished
        deadline = time.monotonic() + 5
        while len(received) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert received == ["0xremote", "0xlocal"]

    def test_subscriber_writes_are_delivered_after_it_returns(self, db_path, feed):
        order = []

        def writes_once(event):
            order.append(event.wallet_address)
            if event.wallet_address == "0xfirst":
                _write_change(db_path, WALLET_ROLES, "upsert", "0xsecond")
                feed.poll_once()
                order.append("returned")

        feed.subscribe(WALLET_ROLES, writes_once)
        _write_change(db_path, WALLET_ROLES, "upsert", "0xfirst")
        feed.poll_once()

        assert order == ["0xfirst", "returned", "0xsecond"]


class TestPrune:

    def test_old_rows_removed(self, db_path, feed):
        with get_db(db_path) as conn:
            conn.execute(
                "INSERT INTO change_log (collection, op, wallet_address, record_key, ts) "
                "VALUES (?, ?, ?, ?, datetime('now', '-2 hours'))",
                (WALLET_ROLES, "upsert", "0xold", "0xold")
            )
            conn.commit()
        _write_change(db_path, WALLET_ROLES, "upsert", "0xnew")

        assert feed.prune(retention_sec=3600) == 1

        with get_db(db_path) as conn:
            rows = conn.execute("SELECT wallet_address FROM change_log").fetchall()
        assert [row['wallet_address'] for row in rows] == ["0xnew"]

    def test_sequence_keeps_growing_after_prune(self, db_path, feed):
        received = []
        feed.subscribe(WALLET_ROLES, received.append)
        _write_change(db_path, WALLET_ROLES, "upsert", "0xa")
        feed.poll_once()

        with get_db(db_path) as conn:
            conn.execute("DELETE FROM change_log")
            conn.commit()
        _write_change(db_path, WALLET_ROLES, "upsert", "0xb")
        feed.poll_once()

        assert [e.wallet_address for e in received] == ["0xa", "0xb"]
        assert received[1].seq > received[0].seq
