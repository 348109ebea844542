"""
Role store: durable wallet -> role records and access request rows.

The store owns both collections. Ownership is claimed through a partial unique
index, so two first-connectors racing each other end with exactly one owner.
Mutations return True/False; unexpected SQLite errors on reads raise StoreError.
"""

import sqlite3
from datetime import datetime
from typing import Callable, List, Optional

from .db import ACCESS_REQUESTS, WALLET_ROLES, get_db, init_db, record_change
from .errors import StoreError
from .notifications import ChangeEvent, ChangeFeed, Subscription
from .schema import (
    AccessRequest,
    RequestStatus,
    Role,
    WalletRoleRecord,
    normalize_address,
)
from util.logging import logger


def _row_to_record(row) -> WalletRoleRecord:
    return WalletRoleRecord(
        address=row['wallet_address'],
        role=Role(row['role']),
        is_owner=bool(row['is_owner']),
        name=row['name'],
        created_at=datetime.fromisoformat(row['created_at']),
    )


def _row_to_request(row) -> AccessRequest:
    return AccessRequest.from_dict(dict(row))


class RoleStore:

    def __init__(self, db_path: str = None, feed: ChangeFeed = None):
        self.db_path = db_path
        init_db(db_path)
        self.feed = feed or ChangeFeed(db_path)

    def _read_one(self, query: str, params: tuple):
        try:
            with get_db(self.db_path) as conn:
                return conn.execute(query, params).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Role store read failed: {e}") from e

    def _read_all(self, query: str, params: tuple = ()):
        try:
            with get_db(self.db_path) as conn:
                return conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Role store read failed: {e}") from e

    def _committed(self):
        self.feed.poll_once()

    # ============ WALLET ROLES ============

    def get_record(self, address: str) -> Optional[WalletRoleRecord]:
        row = self._read_one(
            "SELECT * FROM wallet_roles WHERE wallet_address = ?",
            (normalize_address(address),)
        )
        return _row_to_record(row) if row else None

    def get_role(self, address: str) -> Optional[Role]:
        """Effective role of a wallet; the owner wallet reads as Role.OWNER."""
        record = self.get_record(address)
        return record.effective_role if record else None

    def is_owner_wallet(self, address: str) -> bool:
        record = self.get_record(address)
        return bool(record and record.is_owner)

    def system_has_owner(self) -> bool:
        return self._read_one("SELECT 1 FROM wallet_roles WHERE is_owner = 1 LIMIT 1", ()) is not None

    def get_owner_wallet(self) -> Optional[str]:
        row = self._read_one("SELECT wallet_address FROM wallet_roles WHERE is_owner = 1", ())
        return row['wallet_address'] if row else None

    def claim_ownership(self, address: str) -> bool:
        """
        Make address the owner if nobody is. The unique owner index rejects the
        second claimant, so this never needs a read-then-write check.
        """
        address = normalize_address(address)
        now = datetime.now().isoformat()
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "INSERT INTO wallet_roles (wallet_address, role, is_owner, created_at) "
                    "VALUES (?, ?, 1, ?) "
                    "ON CONFLICT(wallet_address) DO UPDATE SET "
                    "role = excluded.role, is_owner = 1, updated_at = excluded.created_at "
                    "WHERE wallet_roles.is_owner = 0",
                    (address, Role.FOUNDER.value, now)
                )
                if cursor.rowcount == 0:
                    logger.log_role_change("claim_ownership", address, status="already_owned")
                    return False
                record_change(cursor, WALLET_ROLES, "upsert", address, address)
                conn.commit()
        except sqlite3.IntegrityError:
            logger.log_role_change("claim_ownership", address, status="already_owned")
            return False
        except sqlite3.Error as e:
            logger.error(f"Ownership claim failed for {address}: {e}")
            return False

        logger.log_role_change("claim_ownership", address, role=Role.OWNER.value)
        self._committed()
        return True

    def assign_role(self, address: str, role: Role, name: str = None) -> bool:
        """
        Insert or update a wallet's role. Never sets the owner flag, and the
        owner's own record is left untouched.
        """
        address = normalize_address(address)
        now = datetime.now().isoformat()
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "INSERT INTO wallet_roles (wallet_address, role, is_owner, name, created_at) "
                    "VALUES (?, ?, 0, ?, ?) "
                    "ON CONFLICT(wallet_address) DO UPDATE SET "
                    "role = excluded.role, name = COALESCE(excluded.name, wallet_roles.name), "
                    "updated_at = excluded.created_at "
                    "WHERE wallet_roles.is_owner = 0",
                    (address, Role(role).value, name or None, now)
                )
                if cursor.rowcount == 0:
                    logger.log_role_change("assign_role", address, role=Role(role).value, status="refused_owner")
                    return False
                record_change(cursor, WALLET_ROLES, "upsert", address, address)
                conn.commit()
        except sqlite3.Error as e:
            logger.log_role_change("assign_role", address, role=Role(role).value, status="failed")
            logger.error(f"Role assignment failed for {address}: {e}")
            return False

        logger.log_role_change("assign_role", address, role=Role(role).value)
        self._committed()
        return True

    def remove_role(self, address: str) -> bool:
        """Delete a wallet's role. Refuses the owner and reports False when nothing was removed."""
        address = normalize_address(address)
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "DELETE FROM wallet_roles WHERE wallet_address = ? AND is_owner = 0",
                    (address,)
                )
                if cursor.rowcount == 0:
                    logger.log_role_change("remove_role", address, status="not_removed")
                    return False
                record_change(cursor, WALLET_ROLES, "delete", address, address)
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Role removal failed for {address}: {e}")
            return False

        logger.log_role_change("remove_role", address)
        self._committed()
        return True

    def list_assigned(self) -> List[WalletRoleRecord]:
        """All role records in assignment order."""
        rows = self._read_all("SELECT * FROM wallet_roles ORDER BY id ASC")
        return [_row_to_record(row) for row in rows]

    # ============ ACCESS REQUESTS ============

    def replace_pending_request(self, request: AccessRequest) -> bool:
        """Delete any pending request for the wallet and insert this one, in one transaction."""
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("BEGIN IMMEDIATE")
                cursor.execute(
                    "SELECT id FROM access_requests WHERE wallet_address = ? AND status = ?",
                    (request.wallet_address, RequestStatus.PENDING.value)
                )
                superseded = [row['id'] for row in cursor.fetchall()]
                cursor.execute(
                    "DELETE FROM access_requests WHERE wallet_address = ? AND status = ?",
                    (request.wallet_address, RequestStatus.PENDING.value)
                )
                for request_id in superseded:
                    record_change(cursor, ACCESS_REQUESTS, "delete", request.wallet_address, request_id)

                data = request.to_dict()
                cursor.execute(
                    "INSERT INTO access_requests (id, wallet_address, name, requested_role, status, created_at, reviewed_at) "
                    "VALUES (:id, :wallet_address, :name, :requested_role, :status, :created_at, :reviewed_at)",
                    data
                )
                record_change(cursor, ACCESS_REQUESTS, "insert", request.wallet_address, request.id)
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to store access request for {request.wallet_address}: {e}")
            return False

        self._committed()
        return True

    def get_request(self, request_id: str) -> Optional[AccessRequest]:
        row = self._read_one("SELECT * FROM access_requests WHERE id = ?", (request_id,))
        return _row_to_request(row) if row else None

    def latest_request(self, address: str) -> Optional[AccessRequest]:
        """Most recent request for a wallet, whatever its status."""
        row = self._read_one(
            "SELECT * FROM access_requests WHERE wallet_address = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (normalize_address(address),)
        )
        return _row_to_request(row) if row else None

    def list_requests(self, status: RequestStatus = None) -> List[AccessRequest]:
        """Requests newest-first, optionally filtered by status."""
        if status is None:
            rows = self._read_all("SELECT * FROM access_requests ORDER BY created_at DESC, rowid DESC")
        else:
            rows = self._read_all(
                "SELECT * FROM access_requests WHERE status = ? ORDER BY created_at DESC, rowid DESC",
                (RequestStatus(status).value,)
            )
        return [_row_to_request(row) for row in rows]

    def commit_approval(self, request_id: str, role: Role, reviewed_at: datetime) -> bool:
        """
        Assign the role to the requester and mark the request approved in a
        single transaction. Nothing is written unless both steps succeed.
        """
        role = Role(role)
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                # Write lock first so no other reviewer can commit between the status check and the upsert
                cursor.execute("BEGIN IMMEDIATE")
                cursor.execute(
                    "UPDATE access_requests SET status = ?, requested_role = ?, reviewed_at = ? "
                    "WHERE id = ? AND status = ?",
                    (RequestStatus.APPROVED.value, role.value, reviewed_at.isoformat(),
                     request_id, RequestStatus.PENDING.value)
                )
                if cursor.rowcount != 1:
                    conn.rollback()
                    return False

                row = cursor.execute(
                    "SELECT wallet_address, name FROM access_requests WHERE id = ?", (request_id,)
                ).fetchone()
                address = row['wallet_address']
                cursor.execute(
                    "INSERT INTO wallet_roles (wallet_address, role, is_owner, name, created_at) "
                    "VALUES (?, ?, 0, ?, ?) "
                    "ON CONFLICT(wallet_address) DO UPDATE SET "
                    "role = excluded.role, name = COALESCE(excluded.name, wallet_roles.name), "
                    "updated_at = excluded.created_at "
                    "WHERE wallet_roles.is_owner = 0",
                    (address, role.value, row['name'] or None, reviewed_at.isoformat())
                )
                if cursor.rowcount == 0:
                    conn.rollback()
                    logger.log_role_change("assign_role", address, role=role.value, status="refused_owner")
                    return False

                record_change(cursor, WALLET_ROLES, "upsert", address, address)
                record_change(cursor, ACCESS_REQUESTS, "update", address, request_id)
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Approval of request {request_id} failed: {e}")
            return False

        logger.log_role_change("assign_role", address, role=role.value)
        self._committed()
        return True

    def mark_declined(self, request_id: str, reviewed_at: datetime) -> bool:
        """Decline a pending request. Reviewed requests are left as they are."""
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("BEGIN IMMEDIATE")
                cursor.execute(
                    "UPDATE access_requests SET status = ?, reviewed_at = ? WHERE id = ? AND status = ?",
                    (RequestStatus.DECLINED.value, reviewed_at.isoformat(),
                     request_id, RequestStatus.PENDING.value)
                )
                if cursor.rowcount != 1:
                    conn.rollback()
                    return False
                row = cursor.execute(
                    "SELECT wallet_address FROM access_requests WHERE id = ?", (request_id,)
                ).fetchone()
                record_change(cursor, ACCESS_REQUESTS, "update", row['wallet_address'], request_id)
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Decline of request {request_id} failed: {e}")
            return False

        self._committed()
        return True

    # ============ SUBSCRIPTIONS ============

    def subscribe_wallet(self, address: str, callback: Callable[[Optional[Role]], None]) -> Subscription:
        """Call back with the wallet's current role after every change to its record."""
        address = normalize_address(address)

        def on_change(event: ChangeEvent):
            callback(self.get_role(address))

        return self.feed.subscribe(WALLET_ROLES, on_change, wallet_address=address)

    def subscribe_all(self, callback: Callable[[List[WalletRoleRecord]], None]) -> Subscription:
        """Call back with the full assignment list after any role change."""
        return self.feed.subscribe(WALLET_ROLES, lambda event: callback(self.list_assigned()))

    def subscribe_requests(self, callback: Callable[[List[AccessRequest]], None]) -> Subscription:
        """Call back with the pending requests after any request change."""
        return self.feed.subscribe(
            ACCESS_REQUESTS,
            lambda event: callback(self.list_requests(RequestStatus.PENDING))
        )

    def subscribe_request_status(self, address: str,
                                 callback: Callable[[Optional[AccessRequest]], None]) -> Subscription:
        """Call back with the wallet's latest request after every change to its requests."""
        address = normalize_address(address)
        return self.feed.subscribe(
            ACCESS_REQUESTS,
            lambda event: callback(self.latest_request(address)),
            wallet_address=address
        )
