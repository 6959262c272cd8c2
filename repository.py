"""Contact persistence: the repository port and its SQLite adapter."""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, Protocol

from pydantic import ValidationError

from db_models import PRIMARY, SECONDARY, Contact, as_utc, contact_adapter
from db_setup import get_db_connection, init_db
from errors import IntegrityError, StorageUnavailable

logger = logging.getLogger(__name__)

CONTACT_COLUMNS = "id, phoneNumber, email, linkedId, linkPrecedence, createdAt, updatedAt, deletedAt"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ContactRepository(Protocol):
    """Storage operations the reconciliation core runs against."""

    def find_live(self, email: Optional[str] = None, phone: Optional[str] = None) -> List[Contact]:
        """OR-match on the supplied fields, excluding tombstoned rows."""
        ...

    def find_live_by_id(self, contact_id: int) -> Optional[Contact]:
        ...

    def find_all_in_cluster(self, primary_id: int) -> List[Contact]:
        """Live contacts with id = primary_id or linkedId = primary_id, ordered by id."""
        ...

    def insert(
        self,
        email: Optional[str],
        phone: Optional[str],
        linked_id: Optional[int] = None,
        precedence: str = PRIMARY,
        contact_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ) -> int:
        ...

    def demote_to_secondary(self, contact_id: int, new_linked_id: int) -> None:
        ...

    def repoint_secondaries(self, old_primary_id: int, new_primary_id: int) -> None:
        ...

    def soft_delete(self, contact_id: int) -> bool:
        ...


def contact_from_row(row) -> Contact:
    data = dict(row)
    try:
        return contact_adapter.validate_python(data)
    except ValidationError as exc:
        raise IntegrityError(f"Contact {data.get('id')} is malformed: {exc}") from exc


class SQLiteContactRepository:
    """ContactRepository bound to one open connection (and its transaction)."""

    def __init__(self, conn: sqlite3.Connection, clock: Callable[[], datetime] = utc_now):
        self._conn = conn
        self._clock = clock

    def _now(self) -> str:
        return as_utc(self._clock()).isoformat()

    def _select(self, where: str, params) -> List[Contact]:
        cursor = self._conn.execute(
            f"SELECT {CONTACT_COLUMNS} FROM Contact WHERE deletedAt IS NULL AND ({where}) ORDER BY id",
            params,
        )
        return [contact_from_row(row) for row in cursor.fetchall()]

    def find_live(self, email=None, phone=None):
        conditions = []
        params = []
        if email:
            conditions.append("email = ?")
            params.append(email)
        if phone:
            conditions.append("phoneNumber = ?")
            params.append(phone)
        if not conditions:
            return []
        return self._select(" OR ".join(conditions), params)

    def find_live_by_id(self, contact_id):
        found = self._select("id = ?", (contact_id,))
        return found[0] if found else None

    def find_all_in_cluster(self, primary_id):
        return self._select("id = ? OR linkedId = ?", (primary_id, primary_id))

    def insert(self, email, phone, linked_id=None, precedence=PRIMARY, contact_id=None, created_at=None):
        now = self._now()
        created = as_utc(created_at).isoformat() if created_at else now
        cursor = self._conn.execute(
            """
            INSERT INTO Contact (id, phoneNumber, email, linkedId, linkPrecedence, createdAt, updatedAt)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (contact_id, phone, email, linked_id, precedence, created, now),
        )
        return contact_id if contact_id is not None else cursor.lastrowid

    def demote_to_secondary(self, contact_id, new_linked_id):
        self._conn.execute(
            """
            UPDATE Contact
            SET linkedId = ?, linkPrecedence = ?, updatedAt = ?
            WHERE id = ?
            """,
            (new_linked_id, SECONDARY, self._now(), contact_id),
        )

    def repoint_secondaries(self, old_primary_id, new_primary_id):
        # tombstoned rows move too, so no row is left linked to a secondary
        self._conn.execute(
            "UPDATE Contact SET linkedId = ?, updatedAt = ? WHERE linkedId = ?",
            (new_primary_id, self._now(), old_primary_id),
        )

    def soft_delete(self, contact_id):
        now = self._now()
        cursor = self._conn.execute(
            "UPDATE Contact SET deletedAt = ?, updatedAt = ? WHERE id = ? AND deletedAt IS NULL",
            (now, now, contact_id),
        )
        return cursor.rowcount > 0

    def ping(self):
        self._conn.execute("SELECT 1").fetchone()


class ContactStore:
    """Hands out one SQLiteContactRepository per transaction.

    BEGIN IMMEDIATE takes the database write lock before the first read, so two
    requests over the same identifiers are serialized instead of both seeing no
    match and both creating a primary.
    """

    def __init__(self, db_path: str, timeout: Optional[float] = None, clock: Callable[[], datetime] = utc_now):
        self.db_path = db_path
        self.timeout = timeout
        self.clock = clock

    def init(self) -> None:
        try:
            init_db(self.db_path)
        except sqlite3.OperationalError as exc:
            raise StorageUnavailable(f"Cannot initialise contact store: {exc}") from exc

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_db_connection(self.db_path, timeout=self.timeout)
        except sqlite3.OperationalError as exc:
            raise StorageUnavailable(f"Cannot open contact store: {exc}") from exc

    @contextmanager
    def transaction(self) -> Iterator[SQLiteContactRepository]:
        conn = self._connect()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as exc:
                raise StorageUnavailable(f"Contact store is busy: {exc}") from exc

            try:
                yield SQLiteContactRepository(conn, clock=self.clock)
            except sqlite3.OperationalError as exc:
                conn.rollback()
                logger.warning("Rolled back contact transaction: %s", exc)
                raise StorageUnavailable(f"Contact store failed mid-transaction: {exc}") from exc
            except BaseException:
                conn.rollback()
                logger.debug("Rolled back contact transaction")
                raise

            try:
                conn.commit()
            except sqlite3.OperationalError as exc:
                conn.rollback()
                raise StorageUnavailable(f"Cannot commit contact changes: {exc}") from exc
        finally:
            conn.close()

    def ping(self) -> None:
        conn = self._connect()
        try:
            SQLiteContactRepository(conn).ping()
        except sqlite3.OperationalError as exc:
            raise StorageUnavailable(f"Contact store is unreachable: {exc}") from exc
        finally:
            conn.close()
