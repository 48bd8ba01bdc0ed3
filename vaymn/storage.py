"""Key-value persistence for users, books and the active session.

Each of the three records is stored whole: callers read a full collection,
change their copy and write the full collection back. There are no partial
updates and no transactions across records.
"""
import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from vaymn.book import Book
from vaymn.config import settings
from vaymn.user import Role, User

logger = logging.getLogger(__name__)

USERS_KEY = "vaymn_users"
BOOKS_KEY = "vaymn_books"
SESSION_KEY = "vaymn_session"


class Storage:
    """Base class for stores. Subclasses implement the three raw value operations."""

    def _read(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def _write(self, key: str, value: str) -> None:
        raise NotImplementedError

    def _delete(self, key: str) -> None:
        raise NotImplementedError

    def has_key(self, key: str) -> bool:
        return self._read(key) is not None

    def _read_json(self, key: str, default: Any) -> Any:
        raw = self._read(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error(f"Stored value under {key!r} is not valid JSON, ignoring it")
            return default

    # ------------------------- Users ------------------------- #
    def get_users(self) -> List[User]:
        return [User.from_dict(item) for item in self._read_json(USERS_KEY, [])]

    def save_users(self, users: List[User]) -> None:
        self._write(USERS_KEY, json.dumps([u.to_dict() for u in users]))

    # ------------------------- Books ------------------------- #
    def get_books(self) -> List[Book]:
        return [Book.from_dict(item) for item in self._read_json(BOOKS_KEY, [])]

    def save_books(self, books: List[Book]) -> None:
        self._write(BOOKS_KEY, json.dumps([b.to_dict() for b in books]))

    # ------------------------- Session ------------------------- #
    def get_session(self) -> Optional[User]:
        data = self._read_json(SESSION_KEY, None)
        return User.from_dict(data) if data else None

    def set_session(self, user: User) -> None:
        self._write(SESSION_KEY, json.dumps(user.to_dict()))

    def clear_session(self) -> None:
        self._delete(SESSION_KEY)


class MemoryStorage(Storage):
    """Dict-backed store, used by tests and throwaway sessions."""

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def _read(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def _write(self, key: str, value: str) -> None:
        self._values[key] = value

    def _delete(self, key: str) -> None:
        self._values.pop(key, None)


class SQLiteStorage(Storage):
    """Stores the records as JSON text in a single SQLite key-value table."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or settings.db_file
        self._create_table()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_file)
        conn.row_factory = sqlite3.Row
        return conn

    def _create_table(self) -> None:
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def _read(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None
        finally:
            conn.close()

    def _write(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )
            conn.commit()
        finally:
            conn.close()

    def _delete(self, key: str) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()


def seed_demo_data(storage: Storage, now: Optional[datetime] = None) -> bool:
    """Populate an empty store with demo accounts and books.

    Users and books are seeded independently, only when their record is absent.
    "Clean Code" is issued 14 days before ``now`` so a fine shows up right away.
    Returns True when anything was written.
    """
    now = now or datetime.now(timezone.utc)
    seeded = False

    if not storage.has_key(USERS_KEY):
        storage.save_users([
            User(id="admin1", library_id="admin", password="123", name="Head Librarian", role=Role.ADMIN),
            User(id="user1", library_id="user", password="123", name="John Doe", role=Role.USER),
        ])
        seeded = True

    if not storage.has_key(BOOKS_KEY):
        storage.save_books([
            Book(id="b1", title="The Great Gatsby", author="F. Scott Fitzgerald", genre="Classic",
                 cover_url="https://picsum.photos/300/450?random=1", stand_number="A1",
                 description="A novel set in the Jazz Age."),
            Book(id="b2", title="1984", author="George Orwell", genre="Dystopian",
                 cover_url="https://picsum.photos/300/450?random=2", stand_number="B3",
                 description="A story about totalitarianism."),
            Book(id="b3", title="Clean Code", author="Robert C. Martin", genre="Technology",
                 cover_url="https://picsum.photos/300/450?random=3", stand_number="T5",
                 description="A handbook of agile software craftsmanship.",
                 is_issued=True, issued_to_user_id="user1",
                 issued_date=(now - timedelta(days=14)).isoformat()),
        ])
        seeded = True

    if seeded:
        logger.info("Demo data seeded")
    return seeded
