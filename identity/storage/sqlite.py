"""SQLite-backed storage with conditional updates for one-shot transitions."""

import sqlite3
import logging
import threading
from pathlib import Path
from contextlib import contextmanager
from typing import Optional, List, Tuple, Iterator

from ..errors import DuplicateEmail, StorageUnavailable
from ..models import User, VerificationCode, RefreshToken, utcnow_iso
from .base import AuthStorage

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    email TEXT UNIQUE NOT NULL,
    password_hash TEXT NOT NULL,
    phone TEXT,
    first_name TEXT,
    last_name TEXT,
    role TEXT NOT NULL DEFAULT 'user',
    email_verified INTEGER NOT NULL DEFAULT 0,
    phone_verified INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_login TEXT
);

CREATE TABLE IF NOT EXISTS verification_codes (
    code_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(user_id),
    channel TEXT NOT NULL,
    code_hash TEXT NOT NULL,
    expires_at REAL NOT NULL,
    created_at REAL NOT NULL,
    used INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_codes_user_channel
    ON verification_codes(user_id, channel, created_at);

CREATE TABLE IF NOT EXISTS refresh_tokens (
    token_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(user_id),
    family_id TEXT NOT NULL,
    token_hash TEXT UNIQUE NOT NULL,
    expires_at REAL NOT NULL,
    created_at REAL NOT NULL,
    revoked INTEGER NOT NULL DEFAULT 0,
    replaced_by TEXT
);
CREATE INDEX IF NOT EXISTS idx_tokens_user ON refresh_tokens(user_id);
CREATE INDEX IF NOT EXISTS idx_tokens_family ON refresh_tokens(family_id);
"""

_USER_COLUMNS = (
    "user_id", "email", "password_hash", "phone", "first_name", "last_name",
    "role", "email_verified", "phone_verified", "is_active",
    "created_at", "updated_at", "last_login",
)
_BOOL_USER_COLUMNS = ("email_verified", "phone_verified", "is_active")


class SQLiteStorage(AuthStorage):
    """
    SQLite AuthStorage.

    One connection per thread (sqlite3 connections are not shareable
    across threads). One-shot transitions are `UPDATE ... WHERE flag = 0`
    statements checked through `rowcount`, so they stay correct when
    several processes share the database file.

    Args:
        db_path: Path to the SQLite database file. Parent directories are
                 created automatically.
        timeout: Seconds to wait for a competing writer before failing.
    """

    def __init__(self, db_path: str, timeout: float = 5.0):
        self._db_path = db_path
        self._timeout = timeout
        self._local = threading.local()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        conn = self._connection()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Could not initialize database: {e}")

    def _connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            try:
                conn = sqlite3.connect(
                    self._db_path,
                    timeout=self._timeout,
                    isolation_level=None,
                )
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Could not open database: {e}")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction taking the database write lock up front."""
        conn = self._connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StorageUnavailable(str(e))
        try:
            yield conn
        except sqlite3.IntegrityError:
            conn.execute("ROLLBACK")
            raise
        except sqlite3.Error as e:
            conn.execute("ROLLBACK")
            raise StorageUnavailable(str(e))
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            return self._connection().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailable(str(e))

    # Row mapping

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        data = {name: row[name] for name in _USER_COLUMNS}
        for name in _BOOL_USER_COLUMNS:
            data[name] = bool(data[name])
        return User.from_dict(data)

    @staticmethod
    def _row_to_code(row: sqlite3.Row) -> VerificationCode:
        return VerificationCode(
            code_id=row["code_id"],
            user_id=row["user_id"],
            channel=row["channel"],
            code_hash=row["code_hash"],
            expires_at=row["expires_at"],
            created_at=row["created_at"],
            used=bool(row["used"]),
        )

    @staticmethod
    def _row_to_token(row: sqlite3.Row) -> RefreshToken:
        return RefreshToken(
            token_id=row["token_id"],
            user_id=row["user_id"],
            family_id=row["family_id"],
            token_hash=row["token_hash"],
            expires_at=row["expires_at"],
            created_at=row["created_at"],
            revoked=bool(row["revoked"]),
            replaced_by=row["replaced_by"],
        )

    # Users

    def insert_user(self, user: User) -> User:
        data = user.to_dict()
        placeholders = ", ".join("?" for _ in _USER_COLUMNS)
        try:
            with self._transaction() as conn:
                conn.execute(
                    f"INSERT INTO users ({', '.join(_USER_COLUMNS)}) VALUES ({placeholders})",
                    tuple(data[name] for name in _USER_COLUMNS),
                )
        except sqlite3.IntegrityError:
            raise DuplicateEmail()
        return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        rows = self._query("SELECT * FROM users WHERE email = ?", (email,))
        return self._row_to_user(rows[0]) if rows else None

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        rows = self._query("SELECT * FROM users WHERE user_id = ?", (user_id,))
        return self._row_to_user(rows[0]) if rows else None

    def update_user(self, user_id: str, **fields) -> Optional[User]:
        unknown = set(fields) - set(_USER_COLUMNS)
        if unknown or "user_id" in fields:
            raise ValueError(f"Cannot update user fields: {sorted(unknown) or ['user_id']}")

        fields["updated_at"] = utcnow_iso()
        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._transaction() as conn:
            cur = conn.execute(
                f"UPDATE users SET {assignments} WHERE user_id = ?",
                (*fields.values(), user_id),
            )
            if cur.rowcount == 0:
                return None
        return self.get_user_by_id(user_id)

    def list_users(self, limit: int, offset: int = 0) -> List[User]:
        rows = self._query(
            "SELECT * FROM users ORDER BY created_at, rowid LIMIT ? OFFSET ?",
            (limit, offset),
        )
        return [self._row_to_user(r) for r in rows]

    # Verification codes

    def insert_code(
        self,
        code: VerificationCode,
        window_start: float,
        limit: int
    ) -> Tuple[bool, Optional[float]]:
        with self._transaction() as conn:
            count, oldest = conn.execute(
                "SELECT COUNT(*), MIN(created_at) FROM verification_codes "
                "WHERE user_id = ? AND channel = ? AND created_at >= ?",
                (code.user_id, code.channel, window_start),
            ).fetchone()
            if count >= limit:
                return False, oldest

            conn.execute(
                "UPDATE verification_codes SET used = 1 "
                "WHERE user_id = ? AND channel = ? AND used = 0",
                (code.user_id, code.channel),
            )
            conn.execute(
                "INSERT INTO verification_codes "
                "(code_id, user_id, channel, code_hash, expires_at, created_at, used) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (code.code_id, code.user_id, code.channel, code.code_hash,
                 code.expires_at, code.created_at, int(code.used)),
            )
        return True, None

    def get_active_code(self, user_id: str, channel: str) -> Optional[VerificationCode]:
        rows = self._query(
            "SELECT * FROM verification_codes "
            "WHERE user_id = ? AND channel = ? AND used = 0 "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (user_id, channel),
        )
        return self._row_to_code(rows[0]) if rows else None

    def get_latest_code(self, user_id: str, channel: str) -> Optional[VerificationCode]:
        rows = self._query(
            "SELECT * FROM verification_codes "
            "WHERE user_id = ? AND channel = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (user_id, channel),
        )
        return self._row_to_code(rows[0]) if rows else None

    def mark_code_used(self, code_id: str) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE verification_codes SET used = 1 WHERE code_id = ? AND used = 0",
                (code_id,),
            )
            return cur.rowcount == 1

    # Refresh tokens

    def _insert_token(self, conn: sqlite3.Connection, token: RefreshToken):
        conn.execute(
            "INSERT INTO refresh_tokens "
            "(token_id, user_id, family_id, token_hash, expires_at, created_at, revoked, replaced_by) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (token.token_id, token.user_id, token.family_id, token.token_hash,
             token.expires_at, token.created_at, int(token.revoked), token.replaced_by),
        )

    def insert_refresh_token(self, token: RefreshToken) -> RefreshToken:
        with self._transaction() as conn:
            self._insert_token(conn, token)
        return token

    def get_refresh_token_by_hash(self, token_hash: str) -> Optional[RefreshToken]:
        rows = self._query("SELECT * FROM refresh_tokens WHERE token_hash = ?", (token_hash,))
        return self._row_to_token(rows[0]) if rows else None

    def get_refresh_token(self, token_id: str) -> Optional[RefreshToken]:
        rows = self._query("SELECT * FROM refresh_tokens WHERE token_id = ?", (token_id,))
        return self._row_to_token(rows[0]) if rows else None

    def rotate_refresh_token(self, token_id: str, successor: RefreshToken) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE refresh_tokens SET revoked = 1, replaced_by = ? "
                "WHERE token_id = ? AND revoked = 0",
                (successor.token_id, token_id),
            )
            if cur.rowcount != 1:
                return False
            self._insert_token(conn, successor)
            return True

    def revoke_refresh_token(self, token_id: str) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE refresh_tokens SET revoked = 1 WHERE token_id = ? AND revoked = 0",
                (token_id,),
            )
            return cur.rowcount == 1

    def revoke_family(self, family_id: str) -> int:
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE refresh_tokens SET revoked = 1 WHERE family_id = ? AND revoked = 0",
                (family_id,),
            )
            return cur.rowcount

    def revoke_user_tokens(self, user_id: str) -> int:
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE refresh_tokens SET revoked = 1 WHERE user_id = ? AND revoked = 0",
                (user_id,),
            )
            return cur.rowcount

    def list_family(self, family_id: str) -> List[RefreshToken]:
        rows = self._query(
            "SELECT * FROM refresh_tokens WHERE family_id = ? ORDER BY created_at, rowid",
            (family_id,),
        )
        return [self._row_to_token(r) for r in rows]

    # Maintenance

    def purge_expired(self, before: float) -> int:
        with self._transaction() as conn:
            codes = conn.execute(
                "DELETE FROM verification_codes WHERE expires_at < ?", (before,)
            ).rowcount
            tokens = conn.execute(
                "DELETE FROM refresh_tokens WHERE expires_at < ?", (before,)
            ).rowcount

        if codes or tokens:
            logger.info(f"Purged {codes} codes and {tokens} refresh tokens")
        return codes + tokens

    def close(self):
        """Close this thread's connection."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None
