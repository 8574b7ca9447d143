# sentinelmind/services/template_store.py

import sqlite3
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BiometricTemplate:
    """Enrolled signature for one owner; replaced wholesale on re-enrollment"""
    owner_id: str
    signature: str
    registered_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "signature": self.signature,
            "registered_at": self.registered_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BiometricTemplate":
        registered_at = data["registered_at"]
        if isinstance(registered_at, str):
            registered_at = datetime.fromisoformat(registered_at)
        return cls(
            owner_id=data["owner_id"],
            signature=data["signature"],
            registered_at=registered_at,
        )


class TemplateStore(Protocol):
    """Key-value store of biometric templates keyed by owner id"""

    def get(self, owner_id: str) -> Optional[BiometricTemplate]:
        ...

    def set(self, owner_id: str, template: BiometricTemplate) -> None:
        ...

    def delete(self, owner_id: str) -> bool:
        """Drop the owner's template; False if there was none"""
        ...


class InMemoryTemplateStore:
    """Process-local store; handy for tests and single-session kiosks"""

    def __init__(self):
        self._templates: Dict[str, BiometricTemplate] = {}
        self._lock = threading.Lock()

    def get(self, owner_id: str) -> Optional[BiometricTemplate]:
        with self._lock:
            return self._templates.get(owner_id)

    def set(self, owner_id: str, template: BiometricTemplate) -> None:
        with self._lock:
            self._templates[owner_id] = template

    def delete(self, owner_id: str) -> bool:
        with self._lock:
            return self._templates.pop(owner_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._templates)


class SqliteTemplateStore:
    """
    SQLite-backed template store.
    One row per owner; a write replaces the row in a single statement so a
    concurrent read sees either the old template or the new one.
    """

    def __init__(self, db_path: str = "data/templates.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Thread-local storage for connections
        self._local = threading.local()
        self._connections = []
        self._connections_lock = threading.Lock()

        self._init_database()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection"""
        if not hasattr(self._local, 'connection'):
            conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=30.0
            )
            cursor = conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

            self._local.connection = conn
            with self._connections_lock:
                self._connections.append(conn)

        return self._local.connection

    def _init_database(self):
        """Initialize database schema"""
        try:
            conn = self._get_connection()
            conn.execute("""
                CREATE TABLE IF NOT EXISTS biometric_templates (
                    owner_id TEXT PRIMARY KEY,
                    signature TEXT NOT NULL,
                    registered_at TEXT NOT NULL
                )
            """)
            conn.commit()
            logger.info(f"Template store initialized at {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize template store: {e}")
            raise

    def get(self, owner_id: str) -> Optional[BiometricTemplate]:
        conn = self._get_connection()
        row = conn.execute(
            "SELECT owner_id, signature, registered_at FROM biometric_templates WHERE owner_id = ?",
            (owner_id,)
        ).fetchone()
        if row is None:
            return None
        return BiometricTemplate(
            owner_id=row[0],
            signature=row[1],
            registered_at=datetime.fromisoformat(row[2]),
        )

    def set(self, owner_id: str, template: BiometricTemplate) -> None:
        conn = self._get_connection()
        with conn:
            conn.execute("""
                INSERT INTO biometric_templates (owner_id, signature, registered_at)
                VALUES (?, ?, ?)
                ON CONFLICT(owner_id) DO UPDATE SET
                    signature = excluded.signature,
                    registered_at = excluded.registered_at
            """, (owner_id, template.signature, template.registered_at.isoformat()))
        logger.debug(f"Stored template for owner {owner_id}")

    def delete(self, owner_id: str) -> bool:
        conn = self._get_connection()
        with conn:
            cursor = conn.execute(
                "DELETE FROM biometric_templates WHERE owner_id = ?", (owner_id,)
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.debug(f"Deleted template for owner {owner_id}")
        return deleted

    def count(self) -> int:
        conn = self._get_connection()
        return conn.execute("SELECT COUNT(*) FROM biometric_templates").fetchone()[0]

    def close(self):
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()
        logger.info("Template store closed")
