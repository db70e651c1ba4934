# =============================================================================
# DATABASE MODULE
# =============================================================================
# Persistence of per-user recommendation signals (feedback, view history,
# preferences). Every backend stores one JSON snapshot per user id.

import json
import logging
import os
import re
import threading
from typing import Any, Dict, Optional

import psycopg2
from psycopg2.extras import Json, RealDictCursor

logger = logging.getLogger(__name__)

SNAPSHOT_TABLE = "user_signal_snapshots"


class SignalPersistenceError(RuntimeError):
    """A backend could not load, save or delete a snapshot."""


# -----------------------------------------------------------------------------
# Connection
# -----------------------------------------------------------------------------
def get_db_connection(dsn: Optional[str] = None, sslmode: Optional[str] = None):
    dsn = dsn or os.getenv("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL is not set in env")

    try:
        conn = psycopg2.connect(
            dsn,
            cursor_factory=RealDictCursor,
            sslmode=sslmode or os.getenv("DATABASE_SSLMODE", "require"),
            connect_timeout=30,
            keepalives=1,
            keepalives_idle=600,
            keepalives_interval=30,
            keepalives_count=3,
            application_name="biblio_backend",
        )
        with conn.cursor() as cur:
            cur.execute("SET statement_timeout = '30s'")
        return conn
    except Exception as e:
        logger.error(f"DB connect error: {e}")
        return None


# -----------------------------------------------------------------------------
# PostgreSQL backend
# -----------------------------------------------------------------------------
class PostgresSignalBackend:
    name = "postgres"

    def __init__(self, dsn: Optional[str] = None, sslmode: Optional[str] = None):
        self.dsn = dsn
        self.sslmode = sslmode
        self._table_ready = False

    def _connect(self):
        conn = get_db_connection(self.dsn, self.sslmode)
        if not conn:
            raise SignalPersistenceError("Database unavailable")
        return conn

    def ensure_table(self) -> None:
        """Create the snapshot table if it doesn't exist"""
        if self._table_ready:
            return
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                cur.execute(f"""
                    CREATE TABLE IF NOT EXISTS {SNAPSHOT_TABLE} (
                        user_id TEXT PRIMARY KEY,
                        snapshot JSONB NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );
                """)
            conn.commit()
            self._table_ready = True
        except Exception as e:
            conn.rollback()
            raise SignalPersistenceError(f"Error creating {SNAPSHOT_TABLE}: {e}") from e
        finally:
            conn.close()

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        self.ensure_table()
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                cur.execute(f"""
                    SELECT snapshot FROM {SNAPSHOT_TABLE}
                    WHERE user_id = %s
                    LIMIT 1
                """, (user_id,))
                row = cur.fetchone()
            if not row:
                return None
            snapshot = row["snapshot"]
            # JSONB comes back decoded; TEXT columns from older tables don't
            if isinstance(snapshot, str):
                snapshot = json.loads(snapshot)
            return snapshot
        except SignalPersistenceError:
            raise
        except Exception as e:
            raise SignalPersistenceError(f"Error loading signals for {user_id}: {e}") from e
        finally:
            conn.close()

    def save(self, user_id: str, snapshot: Dict[str, Any]) -> None:
        self.ensure_table()
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                cur.execute(f"""
                    INSERT INTO {SNAPSHOT_TABLE} (user_id, snapshot, updated_at)
                    VALUES (%s, %s, NOW())
                    ON CONFLICT (user_id) DO UPDATE
                        SET snapshot = EXCLUDED.snapshot, updated_at = NOW()
                """, (user_id, Json(snapshot)))
            conn.commit()
        except Exception as e:
            conn.rollback()
            raise SignalPersistenceError(f"Error saving signals for {user_id}: {e}") from e
        finally:
            conn.close()

    def delete(self, user_id: str) -> None:
        self.ensure_table()
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                cur.execute(f"DELETE FROM {SNAPSHOT_TABLE} WHERE user_id = %s", (user_id,))
            conn.commit()
        except Exception as e:
            conn.rollback()
            raise SignalPersistenceError(f"Error deleting signals for {user_id}: {e}") from e
        finally:
            conn.close()


# -----------------------------------------------------------------------------
# Local JSON files (offline mirror)
# -----------------------------------------------------------------------------
class LocalFileSignalBackend:
    name = "local"

    def __init__(self, directory: str):
        self.directory = directory
        self._lock = threading.Lock()

    def path_for(self, user_id: str) -> str:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", str(user_id))
        return os.path.join(self.directory, f"{safe}.json")

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        path = self.path_for(user_id)
        with self._lock:
            if not os.path.exists(path):
                return None
            try:
                with open(path, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                raise SignalPersistenceError(f"Failed to read {path}: {e}") from e

    def save(self, user_id: str, snapshot: Dict[str, Any]) -> None:
        path = self.path_for(user_id)
        tmp_path = path + ".tmp"
        with self._lock:
            try:
                os.makedirs(self.directory, exist_ok=True)
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(snapshot, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, path)
            except (OSError, TypeError, ValueError) as e:
                raise SignalPersistenceError(f"Failed to write {path}: {e}") from e

    def delete(self, user_id: str) -> None:
        path = self.path_for(user_id)
        with self._lock:
            try:
                if os.path.exists(path):
                    os.remove(path)
            except OSError as e:
                raise SignalPersistenceError(f"Failed to remove {path}: {e}") from e


# -----------------------------------------------------------------------------
# Primary + local mirror
# -----------------------------------------------------------------------------
class FallbackSignalBackend:
    """
    Reads from the primary backend, falling back to the mirror when the
    primary fails or has nothing. Writes go to both; the mirror is always
    written first so an offline primary never loses data.
    """

    def __init__(self, primary, mirror):
        self.primary = primary
        self.mirror = mirror
        self.name = f"{primary.name}+{mirror.name}"

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            snapshot = self.primary.load(user_id)
            if snapshot is not None:
                return snapshot
            logger.info(f"No {self.primary.name} signals for {user_id}, using {self.mirror.name} data")
        except SignalPersistenceError as e:
            logger.warning(f"Could not load from {self.primary.name}, using {self.mirror.name}: {e}")
        return self.mirror.load(user_id)

    def save(self, user_id: str, snapshot: Dict[str, Any]) -> None:
        self.mirror.save(user_id, snapshot)
        self.primary.save(user_id, snapshot)

    def delete(self, user_id: str) -> None:
        errors = []
        for backend in (self.primary, self.mirror):
            try:
                backend.delete(user_id)
            except SignalPersistenceError as e:
                errors.append(str(e))
        if errors:
            raise SignalPersistenceError("; ".join(errors))


def build_signal_backend(config) -> Any:
    """
    Pick the persistence backend from app config.
    "auto" means Postgres (mirrored locally) when DATABASE_URL is set,
    local JSON files otherwise.
    """
    kind = str(config.get("SIGNAL_BACKEND", "auto")).lower()
    local = LocalFileSignalBackend(config.get("SIGNAL_STORE_DIR") or ".signal_store")
    dsn = config.get("DATABASE_URL")

    if kind == "local" or (kind == "auto" and not dsn):
        return local
    if kind in ("postgres", "auto"):
        primary = PostgresSignalBackend(dsn, config.get("DATABASE_SSLMODE"))
        return FallbackSignalBackend(primary, local)
    raise ValueError(f"Unknown SIGNAL_BACKEND: {kind}")
