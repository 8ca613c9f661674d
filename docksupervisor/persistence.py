"""
Durable storage for supervised container configurations.

A persister is a small keyed document store: save(), load_all() and
delete(). The registry loads it once at startup and afterwards writes
through to it on a best-effort basis. DirectoryPersister keeps one JSON file
per container name; SqlitePersister keeps one row per name in a SQLite
database via Peewee.
"""

import copy
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from peewee import CharField, DatabaseError, DateTimeField, Model, SqliteDatabase, TextField

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when a persister cannot read or write its backing store."""


class Persister(ABC):
    """Keyed document store used to recover the registry across restarts."""

    @abstractmethod
    def save(self, name: str, document: dict) -> None:
        """Durably store the document for name, replacing any previous one."""

    @abstractmethod
    def load_all(self) -> dict[str, dict]:
        """Return every durable (name, document) pair."""

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove the record for name. A missing record is not an error."""


class NullPersister(Persister):
    """Memory-only mode: nothing is stored and nothing ever fails."""

    def save(self, name: str, document: dict) -> None:
        pass

    def load_all(self) -> dict[str, dict]:
        return {}

    def delete(self, name: str) -> None:
        pass

    def __repr__(self):
        return "NullPersister()"


class MemoryPersister(Persister):
    """Dict-backed persister, handy for tests and embedding."""

    def __init__(self, records: dict[str, dict] = None):
        self._records = {name: _copy(doc) for name, doc in (records or {}).items()}
        self._lock = threading.Lock()

    def save(self, name: str, document: dict) -> None:
        with self._lock:
            self._records[name] = _copy(document)

    def load_all(self) -> dict[str, dict]:
        with self._lock:
            return {name: _copy(doc) for name, doc in self._records.items()}

    def delete(self, name: str) -> None:
        with self._lock:
            self._records.pop(name, None)


def sanitize_name(name: str) -> str:
    """Turn a container name into a safe single path component."""
    cleaned = name.strip("/" + os.sep)
    if not cleaned or cleaned in (".", "..") or "/" in cleaned or os.sep in cleaned:
        raise PersistenceError(f"Invalid container name for persistence: {name!r}")
    return cleaned


class DirectoryPersister(Persister):
    """Stores each document as a JSON file named after the container."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def path_for(self, name: str) -> Path:
        return self.root / sanitize_name(name)

    def save(self, name: str, document: dict) -> None:
        path = self.path_for(name)
        try:
            data = json.dumps(document, indent=2)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Cannot serialize configuration for {name}: {e}") from e

        # Write to a hidden temp file and rename so a failed write never
        # leaves a truncated record behind.
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=f".{path.name}.", suffix=".tmp")
        except OSError as e:
            raise PersistenceError(f"Cannot write configuration for {name}: {e}") from e
        try:
            with os.fdopen(fd, "w") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise PersistenceError(f"Cannot write configuration for {name}: {e}") from e

        logger.debug(f"Persisted configuration for {name} to {path}")

    def load_all(self) -> dict[str, dict]:
        try:
            entries = sorted(os.scandir(self.root), key=lambda e: e.name)
        except OSError as e:
            raise PersistenceError(f"Cannot read persist directory {self.root}: {e}") from e

        records = {}
        for entry in entries:
            if entry.name.startswith(".") or not entry.is_file():
                continue
            try:
                with open(entry.path) as f:
                    document = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable configuration file {entry.path}: {e}")
                continue
            records[entry.name] = document

        return records

    def delete(self, name: str) -> None:
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise PersistenceError(f"Cannot delete configuration for {name}: {e}") from e
        logger.debug(f"Deleted persisted configuration {path}")

    def __repr__(self):
        return f"DirectoryPersister({str(self.root)!r})"


class ManagedContainer(Model):
    """A persisted container configuration."""

    name = CharField(unique=True, index=True)
    document = TextField()
    updated_at = DateTimeField(default=datetime.now)

    class Meta:
        table_name = "managed_containers"


class SqlitePersister(Persister):
    """Stores documents as rows of a SQLite database."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._db = SqliteDatabase(
            str(self.db_path),
            pragmas={
                "journal_mode": "wal",
                "busy_timeout": 5000,
            },
        )
        db = self._db

        # Per-instance model so each persister only ever talks to its own database.
        class Record(ManagedContainer):
            class Meta:
                database = db
                table_name = "managed_containers"

        self.model = Record
        try:
            self._db.create_tables([Record], safe=True)
        except DatabaseError as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e

    def save(self, name: str, document: dict) -> None:
        try:
            data = json.dumps(document)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Cannot serialize configuration for {name}: {e}") from e
        try:
            with self._db.atomic():
                (
                    self.model.insert(name=name, document=data, updated_at=datetime.now())
                    .on_conflict_replace()
                    .execute()
                )
        except DatabaseError as e:
            raise PersistenceError(f"Cannot write configuration for {name}: {e}") from e

    def load_all(self) -> dict[str, dict]:
        try:
            rows = list(self.model.select().order_by(self.model.name))
        except DatabaseError as e:
            raise PersistenceError(f"Cannot read database {self.db_path}: {e}") from e

        records = {}
        for row in rows:
            try:
                records[row.name] = json.loads(row.document)
            except ValueError as e:
                logger.warning(f"Skipping unreadable configuration row {row.name}: {e}")
        return records

    def delete(self, name: str) -> None:
        try:
            self.model.delete().where(self.model.name == name).execute()
        except DatabaseError as e:
            raise PersistenceError(f"Cannot delete configuration for {name}: {e}") from e

    def close(self):
        self._db.close()

    def __repr__(self):
        return f"SqlitePersister({str(self.db_path)!r})"


def open_persister(root: str | Path, backend: str = "directory") -> Persister:
    """Pick a persister for root, falling back to memory-only if it is missing."""
    root = Path(root)
    if not root.is_dir():
        logger.warning(f"Persist dir {root} doesn't exist, not going to persist")
        return NullPersister()

    if backend == "sqlite":
        return SqlitePersister(root / "containers.db")
    return DirectoryPersister(root)


def _copy(document: dict) -> dict:
    return copy.deepcopy(document)
