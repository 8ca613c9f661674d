"""
Registry of supervised containers.

Maps container names to the launch configuration they should be recreated
with. Memory is authoritative for the running process; the persister is a
recovery aid, so persistence failures are logged and never undo or fail a
registry operation.
"""

import copy
import logging
import threading

from .persistence import NullPersister, PersistenceError, Persister

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Docker reports container names with a leading slash ("/web1")."""
    return name.strip("/")


class ConfigStore:
    """Thread-safe name -> launch configuration mapping."""

    def __init__(self, persister: Persister = None):
        self._configs: dict[str, dict] = {}
        self._persister = persister or NullPersister()
        # Guards the mapping and the persister writes so disk order follows memory order.
        self._lock = threading.Lock()

    @property
    def persister(self) -> Persister:
        return self._persister

    def load(self) -> int:
        """Populate the registry from the persister. Returns the number of entries loaded.

        Raises PersistenceError if the backing store cannot be read at all;
        individual unreadable records are skipped by the persister.
        """
        records = self._persister.load_all()
        with self._lock:
            for name, document in records.items():
                self._configs[normalize_name(name)] = document
            count = len(records)
        logger.info(f"Loaded {count} container configuration(s) from {self._persister!r}")
        return count

    def add(self, name: str, document: dict):
        """Insert or replace the configuration for name."""
        name = normalize_name(name)
        document = copy.deepcopy(document)
        with self._lock:
            self._configs[name] = document
            try:
                self._persister.save(name, document)
            except PersistenceError as e:
                logger.error(f"Failed to persist configuration for {name}: {e}")
        logger.info(f"Supervising container {name}")

    def get(self, name: str) -> tuple[dict | None, bool]:
        """Look up name. Returns (document, found)."""
        with self._lock:
            document = self._configs.get(normalize_name(name))
        if document is None:
            return None, False
        return copy.deepcopy(document), True

    def remove(self, name: str):
        """Stop supervising name. Removing an unknown name is a no-op.

        The running container, if any, is left alone; it simply will not be
        recreated the next time it dies.
        """
        name = normalize_name(name)
        with self._lock:
            existed = self._configs.pop(name, None) is not None
            try:
                self._persister.delete(name)
            except PersistenceError as e:
                logger.error(f"Failed to delete persisted configuration for {name}: {e}")
        if existed:
            logger.info(f"No longer supervising container {name}")

    def snapshot(self) -> dict[str, dict]:
        """Point-in-time copy of the whole mapping."""
        with self._lock:
            return copy.deepcopy(self._configs)

    def names(self) -> list[str]:
        return sorted(self.snapshot())

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return normalize_name(name) in self._configs

    def __len__(self) -> int:
        with self._lock:
            return len(self._configs)
