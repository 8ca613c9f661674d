"""
Configuration for the container supervisor.

Loads settings from environment variables with sensible defaults.
The persistence directory is never created here: if it does not exist the
supervisor runs memory-only.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Config:
    """Supervisor configuration."""

    # Docker engine
    docker_host: str = os.environ.get("DOCKER_HOST", "unix:///var/run/docker.sock")
    docker_timeout: int = int(os.environ.get("DOCKER_TIMEOUT", "60"))

    # Persistence
    persist_dir: Path = Path(os.environ.get("PERSIST", "containers"))
    persist_backend: str = os.environ.get("PERSIST_BACKEND", "directory")  # directory, sqlite

    # Server
    host: str = os.environ.get("HOST", "0.0.0.0")
    port: int = int(os.environ.get("PORT", "8080"))

    # Logging
    log_level: str = os.environ.get("LOG_LEVEL", "INFO")
    log_file: str = os.environ.get("LOG_FILE", "")
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "5"))

    def __post_init__(self):
        self.persist_dir = Path(self.persist_dir)
        self.persist_backend = self.persist_backend.lower()
        if self.persist_backend not in ("directory", "sqlite"):
            raise ValueError(f"Unknown PERSIST_BACKEND: {self.persist_backend}")


config = Config()
