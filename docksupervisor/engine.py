"""
Docker engine adapter.

Thin wrapper over the docker SDK's low-level APIClient exposing exactly the
primitives the supervisor needs: inspect, remove, create, start and the
lifecycle event feed. Every SDK or transport error is re-raised as
EngineError so callers only have one failure type to handle.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterator

import docker
import requests
from docker.errors import DockerException

logger = logging.getLogger(__name__)

DEATH_STATUS = "die"


class EngineError(Exception):
    """Raised when a call to the container engine fails."""


class InstanceLost(EngineError):
    """The container was removed and could not be created again."""


@dataclass
class Instance:
    """A container instance as reported by inspect."""

    id: str
    name: str
    config: dict = field(default_factory=dict)
    host_config: dict = field(default_factory=dict)


@dataclass
class ContainerEvent:
    """A lifecycle event from the engine's event feed."""

    id: str
    status: str

    @property
    def is_death(self) -> bool:
        return self.status == DEATH_STATUS


class EventFeed:
    """Iterator over container events that can be closed from another thread."""

    def __init__(self, stream):
        self._stream = stream
        self._closed = False

    def __iter__(self) -> Iterator[ContainerEvent]:
        try:
            for raw in self._stream:
                if raw.get("Type", "container") != "container":
                    continue
                status = raw.get("status") or raw.get("Action") or ""
                container_id = raw.get("id") or raw.get("Actor", {}).get("ID") or ""
                yield ContainerEvent(id=container_id, status=status)
        except (DockerException, requests.exceptions.RequestException, OSError, ValueError) as e:
            if self._closed:
                return
            raise EngineError(f"Event feed failed: {e}") from e

    def close(self):
        self._closed = True
        try:
            self._stream.close()
        except Exception as e:
            logger.debug(f"Error closing event stream: {e}")


class DockerEngine:
    """Container engine backed by a Docker daemon."""

    def __init__(self, base_url: str, timeout: int = 60, client: docker.APIClient = None):
        self.base_url = base_url
        try:
            self._client = client or docker.APIClient(base_url=base_url, timeout=timeout, version="auto")
        except (DockerException, requests.exceptions.RequestException) as e:
            raise EngineError(f"Failed to connect to docker at {base_url}: {e}") from e
        # Containers created but not started yet: id -> (name, config)
        self._pending: dict[str, tuple[str, dict]] = {}
        self._lock = threading.Lock()

    def inspect(self, container_id: str) -> Instance:
        info = self._call("inspect", self._client.inspect_container, container_id)
        return Instance(
            id=info["Id"],
            name=info.get("Name", "").lstrip("/"),
            config=info.get("Config") or {},
            host_config=info.get("HostConfig") or {},
        )

    def remove(self, container_id: str):
        self._call("remove", self._client.remove_container, container_id)

    def create(self, name: str, config: dict) -> str:
        result = self._call("create", self._client.create_container_from_config, config, name=name)
        container_id = result["Id"]
        for warning in result.get("Warnings") or []:
            logger.warning(f"Docker warning creating {name}: {warning}")
        with self._lock:
            self._pending[container_id] = (name, config)
        return container_id

    def start(self, container_id: str, host_config: dict = None) -> str:
        """Start a container with the given host configuration. Returns the started id.

        The Docker API only accepts host configuration at create time, so a
        container created by create() is swapped for one carrying host_config
        before it is started. If that second create fails the container is
        gone and InstanceLost is raised.
        """
        with self._lock:
            pending = self._pending.pop(container_id, None)

        if host_config and pending:
            name, config = pending
            self._call("remove", self._client.remove_container, container_id)
            try:
                result = self._call(
                    "create",
                    self._client.create_container_from_config,
                    {**config, "HostConfig": host_config},
                    name=name,
                )
            except EngineError as e:
                raise InstanceLost(str(e)) from e
            container_id = result["Id"]

        self._call("start", self._client.start, container_id)
        return container_id

    def subscribe(self) -> EventFeed:
        stream = self._call("subscribe", self._client.events, decode=True)
        return EventFeed(stream)

    def close(self):
        self._client.close()

    def _call(self, op: str, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (DockerException, requests.exceptions.RequestException, OSError) as e:
            raise EngineError(f"{op} failed: {e}") from e
