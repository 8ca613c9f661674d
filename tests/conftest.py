import pytest

from docksupervisor.engine import Instance
from docksupervisor.persistence import MemoryPersister
from docksupervisor.registry import ConfigStore


@pytest.fixture
def registry():
    return ConfigStore(MemoryPersister())


@pytest.fixture
def web1_instance():
    return Instance(
        id="i1",
        name="/web1",
        config={"Image": "nginx"},
        host_config={"Memory": 268435456, "PortBindings": {"80/tcp": [{"HostPort": "8080"}]}},
    )
