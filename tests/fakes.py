"""In-memory fakes of the container engine and its event feed."""

import queue

from docksupervisor.engine import ContainerEvent, EngineError, Instance


class ListFeed:
    """Event feed that ends after the given events."""

    def __init__(self, events):
        self._events = list(events)
        self.closed = False

    def __iter__(self):
        for event in self._events:
            if self.closed:
                return
            yield event

    def close(self):
        self.closed = True


class QueueFeed:
    """Event feed that blocks until events are pushed or it is closed."""

    _CLOSED = object()

    def __init__(self):
        self._queue = queue.Queue()

    def push(self, event):
        self._queue.put(event)

    def end(self):
        self._queue.put(self._CLOSED)

    def __iter__(self):
        while True:
            event = self._queue.get()
            if event is self._CLOSED:
                return
            yield event

    def close(self):
        self.end()


class FakeEngine:
    """Records every engine call; ops listed in `fail` raise EngineError."""

    def __init__(self, instances=None, events=(), created_ids=()):
        self.instances = {i.id: i for i in (instances or [])}
        self.feed = ListFeed(events)
        self.created_ids = list(created_ids)
        self.calls = []
        self.fail = set()
        self.subscribe_error = None
        self._counter = 0

    def inspect(self, container_id):
        self.calls.append(("inspect", container_id))
        if "inspect" in self.fail:
            raise EngineError("inspect failed")
        for instance in self.instances.values():
            if container_id in (instance.id, instance.name.lstrip("/")):
                return instance
        raise EngineError(f"No such container: {container_id}")

    def remove(self, container_id):
        self.calls.append(("remove", container_id))
        if "remove" in self.fail:
            raise EngineError("remove failed")
        self.instances.pop(container_id, None)

    def create(self, name, config):
        self.calls.append(("create", name, config))
        if "create" in self.fail:
            raise EngineError("create failed")
        if self.created_ids:
            return self.created_ids.pop(0)
        self._counter += 1
        return f"new{self._counter}"

    def start(self, container_id, host_config):
        self.calls.append(("start", container_id, host_config))
        if "start" in self.fail:
            raise EngineError("start failed")
        return container_id

    def subscribe(self):
        self.calls.append(("subscribe",))
        if self.subscribe_error:
            raise self.subscribe_error
        return self.feed

    def close(self):
        pass



def die(container_id):
    return ContainerEvent(id=container_id, status="die")
