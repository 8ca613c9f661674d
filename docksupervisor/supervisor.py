"""
Recreation supervisor.

Consumes the engine's lifecycle event feed on a dedicated thread. When a
supervised container dies it is removed, recreated under the same name from
the registered configuration, and started with the host configuration the
dead instance was running with, so out-of-band changes to runtime parameters
survive the restart.

Events are handled strictly one at a time in feed order. Failures of
individual engine calls are logged and the event is dropped; losing the feed
itself is fatal because nothing would be supervised any more.

Known gap: a container that dies between its first start and its
registration is not recreated, since the registry did not know it yet.
"""

import logging
import os
import signal
import threading
from collections import Counter
from enum import Enum
from typing import Callable

from .engine import ContainerEvent, EngineError, InstanceLost
from .registry import ConfigStore, normalize_name

logger = logging.getLogger(__name__)


class EventFeedClosed(Exception):
    """The event feed could not be opened or ended unexpectedly."""


class Outcome(Enum):
    IGNORED = "ignored"  # not a death event
    DROPPED = "dropped"  # dead instance could not be inspected
    UNSUPERVISED = "unsupervised"  # name not in the registry
    ABORTED = "aborted"  # replacement could not be created
    START_FAILED = "start_failed"  # replacement created but not started
    RESTARTED = "restarted"


def terminate_process(error: Exception):
    """Default fatal handler: ask our own process to shut down."""
    os.kill(os.getpid(), signal.SIGTERM)


class Supervisor:
    """Recreates supervised containers when they die."""

    def __init__(self, engine, registry: ConfigStore, on_fatal: Callable[[Exception], None] = None):
        self._engine = engine
        self._registry = registry
        self._on_fatal = on_fatal or terminate_process
        self._stop_event = threading.Event()
        self._thread: threading.Thread = None
        self._feed = None
        self._lock = threading.Lock()
        self._stats = Counter()

    def handle(self, event: ContainerEvent) -> Outcome:
        """Process a single event and return how it ended."""
        outcome = self._handle(event)
        with self._lock:
            self._stats[outcome] += 1
        return outcome

    def _handle(self, event: ContainerEvent) -> Outcome:
        if not event.is_death:
            return Outcome.IGNORED

        try:
            instance = self._engine.inspect(event.id)
        except EngineError as e:
            logger.warning(f"Container {event.id} destroyed too quickly, skipping: {e}")
            return Outcome.DROPPED

        name = normalize_name(instance.name)
        config, found = self._registry.get(name)
        if not found:
            logger.debug(f"Container {name} ({instance.id}) died but is not supervised")
            return Outcome.UNSUPERVISED

        logger.info(f"Supervised container {name} ({instance.id}) died, recreating")
        host_config = instance.host_config

        # A failed remove is not fatal to the restart: create reports the
        # name conflict if the dead instance is really still there.
        try:
            self._engine.remove(instance.id)
        except EngineError as e:
            logger.error(f"Unable to remove container {name} ({instance.id}): {e}")

        try:
            new_id = self._engine.create(name, config)
        except EngineError as e:
            logger.error(f"Unable to create container {name}: {e}")
            return Outcome.ABORTED

        try:
            started_id = self._engine.start(new_id, host_config)
        except InstanceLost as e:
            logger.error(f"Lost container {name} ({new_id}) while starting it: {e}")
            return Outcome.ABORTED
        except EngineError as e:
            logger.error(f"Unable to start container {name} ({new_id}): {e}")
            return Outcome.START_FAILED

        logger.info(f"Restarted container {name} as {started_id or new_id}")
        return Outcome.RESTARTED

    def run(self):
        """Consume the event feed until it ends or stop() is called.

        Raises EventFeedClosed if subscribing fails or the feed ends on its own.
        """
        try:
            feed = self._engine.subscribe()
        except EngineError as e:
            raise EventFeedClosed(f"Failed to subscribe to docker events: {e}") from e

        with self._lock:
            self._feed = feed
        if self._stop_event.is_set():
            self._close_feed()
            return

        logger.info("Listening for container events")
        try:
            for event in feed:
                if self._stop_event.is_set():
                    break
                try:
                    self.handle(event)
                except Exception as e:
                    logger.exception(f"Unexpected error handling event for {event.id}: {e}")
        except EngineError as e:
            if not self._stop_event.is_set():
                raise EventFeedClosed(str(e)) from e
        finally:
            with self._lock:
                self._feed = None

        if not self._stop_event.is_set():
            raise EventFeedClosed("Supervisor loop closed unexpectedly")

    def start(self):
        """Run the event loop on a background thread."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_thread, name="supervisor", daemon=True)
        self._thread.start()
        logger.info("Supervisor started")

    def stop(self, timeout: float = 5):
        """Stop the event loop and wait for the thread to exit."""
        self._stop_event.set()
        self._close_feed()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Supervisor thread did not stop in time")
        logger.info("Supervisor stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {outcome.value: self._stats[outcome] for outcome in Outcome}

    def _run_thread(self):
        try:
            self.run()
        except EventFeedClosed as e:
            logger.critical(f"Event feed lost, supervision impossible: {e}")
            self._on_fatal(e)
        except Exception as e:
            logger.critical(f"Supervisor loop crashed, supervision impossible: {e}", exc_info=True)
            self._on_fatal(e)

    def _close_feed(self):
        with self._lock:
            feed = self._feed
        close = getattr(feed, "close", None)
        if close:
            close()
