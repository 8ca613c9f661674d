"""
Container supervisor FastAPI application.

Provides the registration API for supervised containers and wires the
registry, its persister, the Docker engine and the recreation supervisor
together for the lifetime of the server. Registering a name captures the
running container's current configuration; removing it only stops future
recreation and leaves any running container alone.
"""

import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler

from fastapi import FastAPI, Form, HTTPException, Request, Response

from . import __version__
from .config import Config, config
from .engine import DockerEngine, EngineError
from .persistence import NullPersister, PersistenceError, open_persister
from .registry import ConfigStore, normalize_name
from .supervisor import Supervisor

logger = logging.getLogger(__name__)


def setup_logging(settings: Config):
    """Configure root logging: console, plus a rotating file if LOG_FILE is set."""
    log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)
    handlers = [console_handler]

    if settings.log_file:
        # Rotating file handler (auto-compaction)
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(log_formatter)
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )


def build_registry(settings: Config) -> ConfigStore:
    """Create the registry for settings and load whatever is persisted."""
    try:
        persister = open_persister(settings.persist_dir, settings.persist_backend)
    except PersistenceError as e:
        logger.warning(f"Failed to open persister, not going to persist: {e}")
        persister = NullPersister()

    registry = ConfigStore(persister)
    try:
        registry.load()
    except PersistenceError as e:
        logger.warning(f"Failed to load from persist dir: {e}")
    return registry


def create_app(
    settings: Config = None,
    engine=None,
    registry: ConfigStore = None,
    supervise: bool = True,
) -> FastAPI:
    """Build the application. engine and registry are created from settings when omitted."""
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        logger.info("Starting container supervisor...")

        app_engine = engine or DockerEngine(settings.docker_host, settings.docker_timeout)
        app_registry = registry if registry is not None else build_registry(settings)
        supervisor = Supervisor(app_engine, app_registry)

        app.state.engine = app_engine
        app.state.registry = app_registry
        app.state.supervisor = supervisor

        if supervise:
            supervisor.start()

        yield

        logger.info("Shutting down container supervisor...")
        supervisor.stop()
        if engine is None:
            app_engine.close()

    app = FastAPI(
        title="Container Supervisor",
        description="Recreates registered Docker containers when they die",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/api/status")
    def get_status(request: Request):
        """Get supervisor state and event outcome counters."""
        supervisor = request.app.state.supervisor
        return {
            "running": supervisor.is_running,
            "supervised": len(request.app.state.registry),
            "persister": repr(request.app.state.registry.persister),
            "events": supervisor.stats(),
        }

    @app.get("/")
    def list_containers(request: Request):
        """List supervised container names."""
        return request.app.state.registry.names()

    @app.post("/")
    def register_container(request: Request, id: str = Form("")):
        """Supervise a running container, remembering its current configuration."""
        name = normalize_name(id)
        if not name:
            raise HTTPException(status_code=400, detail="Bad request")

        registry = request.app.state.registry
        if name in registry:
            return Response(status_code=303, headers={"Location": f"/{name}"})

        try:
            instance = request.app.state.engine.inspect(name)
        except EngineError as e:
            raise HTTPException(status_code=400, detail=str(e))

        registry.add(instance.name, instance.config)
        return Response(status_code=201, headers={"Location": f"/{name}"})

    @app.get("/{name}")
    def get_container(request: Request, name: str):
        """Get the stored configuration for a supervised container."""
        document, found = request.app.state.registry.get(name)
        if not found:
            raise HTTPException(status_code=404, detail="Not found")
        return document

    @app.delete("/{name}")
    def unregister_container(request: Request, name: str):
        """Stop supervising a container. The container itself keeps running."""
        registry = request.app.state.registry
        if name not in registry:
            raise HTTPException(status_code=404, detail="Not found")
        registry.remove(name)
        return {"status": "deleted", "name": normalize_name(name)}

    return app
