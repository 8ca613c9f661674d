"""
Entry point for running the supervisor via `python -m docksupervisor`.

Starts the FastAPI server with uvicorn.
"""

import uvicorn

from .config import config
from .main import setup_logging


def main():
    """Run the supervisor server."""
    setup_logging(config)
    uvicorn.run(
        "docksupervisor.main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=False,
        log_config=None,
    )


if __name__ == "__main__":
    main()
