"""
Docksupervisor - keeps registered Docker containers alive.

Remembers the launch configuration of each registered container and, when
the Docker engine reports it has died, recreates and restarts it under the
same name. Registrations survive restarts via a directory or SQLite persister.
"""

__version__ = "0.1.0"
