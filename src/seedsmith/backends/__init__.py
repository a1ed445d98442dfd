"""Persistence backends for generated seed data."""

from seedsmith.backends.base import Persister
from seedsmith.backends.memory import MemoryPersister
from seedsmith.backends.postgres import PostgresPersister

__all__ = ["Persister", "MemoryPersister", "PostgresPersister"]
