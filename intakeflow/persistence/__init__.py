"""Persistence stores for intakeflow."""

from .store import InMemoryStore
from .yaml_store import YamlFileStore

__all__ = ["InMemoryStore", "YamlFileStore"]
