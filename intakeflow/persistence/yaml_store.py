"""YAML snapshot persistence for the in-memory store.

``YamlFileStore`` keeps the in-memory tables authoritative and writes the
whole store to a single YAML file after every committed unit of work. It is
meant for local runs and demos, not concurrent multi-process access.

Directory Structure:
    data_dir/
    └── intakeflow.yaml    # Store snapshot

Example intakeflow.yaml:
    organizations:
      - id: "org-1"
        name: "Acme"
        scoring_config: null
    requests:
      - id: "4c1e..."
        title: "Bulk CSV import"
        status: "UNDER_REVIEW"
        version: 3
    decisions: []
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from ..models import (
    Decision,
    Epic,
    FeatureRequest,
    Integration,
    Member,
    Organization,
    OutcomeEntry,
    RepositoryLink,
    SyncLogEntry,
    UserStory,
)
from .store import InMemoryStore

logger = logging.getLogger(__name__)


class YamlFileStore(InMemoryStore):
    """In-memory store that persists a YAML snapshot on every commit."""

    STORE_FILE = "intakeflow.yaml"

    def __init__(self, data_dir: Path | str):
        """Initialize the store, loading an existing snapshot if present.

        Args:
            data_dir: Directory holding the snapshot file
        """
        super().__init__()
        self.data_dir = Path(data_dir)
        self.store_file = self.data_dir / self.STORE_FILE
        if self.exists():
            self.load()

    def exists(self) -> bool:
        return self.store_file.exists()

    def load(self) -> None:
        """Replace the in-memory tables with the snapshot on disk."""
        with open(self.store_file) as f:
            data = yaml.safe_load(f) or {}

        with self._lock:
            self.organizations = {
                o.id: o
                for o in (Organization.model_validate(r) for r in data.get("organizations", []))
            }
            self.members = {
                (m.organization_id, m.user_id): m
                for m in (Member.model_validate(r) for r in data.get("members", []))
            }
            self.requests = {
                r.id: r
                for r in (FeatureRequest.model_validate(r) for r in data.get("requests", []))
            }
            self.decisions = {
                d.id: d for d in (Decision.model_validate(r) for r in data.get("decisions", []))
            }
            self.outcomes = [OutcomeEntry.model_validate(r) for r in data.get("outcomes", [])]
            self.epics = {e.id: e for e in (Epic.model_validate(r) for r in data.get("epics", []))}
            self.stories = {
                s.id: s for s in (UserStory.model_validate(r) for r in data.get("stories", []))
            }
            self.repository_links = {
                link.organization_id: link
                for link in (
                    RepositoryLink.model_validate(r) for r in data.get("repository_links", [])
                )
            }
            self.integrations = {
                (i.organization_id, i.type): i
                for i in (Integration.model_validate(r) for r in data.get("integrations", []))
            }
            self.sync_log = [SyncLogEntry.model_validate(r) for r in data.get("sync_log", [])]

        logger.info(f"Loaded store snapshot from {self.store_file} ({len(self.requests)} requests)")

    def _on_commit(self) -> None:
        self.save()

    def save(self) -> None:
        """Write the current tables to the snapshot file."""
        data: dict[str, Any] = {}
        with self._lock:
            for name in self._TABLES:
                table = getattr(self, name)
                rows = table.values() if isinstance(table, dict) else table
                data[name] = [row.model_dump(mode="json") for row in rows]

        self.data_dir.mkdir(parents=True, exist_ok=True)
        with open(self.store_file, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
