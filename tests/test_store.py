"""Tests for the in-memory store and its YAML snapshot variant."""

from datetime import datetime, timedelta, timezone

import pytest
import yaml

from intakeflow.config import RequestStatus
from intakeflow.errors import ConflictError, NotFound
from intakeflow.models import Decision, Epic, FeatureRequest, Integration, Organization, UserStory
from intakeflow.persistence import InMemoryStore, YamlFileStore

ORG_ID = "org-1"


# ---------------------------------------------------------------------------
# Compare-and-swap
# ---------------------------------------------------------------------------


class TestUpdateRequest:
    def test_bumps_version(self, store, make_request):
        request = make_request()
        updated = store.update_request(request.id, summary="changed")
        assert updated.version == request.version + 1
        assert updated.summary == "changed"
        assert updated.updated_at >= request.updated_at

    def test_expected_version_matches(self, store, make_request):
        request = make_request()
        updated = store.update_request(request.id, expected_version=request.version, summary="x")
        assert updated.version == 1

    def test_stale_version_conflicts(self, store, make_request):
        request = make_request()
        store.update_request(request.id, summary="first writer")

        with pytest.raises(ConflictError) as exc_info:
            store.update_request(request.id, expected_version=request.version, summary="second")

        assert exc_info.value.retryable
        assert exc_info.value.actual_version == 1
        assert store.get_request(request.id).summary == "first writer"

    def test_missing_request(self, store):
        with pytest.raises(NotFound):
            store.update_request("nope", summary="x")

    def test_returns_copies(self, store, make_request):
        request = make_request()
        fetched = store.get_request(request.id)
        fetched.tags.append("mutated")
        assert store.get_request(request.id).tags == []


class TestListRequests:
    def test_scoped_and_newest_first(self, store, make_request):
        older = datetime(2026, 1, 1, tzinfo=timezone.utc)
        first = make_request(title="first", created_at=older)
        second = make_request(title="second", created_at=older + timedelta(days=1))
        store.insert_request(
            FeatureRequest(organization_id="org-2", requester_id="olga", title="other org")
        )

        rows = store.list_requests(ORG_ID)
        assert [r.id for r in rows] == [second.id, first.id]

    def test_status_filter(self, store, make_request):
        make_request(status=RequestStatus.DRAFT)
        backlog = make_request(status=RequestStatus.IN_BACKLOG)
        rows = store.list_requests(ORG_ID, statuses=(RequestStatus.IN_BACKLOG,))
        assert [r.id for r in rows] == [backlog.id]

    def test_predicate(self, store, make_request):
        make_request(tags=["billing"])
        make_request(tags=[])
        rows = store.list_requests(ORG_ID, predicate=lambda r: "billing" in r.tags)
        assert len(rows) == 1


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


class TestTransaction:
    def test_rollback_on_error(self, store, make_request):
        request = make_request()

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.update_request(request.id, summary="inside")
                store.insert_decision(
                    Decision(
                        request_id=request.id, user_id="rita", decision="APPROVE", rationale="ok"
                    )
                )
                raise RuntimeError("boom")

        assert store.get_request(request.id).summary == request.summary
        assert store.list_decisions(request.id) == []

    def test_before_commit_failure_rolls_back(self, store, make_request):
        request = make_request()

        def veto():
            raise RuntimeError("deadline passed")

        with pytest.raises(RuntimeError, match="deadline passed"):
            with store.transaction(before_commit=veto):
                store.update_request(request.id, summary="late write")

        assert store.get_request(request.id).version == request.version

    def test_nested_rolls_back_with_outer(self, store, make_request):
        request = make_request()

        with pytest.raises(ValueError):
            with store.transaction():
                with store.transaction():
                    store.update_request(request.id, summary="nested")
                raise ValueError("outer fails")

        assert store.get_request(request.id).summary == request.summary

    def test_commit_hook_runs_once_for_outermost(self):
        commits = []

        class CountingStore(InMemoryStore):
            def _on_commit(self):
                commits.append(1)

        store = CountingStore()
        with store.transaction():
            store.add_organization(Organization(id=ORG_ID, name="Acme"))
            store.add_organization(Organization(id="org-2", name="Globex"))
        assert commits == [1]


# ---------------------------------------------------------------------------
# Epics, stories, integrations
# ---------------------------------------------------------------------------


class TestOutputArtifacts:
    def test_story_order_from_insertion(self, store, make_request):
        request = make_request()
        epic = store.insert_epic(Epic(request_id=request.id, title="Exports"))
        for title in ("a", "b", "c"):
            store.insert_story(
                UserStory(
                    epic_id=epic.id, title=title, as_a="user", i_want="x", so_that="y", priority=1
                )
            )
        stories = store.list_stories(epic.id)
        assert [(s.title, s.order) for s in stories] == [("a", 0), ("b", 1), ("c", 2)]

    def test_epic_for_request(self, store, make_request):
        request = make_request()
        assert store.get_epic_for_request(request.id) is None
        epic = store.insert_epic(Epic(request_id=request.id, title="Exports"))
        assert store.get_epic_for_request(request.id).id == epic.id

    def test_inactive_integration_is_hidden(self, store):
        store.set_integration(Integration(organization_id=ORG_ID, type="JIRA", is_active=False))
        assert store.get_integration(ORG_ID, "JIRA") is None


# ---------------------------------------------------------------------------
# YAML snapshot
# ---------------------------------------------------------------------------


class TestYamlFileStore:
    def test_no_file_until_first_commit(self, tmp_path):
        store = YamlFileStore(tmp_path / "data")
        assert not store.exists()
        store.add_organization(Organization(id=ORG_ID, name="Acme"))
        assert store.exists()

    def test_round_trip_through_disk(self, tmp_path):
        store = YamlFileStore(tmp_path)
        store.add_organization(Organization(id=ORG_ID, name="Acme"))
        request = store.insert_request(
            FeatureRequest(organization_id=ORG_ID, requester_id="alice", title="Dark mode")
        )
        store.update_request(request.id, status=RequestStatus.INTAKE_IN_PROGRESS)

        reloaded = YamlFileStore(tmp_path)
        row = reloaded.get_request(request.id)
        assert row.status is RequestStatus.INTAKE_IN_PROGRESS
        assert row.version == 1
        assert reloaded.get_organization(ORG_ID).name == "Acme"

    def test_rolled_back_writes_are_not_saved(self, tmp_path):
        store = YamlFileStore(tmp_path)
        request = store.insert_request(
            FeatureRequest(organization_id=ORG_ID, requester_id="alice", title="Dark mode")
        )

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.update_request(request.id, title="Changed")
                raise RuntimeError("abort")

        with open(tmp_path / YamlFileStore.STORE_FILE) as f:
            data = yaml.safe_load(f)
        assert data["requests"][0]["title"] == "Dark mode"
