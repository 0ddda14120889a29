"""Shared test fixtures and helpers.

Every test gets a fresh in-memory store seeded with one organization and
one member per role. ``make_request`` inserts a request directly in any
status so tests can start mid-lifecycle without driving the agents.
"""

import pytest

from intakeflow.config import Complexity, RequestStatus, UserRole
from intakeflow.lifecycle.decisions import DecisionRecorder
from intakeflow.lifecycle.outcomes import OutcomeCalibrator
from intakeflow.lifecycle.service import LifecycleService
from intakeflow.models import Actor, FeatureRequest, Member, Organization
from intakeflow.notifications import InMemoryNotificationSink, NotificationDispatcher
from intakeflow.persistence.store import InMemoryStore
from intakeflow.pipeline.orchestrator import AgentPipelineOrchestrator

ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep credentials from the developer's shell out of the tests."""
    for name in (
        "GITHUB_TOKEN",
        "JIRA_BASE_URL",
        "JIRA_EMAIL",
        "JIRA_API_TOKEN",
        "LINEAR_API_KEY",
        "SLACK_BOT_TOKEN",
        "SLACK_CHANNEL",
        "LLM_PROVIDER",
    ):
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Organization and actors
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    store = InMemoryStore()
    store.add_organization(Organization(id=ORG_ID, name="Acme"))
    store.add_organization(Organization(id=OTHER_ORG_ID, name="Globex"))
    for user_id, role in (
        ("alice", UserRole.STAKEHOLDER),
        ("rita", UserRole.REVIEWER),
        ("adam", UserRole.ADMIN),
    ):
        store.add_member(Member(user_id=user_id, organization_id=ORG_ID, role=role))
    store.add_member(Member(user_id="olga", organization_id=OTHER_ORG_ID, role=UserRole.ADMIN))
    return store


@pytest.fixture
def stakeholder():
    return Actor(user_id="alice", organization_id=ORG_ID, role=UserRole.STAKEHOLDER)


@pytest.fixture
def reviewer():
    return Actor(user_id="rita", organization_id=ORG_ID, role=UserRole.REVIEWER)


@pytest.fixture
def admin():
    return Actor(user_id="adam", organization_id=ORG_ID, role=UserRole.ADMIN)


@pytest.fixture
def outsider():
    return Actor(user_id="olga", organization_id=OTHER_ORG_ID, role=UserRole.ADMIN)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def sink():
    return InMemoryNotificationSink()


@pytest.fixture
def dispatcher(store, sink):
    return NotificationDispatcher(store, [sink])


@pytest.fixture
def service(store, dispatcher):
    return LifecycleService(store, dispatcher)


@pytest.fixture
def recorder(store, dispatcher):
    return DecisionRecorder(store, dispatcher)


@pytest.fixture
def calibrator(store):
    return OutcomeCalibrator(store)


@pytest.fixture
def orchestrator(store, dispatcher):
    return AgentPipelineOrchestrator(store, dispatcher, tool_timeout=5)


# ---------------------------------------------------------------------------
# Request factory
# ---------------------------------------------------------------------------

ASSESSED_FIELDS = {
    "business_score": 80.0,
    "technical_score": 70.0,
    "risk_score": 30.0,
    "priority_score": 74.0,
    "complexity": Complexity.M,
    "assessment_data": {"executive_summary": "Worth doing"},
}


@pytest.fixture
def make_request(store):
    """Insert a request owned by alice in the given status."""

    def _make(status: RequestStatus = RequestStatus.DRAFT, assessed: bool = False, **fields):
        data = {
            "organization_id": ORG_ID,
            "requester_id": "alice",
            "title": "Export invoices to CSV",
            "summary": "Finance wants monthly invoice exports",
            "status": status,
        }
        if assessed:
            data.update(ASSESSED_FIELDS)
        data.update(fields)
        return store.insert_request(FeatureRequest(**data))

    return _make
