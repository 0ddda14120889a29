"""Tests for the stage tool catalogues, executed through the orchestrator."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from intakeflow.config import (
    INTAKE_SECTIONS,
    Complexity,
    NotificationType,
    PipelineStage,
    RequestStatus,
    ScoringFramework,
)
from intakeflow.errors import InvalidTransition
from intakeflow.integrations.github import GitHubClient
from intakeflow.models import RepositoryLink, ScoringConfig

S = RequestStatus

TREE = {
    "tree": [
        {"path": "src/billing/invoice.py", "type": "blob", "size": 120},
        {"path": "src/billing", "type": "tree"},
        {"path": "docs/billing.md", "type": "blob", "size": 40},
        {"path": "README.md", "type": "blob", "size": 10},
    ],
    "truncated": False,
}


def _github(status_code=200, body=None, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=body if body is not None else TREE)

    return GitHubClient("ghp_test", transport=httpx.MockTransport(handler))


def _call(orchestrator, request_id, actor, tool_name, tool_input=None):
    ctx, stage = orchestrator.open_context(request_id, actor)
    return orchestrator.execute(ctx, stage, tool_name, tool_input)


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------


class TestIntakeTools:
    def test_opening_draft_starts_intake(self, orchestrator, make_request, stakeholder, store):
        request = make_request(status=S.DRAFT)
        ctx, stage = orchestrator.open_context(request.id, stakeholder)
        assert stage is PipelineStage.INTAKE
        assert ctx.request.status is S.INTAKE_IN_PROGRESS
        assert store.get_request(request.id).status is S.INTAKE_IN_PROGRESS

    def test_save_progress(self, orchestrator, make_request, stakeholder, store):
        request = make_request(status=S.INTAKE_IN_PROGRESS)
        result = _call(
            orchestrator,
            request.id,
            stakeholder,
            "save_intake_progress",
            {"section": "target_users", "data": {"persona": "Finance ops"}, "completeness": 80},
        )
        assert result == {"saved": True, "section": "target_users", "completeness": 80}
        saved = store.get_request(request.id).intake_data["target_users"]
        assert saved == {"persona": "Finance ops", "completeness": 80}

    def test_save_progress_replaces_section(self, orchestrator, make_request, stakeholder, store):
        request = make_request(
            status=S.INTAKE_IN_PROGRESS,
            intake_data={"constraints": {"budget": "none", "completeness": 10}},
        )
        _call(
            orchestrator,
            request.id,
            stakeholder,
            "save_intake_progress",
            {"section": "constraints", "data": {"deadline": "Q3"}, "completeness": 60},
        )
        assert store.get_request(request.id).intake_data["constraints"] == {
            "deadline": "Q3",
            "completeness": 60,
        }

    @pytest.mark.parametrize(
        "tool_input",
        [
            {"section": "wishlist", "data": {}, "completeness": 50},
            {"section": "target_users", "data": {}, "completeness": 150},
            {"section": "target_users", "data": {}, "completeness": 50, "extra": True},
            {"section": "target_users"},
        ],
    )
    def test_invalid_input_writes_nothing(
        self, orchestrator, make_request, stakeholder, store, tool_input
    ):
        request = make_request(status=S.INTAKE_IN_PROGRESS)
        result = _call(orchestrator, request.id, stakeholder, "save_intake_progress", tool_input)

        assert result["errorType"] == "ValidationError"
        assert result["error"].startswith("Invalid input for save_intake_progress")
        assert store.get_request(request.id).version == request.version

    def test_quality_score(self, orchestrator, make_request, stakeholder, store):
        request = make_request(
            status=S.INTAKE_IN_PROGRESS,
            intake_data={
                "problem_statement": {"pain": "Manual exports", "completeness": 90},
                "target_users": {"persona": "Finance", "completeness": 70},
                "constraints": {},
            },
        )
        result = _call(orchestrator, request.id, stakeholder, "check_quality_score")

        assert result["score"] == 29
        assert result["filledSections"] == ["problem_statement", "target_users"]
        assert "constraints" in result["missingSections"]
        assert result["totalSections"] == len(INTAKE_SECTIONS)
        assert store.get_request(request.id).quality_score == 29

    def test_mark_complete_moves_to_assessment(
        self, orchestrator, make_request, stakeholder, store, sink
    ):
        request = make_request(status=S.INTAKE_IN_PROGRESS)
        result = _call(
            orchestrator,
            request.id,
            stakeholder,
            "mark_intake_complete",
            {"summary": "Monthly CSV export of invoices"},
        )

        assert result == {"completed": True, "nextStatus": "PENDING_ASSESSMENT"}
        row = store.get_request(request.id)
        assert row.status is S.PENDING_ASSESSMENT
        assert row.intake_complete
        assert row.summary == "Monthly CSV export of invoices"
        # One bump for the summary write, one for the status change
        assert row.version == request.version + 2
        assert sink.sent == []

    def test_tools_refused_after_stage_left(self, orchestrator, make_request, stakeholder):
        request = make_request(status=S.INTAKE_IN_PROGRESS)
        ctx, stage = orchestrator.open_context(request.id, stakeholder)
        orchestrator.execute(ctx, stage, "mark_intake_complete", {"summary": "Done"})

        result = orchestrator.execute(
            ctx,
            stage,
            "save_intake_progress",
            {"section": "constraints", "data": {"x": 1}, "completeness": 5},
        )
        assert result["errorType"] == "StageMismatch"

    def test_similar_requests(self, orchestrator, make_request, stakeholder):
        base = datetime(2026, 3, 1, tzinfo=timezone.utc)
        older = make_request(
            status=S.IN_BACKLOG,
            title="Invoice PDF export",
            summary="Export invoices as PDF",
            created_at=base,
        )
        newer = make_request(
            status=S.UNDER_REVIEW,
            title="Export dashboard",
            summary=None,
            created_at=base + timedelta(days=1),
        )
        make_request(status=S.DRAFT, title="Dark mode", summary="Theme", created_at=base)
        current = make_request(status=S.INTAKE_IN_PROGRESS, title="Invoice export", created_at=base)

        result = _call(
            orchestrator,
            current.id,
            stakeholder,
            "get_similar_requests",
            {"keywords": "invoice, export"},
        )

        assert result["count"] == 2
        assert [m["id"] for m in result["matches"]] == [older.id, newer.id]
        assert result["matches"][0]["status"] == "IN_BACKLOG"

    def test_other_stage_tool_is_refused(self, orchestrator, make_request, stakeholder):
        request = make_request(status=S.INTAKE_IN_PROGRESS)
        result = _call(orchestrator, request.id, stakeholder, "save_epic", {"title": "x"})
        assert result["errorType"] == "StageMismatch"
        assert "belongs to the OUTPUT stage" in result["error"]


# ---------------------------------------------------------------------------
# Assessment
# ---------------------------------------------------------------------------

ASSESSMENT_INPUT = {
    "businessScore": 80,
    "technicalScore": 70,
    "riskScore": 30,
    "priorityScore": 78,
    "complexity": "M",
    "assessmentData": {"executive_summary": "Strong fit", "risks": ["PDF fonts"]},
}


class TestAssessmentTools:
    def test_organization_context_defaults(self, orchestrator, make_request, stakeholder):
        request = make_request(status=S.PENDING_ASSESSMENT)
        result = _call(orchestrator, request.id, stakeholder, "get_organization_context")
        assert result["framework"] == "RICE"
        assert result["thresholds"] == {"highPriority": 75, "mediumPriority": 50}

    def test_organization_context_uses_org_config(
        self, orchestrator, store, make_request, stakeholder
    ):
        wsjf = ScoringConfig(framework=ScoringFramework.WSJF)
        store.update_organization("org-1", scoring_config=wsjf)
        request = make_request(status=S.PENDING_ASSESSMENT)
        result = _call(orchestrator, request.id, stakeholder, "get_organization_context")
        assert result["framework"] == "WSJF"

    def test_current_backlog(self, orchestrator, make_request, stakeholder):
        low = make_request(status=S.IN_BACKLOG, priority_score=40.0)
        high = make_request(status=S.IN_PROGRESS, priority_score=90.0)
        unscored = make_request(status=S.APPROVED)
        make_request(status=S.REJECTED, priority_score=99.0)
        request = make_request(status=S.PENDING_ASSESSMENT)

        result = _call(orchestrator, request.id, stakeholder, "get_current_backlog")

        assert [i["id"] for i in result["items"]] == [high.id, low.id, unscored.id]
        assert result["items"][0]["priorityScore"] == 90.0

    def test_historical_estimates(self, orchestrator, make_request, stakeholder):
        done = make_request(status=S.COMPLETED, assessed=True, actual_complexity=Complexity.L)
        make_request(status=S.DRAFT)
        request = make_request(status=S.PENDING_ASSESSMENT)

        result = _call(orchestrator, request.id, stakeholder, "get_historical_estimates")

        assert result["count"] == 1
        assert result["items"][0]["id"] == done.id
        assert result["items"][0]["complexity"] == "M"
        assert result["items"][0]["actualComplexity"] == "L"

    def test_codebase_impact_without_repository(self, orchestrator, make_request, stakeholder):
        request = make_request(status=S.PENDING_ASSESSMENT)
        result = _call(
            orchestrator,
            request.id,
            stakeholder,
            "analyze_codebase_impact",
            {"keywords": ["billing"]},
        )
        assert result == {"available": False, "reason": "No repository linked to this organization"}

    def test_codebase_impact_without_token(self, orchestrator, store, make_request, stakeholder):
        store.set_repository_link(RepositoryLink(organization_id="org-1", owner="acme", repo="app"))
        request = make_request(status=S.PENDING_ASSESSMENT)
        result = _call(
            orchestrator,
            request.id,
            stakeholder,
            "analyze_codebase_impact",
            {"keywords": ["billing"]},
        )
        assert result == {"available": False, "reason": "No GitHub token configured"}

    def test_codebase_impact(self, store, dispatcher, make_request, stakeholder):
        from intakeflow.pipeline import AgentPipelineOrchestrator

        seen = []
        orchestrator = AgentPipelineOrchestrator(store, dispatcher, github=_github(seen=seen))
        store.set_repository_link(RepositoryLink(organization_id="org-1", owner="acme", repo="app"))
        request = make_request(status=S.PENDING_ASSESSMENT)

        result = _call(
            orchestrator,
            request.id,
            stakeholder,
            "analyze_codebase_impact",
            {"keywords": ["Billing"]},
        )

        assert seen[0].url.path == "/repos/acme/app/git/trees/main"
        assert seen[0].url.params["recursive"] == "1"
        assert seen[0].headers["Authorization"] == "Bearer ghp_test"
        assert result["available"] is True
        assert result["repository"] == "acme/app"
        assert result["totalFiles"] == 3
        assert result["matchedFiles"] == ["src/billing/invoice.py", "docs/billing.md"]
        assert result["affectedAreas"] == [
            {"area": "docs", "files": 1},
            {"area": "src", "files": 1},
        ]

    def test_codebase_impact_api_error(self, store, dispatcher, make_request, stakeholder):
        from intakeflow.pipeline import AgentPipelineOrchestrator

        orchestrator = AgentPipelineOrchestrator(
            store, dispatcher, github=_github(404, {"message": "Not Found"})
        )
        store.set_repository_link(RepositoryLink(organization_id="org-1", owner="acme", repo="app"))
        request = make_request(status=S.PENDING_ASSESSMENT)

        result = _call(
            orchestrator,
            request.id,
            stakeholder,
            "analyze_codebase_impact",
            {"keywords": ["x"]},
        )
        assert result["available"] is False
        assert "acme/app@main not found" in result["reason"]

    @pytest.mark.parametrize(
        "reply,reason",
        [
            ({"text": "<html>oops</html>"}, "non-JSON tree"),
            ({"json": ["not", "an", "object"]}, "Unexpected GitHub tree"),
            ({"json": {"tree": "nope"}}, "Unexpected GitHub tree"),
        ],
    )
    def test_codebase_impact_malformed_reply(
        self, store, dispatcher, make_request, stakeholder, reply, reason
    ):
        from intakeflow.pipeline import AgentPipelineOrchestrator

        transport = httpx.MockTransport(lambda r: httpx.Response(200, **reply))
        github = GitHubClient("ghp_test", transport=transport)
        orchestrator = AgentPipelineOrchestrator(store, dispatcher, github=github)
        store.set_repository_link(RepositoryLink(organization_id="org-1", owner="acme", repo="app"))
        request = make_request(status=S.PENDING_ASSESSMENT)

        result = _call(
            orchestrator,
            request.id,
            stakeholder,
            "analyze_codebase_impact",
            {"keywords": ["billing"]},
        )

        assert result["available"] is False
        assert reason in result["reason"]

    def test_codebase_impact_unexpected_client_error(
        self, store, dispatcher, make_request, stakeholder
    ):
        from unittest.mock import MagicMock

        from intakeflow.pipeline import AgentPipelineOrchestrator

        github = MagicMock(spec=GitHubClient)
        github.get_repo_tree.side_effect = KeyError("sha")
        orchestrator = AgentPipelineOrchestrator(store, dispatcher, github=github)
        store.set_repository_link(RepositoryLink(organization_id="org-1", owner="acme", repo="app"))
        request = make_request(status=S.PENDING_ASSESSMENT)

        result = _call(
            orchestrator,
            request.id,
            stakeholder,
            "analyze_codebase_impact",
            {"keywords": ["billing"]},
        )

        assert result["available"] is False
        assert result["reason"].startswith("Repository lookup failed")

    def test_save_assessment(self, orchestrator, make_request, stakeholder, store, sink):
        request = make_request(status=S.PENDING_ASSESSMENT)
        result = _call(orchestrator, request.id, stakeholder, "save_assessment", ASSESSMENT_INPUT)

        assert result == {
            "saved": True,
            "priorityScore": 78,
            "complexity": "M",
            "status": "UNDER_REVIEW",
            "weightedScore": 74,
            "priorityLabel": "High",
        }
        row = store.get_request(request.id)
        assert row.status is S.UNDER_REVIEW
        assert row.complexity is Complexity.M
        assert row.is_assessed
        assert row.assessment_data["risks"] == ["PDF fonts"]
        assert row.assessment_data["weightedScore"] == 74

        types = {(n.user_id, n.type) for n in sink.sent}
        assert ("alice", NotificationType.ASSESSMENT_COMPLETE) in types
        assert ("rita", NotificationType.REVIEW_NEEDED) in types
        assert ("adam", NotificationType.REVIEW_NEEDED) in types

    def test_save_assessment_rejects_unknown_complexity(
        self, orchestrator, make_request, stakeholder, store
    ):
        request = make_request(status=S.PENDING_ASSESSMENT)
        result = _call(
            orchestrator,
            request.id,
            stakeholder,
            "save_assessment",
            {**ASSESSMENT_INPUT, "complexity": "UNKNOWN"},
        )
        assert result["errorType"] == "ValidationError"
        row = store.get_request(request.id)
        assert row.status is S.PENDING_ASSESSMENT
        assert row.priority_score is None

    def test_save_assessment_after_concurrent_move(
        self, orchestrator, make_request, stakeholder, store
    ):
        request = make_request(status=S.PENDING_ASSESSMENT)
        ctx, stage = orchestrator.open_context(request.id, stakeholder)
        store.update_request(request.id, status=S.UNDER_REVIEW)

        result = orchestrator.execute(ctx, stage, "save_assessment", ASSESSMENT_INPUT)

        assert result["errorType"] == "StageMismatch"
        assert store.get_request(request.id).priority_score is None


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

EPIC_INPUT = {
    "title": "Invoice exports",
    "description": "Let finance export invoices",
    "goals": ["Self-serve exports"],
    "successCriteria": ["Monthly close takes under a day"],
}


def _story(epic_id, **overrides):
    story = {
        "epicId": epic_id,
        "title": "Export current month",
        "asA": "finance analyst",
        "iWant": "to export this month's invoices",
        "soThat": "I can reconcile them",
        "acceptanceCriteria": ["Given invoices exist, When I export, Then I get a CSV"],
        "priority": 1,
        "storyPoints": 3,
    }
    story.update(overrides)
    return story


class TestOutputTools:
    def test_read_tools(self, orchestrator, make_request, reviewer):
        request = make_request(
            status=S.APPROVED,
            assessed=True,
            intake_data={"target_users": {"persona": "Finance"}},
            quality_score=14,
        )
        ctx, stage = orchestrator.open_context(request.id, reviewer)
        assert stage is PipelineStage.OUTPUT

        intake = orchestrator.execute(ctx, stage, "get_intake_data", {})
        assert intake["intakeData"] == {"target_users": {"persona": "Finance"}}
        assert intake["qualityScore"] == 14

        assessment = orchestrator.execute(ctx, stage, "get_assessment_data", {})
        assert assessment["complexity"] == "M"
        assert assessment["priorityScore"] == 74.0

    def test_save_epic_is_idempotent(self, orchestrator, make_request, reviewer, store):
        request = make_request(status=S.APPROVED, assessed=True)
        ctx, stage = orchestrator.open_context(request.id, reviewer)

        first = orchestrator.execute(ctx, stage, "save_epic", EPIC_INPUT)
        second = orchestrator.execute(ctx, stage, "save_epic", {**EPIC_INPUT, "title": "Again"})

        assert first["saved"] and "alreadyExists" not in first
        assert second == {"saved": True, "epicId": first["epicId"], "alreadyExists": True}
        assert store.get_epic_for_request(request.id).title == "Invoice exports"
        assert store.get_request(request.id).status is S.APPROVED

    def test_save_epic_requires_assessment(self, orchestrator, make_request, reviewer, store):
        request = make_request(status=S.APPROVED)
        result = _call(orchestrator, request.id, reviewer, "save_epic", EPIC_INPUT)
        assert result["errorType"] == "ValidationError"
        assert store.get_epic_for_request(request.id) is None

    def test_save_user_stories_in_order(self, orchestrator, make_request, reviewer, store):
        request = make_request(status=S.APPROVED, assessed=True)
        ctx, stage = orchestrator.open_context(request.id, reviewer)
        epic_id = orchestrator.execute(ctx, stage, "save_epic", EPIC_INPUT)["epicId"]

        for title in ("First", "Second"):
            story = _story(epic_id, title=title)
            result = orchestrator.execute(ctx, stage, "save_user_story", story)
            assert result["saved"] and result["title"] == title

        stories = store.list_stories(epic_id)
        assert [(s.title, s.order) for s in stories] == [("First", 0), ("Second", 1)]
        assert stories[0].narrative == (
            "As finance analyst, I want to export this month's invoices, "
            "so that I can reconcile them"
        )

    def test_story_points_must_be_fibonacci(self, orchestrator, make_request, reviewer, store):
        request = make_request(status=S.APPROVED, assessed=True)
        ctx, stage = orchestrator.open_context(request.id, reviewer)
        epic_id = orchestrator.execute(ctx, stage, "save_epic", EPIC_INPUT)["epicId"]

        result = orchestrator.execute(ctx, stage, "save_user_story", _story(epic_id, storyPoints=4))

        assert result["errorType"] == "ValidationError"
        assert "storyPoints must be one of 1, 2, 3, 5, 8, 13" in result["error"]
        assert store.list_stories(epic_id) == []

    def test_story_for_foreign_epic(self, orchestrator, make_request, reviewer):
        other = make_request(status=S.APPROVED, assessed=True)
        other_epic = _call(orchestrator, other.id, reviewer, "save_epic", EPIC_INPUT)["epicId"]
        request = make_request(status=S.APPROVED, assessed=True)

        result = _call(orchestrator, request.id, reviewer, "save_user_story", _story(other_epic))
        assert result["errorType"] == "NotFound"

    def test_epic_closes_output_stage(self, orchestrator, make_request, reviewer):
        request = make_request(status=S.APPROVED, assessed=True)
        _call(orchestrator, request.id, reviewer, "save_epic", EPIC_INPUT)

        assert orchestrator.current_stage(request.id, reviewer) is PipelineStage.NONE
        with pytest.raises(InvalidTransition, match="no active pipeline stage"):
            orchestrator.open_context(request.id, reviewer)
