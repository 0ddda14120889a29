"""Tests for stage agent construction and the run_stage entry point."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from intakeflow.agents import agent_factory
from intakeflow.agents.agent_factory import build_request_context, create_stage_agent, run_stage
from intakeflow.agents.hooks import StageAgentHooks
from intakeflow.agents.prompt_loader import (
    PromptLoadError,
    available_prompts,
    clear_prompt_cache,
    load_prompt,
)
from intakeflow.agents.tools.bridge import tool_function
from intakeflow.config import PipelineStage, RequestStatus
from intakeflow.pipeline import ToolCallSession

S = RequestStatus

EPIC = {
    "title": "Invoice exports",
    "description": "Monthly CSV exports for finance",
    "goals": ["Self-service exports"],
    "successCriteria": ["Finance stops asking engineering"],
}


class FakeAgent:
    """Stands in for strands.Agent: records its kwargs and replays scripted tool calls."""

    script: list[tuple[str, dict]] = []
    instances: list["FakeAgent"] = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.results = []
        FakeAgent.instances.append(self)

    def __call__(self, message):
        self.message = message
        tools = {t.tool_name: t for t in self.kwargs["tools"]}
        for i, (name, tool_input) in enumerate(self.script):
            tool_use = {"toolUseId": f"t{i}", "name": name, "input": tool_input}
            self.results.append(tools[name].fn(tool_use))
        return "All done"


def _plain_tools(session):
    return [
        SimpleNamespace(tool_name=d.name, fn=tool_function(d, session)) for d in session.tools
    ]


@pytest.fixture
def fake_agent(monkeypatch):
    FakeAgent.script = []
    FakeAgent.instances = []
    monkeypatch.setattr(agent_factory, "Agent", FakeAgent)
    monkeypatch.setattr(agent_factory, "to_agent_tools", _plain_tools)
    return FakeAgent


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------


class TestBuildRequestContext:
    def test_intake_context(self, make_request):
        request = make_request(tags=["finance", "exports"])
        context = build_request_context(request, PipelineStage.INTAKE)

        assert context.startswith("## Feature Request")
        assert f"- ID: {request.id}" in context
        assert "- Title: Export invoices to CSV" in context
        assert "- Summary: Finance wants monthly invoice exports" in context
        assert "- Tags: finance, exports" in context
        assert "## Intake Data" not in context

    def test_assessment_includes_intake_data(self, make_request):
        request = make_request(intake_data={"problem_statement": {"pain": "Manual"}})
        context = build_request_context(request, PipelineStage.ASSESSMENT)

        assert "## Intake Data" in context
        assert '"pain": "Manual"' in context

    def test_output_includes_complexity(self, make_request):
        request = make_request(status=S.APPROVED, assessed=True)
        context = build_request_context(request, PipelineStage.OUTPUT)
        assert "- Assessed complexity: M" in context

    def test_blank_summary_omitted(self, make_request):
        request = make_request(summary=None)
        assert "Summary" not in build_request_context(request, PipelineStage.INTAKE)


# ---------------------------------------------------------------------------
# create_stage_agent
# ---------------------------------------------------------------------------


class TestCreateStageAgent:
    def test_wires_prompt_tools_and_hooks(self, fake_agent, orchestrator, make_request, reviewer):
        request = make_request(status=S.PENDING_ASSESSMENT)
        session = ToolCallSession(orchestrator, request.id, reviewer)
        model = object()

        agent = create_stage_agent(session, model=model)

        kwargs = agent.kwargs
        assert kwargs["name"] == "assessment_agent"
        assert kwargs["model"] is model
        assert kwargs["callback_handler"] is None
        assert kwargs["system_prompt"].startswith(load_prompt("assessment"))
        assert f"- ID: {request.id}" in kwargs["system_prompt"]
        assert [t.tool_name for t in kwargs["tools"]] == [d.name for d in session.tools]
        [hooks] = kwargs["hooks"]
        assert isinstance(hooks, StageAgentHooks)
        assert hooks.stage == "ASSESSMENT"
        assert kwargs["trace_attributes"] == {
            "request.id": request.id,
            "pipeline.stage": "ASSESSMENT",
        }

    def test_builds_model_for_stage_tier(
        self, fake_agent, orchestrator, make_request, stakeholder, monkeypatch
    ):
        create_model = MagicMock(return_value="light-model")
        monkeypatch.setattr(agent_factory, "create_model", create_model)
        session = ToolCallSession(orchestrator, make_request().id, stakeholder)

        agent = create_stage_agent(session, model_id="custom-model")

        assert agent.kwargs["model"] == "light-model"
        call = create_model.call_args[1]
        assert call["tier"].value == "light"
        assert call["model_id"] == "custom-model"
        assert call["max_tokens"] > 0


# ---------------------------------------------------------------------------
# run_stage
# ---------------------------------------------------------------------------


class TestRunStage:
    def test_intake_turn_completes_stage(
        self, fake_agent, orchestrator, make_request, stakeholder, store
    ):
        request = make_request(status=S.DRAFT)
        fake_agent.script = [
            (
                "save_intake_progress",
                {"section": "problem_statement", "data": {"pain": "x"}, "completeness": 90},
            ),
            ("mark_intake_complete", {"summary": "Monthly invoice exports"}),
        ]

        result = run_stage(orchestrator, request.id, stakeholder, "We need exports", model=object())

        assert result.stage is PipelineStage.INTAKE
        assert result.text == "All done"
        assert result.stage_complete is True
        assert result.close_reason == "stage_complete"
        assert [c["tool"] for c in result.tool_calls] == [
            "save_intake_progress",
            "mark_intake_complete",
        ]
        assert store.get_request(request.id).status is S.PENDING_ASSESSMENT
        assert fake_agent.instances[0].message == "We need exports"

    def test_unfinished_turn_closes_session(
        self, fake_agent, orchestrator, make_request, stakeholder
    ):
        request = make_request(status=S.INTAKE_IN_PROGRESS)
        fake_agent.script = [("check_quality_score", {})]

        result = run_stage(orchestrator, request.id, stakeholder, "Hello", model=object())

        assert result.stage_complete is False
        assert result.close_reason == "closed"
        assert result.to_dict()["toolCalls"] == [{"tool": "check_quality_score", "ok": True}]

    def test_output_turn_triggers_auto_sync(
        self, fake_agent, orchestrator, make_request, reviewer
    ):
        request = make_request(status=S.APPROVED, assessed=True)
        fake_agent.script = [("get_intake_data", {}), ("save_epic", EPIC)]
        sync = MagicMock()

        result = run_stage(
            orchestrator, request.id, reviewer, "Write the epic", model=object(), sync=sync
        )

        assert result.stage is PipelineStage.OUTPUT
        assert fake_agent.instances[0].results[1]["status"] == "success"
        sync.auto_sync.assert_called_once_with(request.id)

    def test_no_epic_no_sync(self, fake_agent, orchestrator, make_request, reviewer):
        request = make_request(status=S.APPROVED, assessed=True)
        fake_agent.script = [("get_assessment_data", {})]
        sync = MagicMock()

        run_stage(orchestrator, request.id, reviewer, "Write the epic", model=object(), sync=sync)

        sync.auto_sync.assert_not_called()

    def test_tool_errors_reach_the_agent(self, fake_agent, orchestrator, make_request, reviewer):
        request = make_request(status=S.PENDING_ASSESSMENT)
        fake_agent.script = [("save_assessment", {"businessScore": 500})]

        run_stage(orchestrator, request.id, reviewer, "Assess", model=object())

        [result] = fake_agent.instances[0].results
        assert result["status"] == "error"
        assert result["content"][0]["json"]["errorType"] == "ValidationError"


# ---------------------------------------------------------------------------
# Prompt loader
# ---------------------------------------------------------------------------


class TestPromptLoader:
    @pytest.fixture(autouse=True)
    def _fresh_cache(self):
        clear_prompt_cache()
        yield
        clear_prompt_cache()

    def test_loads_each_stage_prompt(self):
        assert available_prompts() == ["assessment", "intake", "output"]
        for key in available_prompts():
            assert load_prompt(key).strip()

    def test_agent_suffix_ignored(self):
        assert load_prompt("intake_agent") == load_prompt("intake")

    def test_missing_prompt(self):
        with pytest.raises(PromptLoadError, match="Prompt file not found for 'triage'"):
            load_prompt("triage")

    def test_cache(self, tmp_path, monkeypatch):
        from intakeflow.agents import prompt_loader

        (tmp_path / "custom.txt").write_text("first")
        monkeypatch.setattr(prompt_loader, "PROMPTS_DIR", tmp_path)

        assert load_prompt("custom") == "first"
        (tmp_path / "custom.txt").write_text("second")
        assert load_prompt("custom") == "first"
        assert load_prompt("custom", use_cache=False) == "second"


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


class TestStageAgentHooks:
    def test_counts_tool_calls_and_times_invocation(self):
        hooks = StageAgentHooks("req-1", "INTAKE")

        hooks._on_before_invocation(SimpleNamespace())
        hooks._on_before_tool(SimpleNamespace(tool_use={"name": "check_quality_score"}))
        hooks._on_after_tool(
            SimpleNamespace(tool_use={"name": "check_quality_score"}, result={"status": "success"})
        )
        hooks._on_before_tool(SimpleNamespace(tool_use=None))
        hooks._on_after_invocation(SimpleNamespace(result=SimpleNamespace(stop_reason="end_turn")))

        assert hooks.tool_calls == ["check_quality_score", "unknown"]
        assert hooks.execution_time >= 0

    def test_registers_four_callbacks(self):
        registry = MagicMock()
        StageAgentHooks("req-1", "OUTPUT").register_hooks(registry)
        assert registry.add_callback.call_count == 4
