"""Tests for component wiring, the offline demo and the command line entry point."""

import json
from unittest.mock import patch

import pytest

from outagex.cli import build_deployments, build_events, build_orchestrator, build_research_clients, main
from outagex.demo import run_demo
from outagex.events import SlackEventSink
from outagex.models import IncidentStatus
from outagex.orchestrator import IncidentOrchestrator
from outagex.remediation import LambdaDeploymentClient
from outagex.research import PerplexityResearchClient


def test_build_events_adds_slack_only_when_configured(settings):
    assert not any(isinstance(s, SlackEventSink) for s in build_events(settings)._subscribers)
    configured = settings.model_copy(update={"slack_bot_token": "xoxb-test", "slack_channel_id": "C123"})
    assert any(isinstance(s, SlackEventSink) for s in build_events(configured)._subscribers)


def test_build_research_clients(settings):
    assert build_research_clients(settings) == []
    clients = build_research_clients(settings.model_copy(update={"perplexity_api_key": "pplx-test"}))
    assert len(clients) == 1
    assert isinstance(clients[0], PerplexityResearchClient)

    keys = {"perplexity_api_key": "p", "brave_api_key": "b", "exa_api_key": "e"}
    clients = build_research_clients(settings.model_copy(update=keys))
    assert [c.name for c in clients] == ["perplexity", "brave", "exa"]


def test_build_deployments(settings):
    assert build_deployments(settings) is None
    assert build_deployments(settings.model_copy(update={"deployment_provider": "heroku"})) is None
    lambda_client = build_deployments(settings.model_copy(update={"deployment_provider": "Lambda"}))
    assert isinstance(lambda_client, LambdaDeploymentClient)


def test_build_orchestrator(settings, repo_client):
    orchestrator = build_orchestrator(settings, repository_client=repo_client)
    assert isinstance(orchestrator, IncidentOrchestrator)
    assert orchestrator.is_busy is False
    assert orchestrator.incident is None


@pytest.mark.asyncio
async def test_demo_stops_for_approval(settings):
    lines = []
    assert await run_demo(settings, out=lines.append) is True
    assert lines[-1] == "Result: fix proposed (88% confidence), awaiting approval."


@pytest.mark.asyncio
async def test_demo_approved_fix_is_merged(settings):
    lines = []
    assert await run_demo(settings, approve=True, out=lines.append) is True
    assert "Approving proposed fix." in lines
    assert "Pull request: https://github.com/outagex-demo/edge-worker-api/pull/1" in lines
    assert lines[-1] == "Result: incident resolved."


@pytest.mark.asyncio
async def test_demo_auto_fix_below_threshold_waits(settings):
    lines = []
    assert await run_demo(settings, auto_fix=True, out=lines.append) is True
    assert "awaiting approval" in lines[-1]


@pytest.mark.asyncio
async def test_demo_auto_fix_at_threshold_resolves(settings):
    lenient = settings.model_copy(update={"default_auto_fix_threshold": 85})
    lines = []
    assert await run_demo(lenient, auto_fix=True, out=lines.append) is True
    assert "Approving proposed fix." not in lines
    assert lines[-1] == "Result: incident resolved."


def test_main_demo(settings, capsys):
    with patch("outagex.cli.get_settings", return_value=settings), patch("sys.argv", ["outagex", "--demo"]):
        assert main() == 0
    assert "awaiting approval" in capsys.readouterr().out


def test_main_evidence_without_repository_stops_early(settings, tmp_path):
    evidence = tmp_path / "evidence.json"
    evidence.write_text(json.dumps({"source": "runtime_monitor", "errorMessage": "TypeError: x is undefined"}))
    argv = ["outagex", "--evidence", str(evidence)]
    with patch("outagex.cli.get_settings", return_value=settings), patch("sys.argv", argv):
        assert main() == 1


def test_main_rejects_unreadable_evidence(settings, tmp_path):
    argv = ["outagex", "--evidence", str(tmp_path / "missing.json")]
    with patch("outagex.cli.get_settings", return_value=settings), patch("sys.argv", argv):
        with pytest.raises(SystemExit) as exc:
            main()
    assert exc.value.code == 2


def test_main_requires_a_source():
    with patch("sys.argv", ["outagex"]):
        with pytest.raises(SystemExit):
            main()


@pytest.mark.asyncio
async def test_orchestrator_without_project_stops_after_research(settings, repo_client):
    orchestrator = build_orchestrator(settings, repository_client=repo_client)
    await orchestrator.start_incident_response("cli")
    # no project configured and no evidence owner, so no suspected commit can be found
    assert orchestrator.incident.status == IncidentStatus.RESEARCH
