"""CLI entry point for OutageX."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from outagex import __version__
from outagex.config import Settings, get_settings
from outagex.events import EventBus, LoggingSubscriber, SlackEventSink
from outagex.integrations.base import (
    DeploymentClient,
    ProjectConfigStore,
    ResearchClient,
    SourceRepositoryClient,
)
from outagex.log_storage import LogStore
from outagex.models import IncidentStatus, ProjectConfig
from outagex.orchestrator import IncidentOrchestrator
from outagex.reasoning_agent import DiagnosisEngine, build_language_model
from outagex.remediation import LambdaDeploymentClient, SolutionExecutor
from outagex.research import (
    BraveResearchClient,
    CommitCorrelator,
    ExaResearchClient,
    PerplexityResearchClient,
    Researcher,
)
from outagex.resolver import SourceFileResolver
from outagex.validation import LocalSandbox, SolutionValidator

logger = logging.getLogger(__name__)


def build_events(settings: Settings) -> EventBus:
    bus = EventBus()
    bus.subscribe(LoggingSubscriber())
    if settings.slack_bot_token and settings.slack_channel_id:
        bus.subscribe(SlackEventSink(settings.slack_bot_token, settings.slack_channel_id))
    return bus


def build_research_clients(settings: Settings) -> list[ResearchClient]:
    clients: list[ResearchClient] = []
    if settings.perplexity_api_key:
        clients.append(
            PerplexityResearchClient(
                settings.perplexity_api_key,
                model=settings.perplexity_model,
                timeout=settings.llm_timeout_seconds,
            )
        )
    if settings.brave_api_key:
        clients.append(
            BraveResearchClient(
                settings.brave_api_key,
                count=settings.research_provider_results,
                timeout=settings.llm_timeout_seconds,
            )
        )
    if settings.exa_api_key:
        clients.append(
            ExaResearchClient(
                settings.exa_api_key,
                num_results=settings.research_provider_results,
                timeout=settings.llm_timeout_seconds,
            )
        )
    return clients


def build_deployments(settings: Settings) -> DeploymentClient | None:
    provider = settings.deployment_provider.strip().lower()
    if provider == "lambda":
        return LambdaDeploymentClient(settings=settings)
    if provider:
        logger.warning("Unknown deployment_provider %r; rollback and restart disabled", settings.deployment_provider)
    return None


def build_orchestrator(
    settings: Settings,
    *,
    repository_client: SourceRepositoryClient | None = None,
    research_clients: list[ResearchClient] | None = None,
    projects: ProjectConfigStore | None = None,
    default_project: ProjectConfig | None = None,
) -> IncidentOrchestrator:
    """Wire every pipeline component from settings; injected collaborators take precedence."""
    engine = DiagnosisEngine(
        llm=build_language_model(settings),
        resolver=SourceFileResolver(max_depth=settings.resolver_max_depth),
    )
    sandbox = LocalSandbox() if settings.sandbox_provider.strip().lower() == "local" else None
    if research_clients is None:
        research_clients = build_research_clients(settings)
    return IncidentOrchestrator(
        build_events(settings),
        log_store=LogStore(
            data_dir=settings.log_storage_data_dir or None,
            max_log_entries=settings.log_storage_max_entries,
        ),
        engine=engine,
        correlator=CommitCorrelator(engine),
        researcher=Researcher(research_clients, max_results=settings.research_max_results),
        validator=SolutionValidator(
            sandbox=sandbox,
            sandbox_timeout=settings.sandbox_timeout_seconds,
            command_timeout=settings.sandbox_command_timeout_seconds,
        ),
        executor=SolutionExecutor(
            repository=repository_client,
            deployments=build_deployments(settings),
            auto_merge=settings.auto_merge,
            base_branch=settings.default_branch,
        ),
        projects=projects,
        repository_client=repository_client,
        default_project=default_project,
        settings=settings,
    )


def _read_evidence(path: str) -> dict:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as f:
        return json.load(f)


async def run_evidence(settings: Settings, evidence: dict, approve: bool = False) -> bool:
    """One pipeline run seeded by error evidence. True if resolved or waiting for approval."""
    orchestrator = build_orchestrator(settings)
    await orchestrator.start_incident_response("cli", evidence)
    incident, solution = orchestrator.incident, orchestrator.solution
    if incident is None or solution is None:
        return False
    if incident.status == IncidentStatus.PROPOSING:
        if not approve:
            return True
        return await orchestrator.execute_solution(solution.id)
    return incident.status == IncidentStatus.RESOLVED


def main() -> int:
    parser = argparse.ArgumentParser(description="OutageX: automated incident response")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--demo", action="store_true", help="Run the simulated outage end to end, offline")
    source.add_argument("--evidence", metavar="FILE", help="JSON error evidence to investigate ('-' for stdin)")
    parser.add_argument("--auto-fix", action="store_true", help="Demo: let the confidence gate apply the fix")
    parser.add_argument("--approve", action="store_true", help="Apply the proposed fix when the pipeline halts for approval")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ...)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.demo:
        from outagex.demo import run_demo

        ok = asyncio.run(run_demo(settings, auto_fix=args.auto_fix, approve=args.approve))
        return 0 if ok else 1

    try:
        evidence = _read_evidence(args.evidence)
    except (OSError, ValueError) as e:
        parser.error(f"cannot read evidence: {e}")
    ok = asyncio.run(run_evidence(settings, evidence, approve=args.approve))
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
