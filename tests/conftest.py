"""Shared fakes for pipeline tests: scripted model, sandbox and event recorder."""

from __future__ import annotations

import pytest

from outagex.config import Settings
from outagex.demo import SimulatedRepositoryClient, StaticResearchClient
from outagex.errors import SandboxError
from outagex.events import EventPublisher
from outagex.integrations.base import LanguageModelClient, RepositoryHandle
from outagex.models import Event, EventName
from outagex.validation.sandbox import CommandResult, SandboxRuntime


class FakeLLM(LanguageModelClient):
    """Returns scripted replies in order; an Exception in the script is raised instead."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts: list[str] = []

    async def complete(self, prompt, *, temperature=0.3, max_tokens=1024):
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeSandbox(SandboxRuntime):
    """Records every command; exit codes come from ``results`` keyed by command prefix."""

    def __init__(self, results: dict[str, CommandResult] | None = None, fail_on: str | None = None):
        self.results = results or {}
        self.fail_on = fail_on
        self.commands: list[str] = []
        self.created: list[str] = []
        self.destroyed: list[str] = []

    async def create(self, timeout):
        handle = f"sandbox-{len(self.created) + 1}"
        self.created.append(handle)
        return handle

    async def run(self, handle, command, timeout):
        self.commands.append(command)
        if self.fail_on and command.startswith(self.fail_on):
            raise SandboxError(f"command timed out: {command}")
        for prefix, result in self.results.items():
            if command.startswith(prefix):
                return result
        return CommandResult(stdout="", stderr="", exit_code=0)

    async def destroy(self, handle):
        self.destroyed.append(handle)


class RecordingPublisher(EventPublisher):
    def __init__(self):
        self.events: list[Event] = []

    async def publish(self, event):
        self.events.append(event)

    def named(self, name: EventName) -> list[Event]:
        return [e for e in self.events if e.name == name]


@pytest.fixture
def settings():
    return Settings(_env_file=None, llm_provider="stub", log_storage_data_dir="", phase_delay_seconds=0)


@pytest.fixture
def repo_client():
    return SimulatedRepositoryClient()


@pytest.fixture
def repository(repo_client):
    return RepositoryHandle(repo_client, "acme", "edge-worker-api")


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def research_client():
    return StaticResearchClient()
