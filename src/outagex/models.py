"""Shared data models for the OutageX incident pipeline."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class IncidentStatus(str, Enum):
    """Pipeline position of an incident; resolved and failed are terminal."""

    IDLE = "idle"
    DETECTING = "detecting"
    LOG_ANALYSIS = "log_analysis"
    COMMIT_CORRELATION = "commit_correlation"
    RESEARCH = "research"
    DIAGNOSIS = "diagnosis"
    PROPOSING = "proposing"
    EXECUTING = "executing"
    RESOLVED = "resolved"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({IncidentStatus.RESOLVED, IncidentStatus.FAILED})


class AgentPhase(str, Enum):
    DETECTION = "detection"
    LOG_ANALYSIS = "log_analysis"
    COMMIT_CORRELATION = "commit_correlation"
    RESEARCH = "research"
    DIAGNOSIS = "diagnosis"
    SOLUTION_GENERATION = "solution_generation"
    EXECUTION = "execution"


class EntryStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class Incident(BaseModel):
    """One detected error event and its investigation record."""

    id: str = Field(default_factory=lambda: _new_id("inc"))
    title: str
    description: str
    severity: Severity
    status: IncidentStatus = IncidentStatus.DETECTING
    affected_services: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    resolved_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class TimelineEntry(BaseModel):
    id: str = Field(default_factory=lambda: _new_id("timeline"))
    phase: AgentPhase
    title: str
    description: str = ""
    status: EntryStatus
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class LogLevel(str, Enum):
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"


class LogEntry(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    level: LogLevel
    message: str
    service: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ErrorFrequency(BaseModel):
    message: str
    count: int


class Anomaly(BaseModel):
    type: str  # "error_spike" or "repeated_error"
    description: str


class LogAnalysis(BaseModel):
    """Output of the log analysis phase."""

    total_logs: int
    error_count: int
    error_rate: float  # percent, rounded to two decimals
    most_common_errors: list[ErrorFrequency] = Field(default_factory=list)
    affected_services: list[str] = Field(default_factory=list)
    summary: str = ""
    anomalies: list[Anomaly] = Field(default_factory=list)

    @property
    def top_error(self) -> str | None:
        return self.most_common_errors[0].message if self.most_common_errors else None


class CommitInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    sha: str
    author: str
    message: str
    timestamp: datetime
    files_changed: tuple[str, ...] = ()
    additions: int = 0
    deletions: int = 0


class CommitCorrelation(BaseModel):
    commits: list[CommitInfo] = Field(default_factory=list)
    suspected_commit: CommitInfo | None = None
    diff: str = ""


class ResearchResult(BaseModel):
    source: str
    title: str
    summary: str
    url: str | None = None
    relevance: float = Field(default=0.0, ge=0.0, le=1.0)


class RootCause(BaseModel):
    description: str
    reasoning: str = ""
    evidence: list[str] = Field(default_factory=list)
    confidence: int = Field(default=0, ge=0, le=100)
    suspected_commit: CommitInfo | None = None


class SolutionType(str, Enum):
    PATCH = "patch"
    ROLLBACK = "rollback"
    CONFIG_FIX = "config_fix"
    RESTART = "restart"


class Risk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TestResult(BaseModel):
    """Outcome of sandbox validation; immutable once produced."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(frozen=True)

    success: bool
    output: str = ""
    errors: list[str] | None = None
    warnings: list[str] | None = None


class Solution(BaseModel):
    """A proposed remediation; metadata carries file_path and project identifiers."""

    id: str = Field(default_factory=lambda: _new_id("solution"))
    type: SolutionType = SolutionType.PATCH
    description: str = ""
    reasoning: str = ""
    risk: Risk = Risk.MEDIUM
    confidence: int = Field(default=0, ge=0, le=100)
    estimated_time: str = "5 minutes"
    steps: list[str] = Field(default_factory=list)
    code: str | None = None
    diff: str | None = None
    test_results: TestResult | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def file_path(self) -> str | None:
        return self.metadata.get("file_path")


class ResolutionSource(str, Enum):
    """How much a resolved file path can be trusted."""

    EXTRACTED_FROM_ERROR = "extracted_from_error"
    COMMIT_FALLBACK = "commit_fallback"
    REPOSITORY_SEARCH = "repository_search"


class FileResolution(BaseModel):
    path: str
    strategy: str
    source: ResolutionSource


def _default_if_null(cls, value: Any, info: ValidationInfo) -> Any:
    """Error reporters send null for fields they did not capture; treat it as absent."""
    if value is not None:
        return value
    return cls.model_fields[info.field_name].get_default(call_default_factory=True)


class _CamelModel(BaseModel):
    """Accepts both snake_case and the camelCase keys error reporters send."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class RawError(_CamelModel):
    """One error as captured by a client SDK or runtime log."""

    message: str = ""
    filename: str | None = None
    stack: str | None = None
    url: str | None = None
    lineno: int | None = None
    colno: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    coerce_nulls = field_validator("message", "metadata", mode="before")(_default_if_null)


class ErrorEvidence(_CamelModel):
    """Error signal that seeds the detection phase."""

    source: str = "manual"
    project_id: str | None = None
    project_name: str | None = None
    deployment_id: str | None = None
    error_count: int = 1
    error_message: str | None = None
    errors: list[RawError] = Field(default_factory=list)
    github_owner: str | None = None
    github_repo: str | None = None

    coerce_nulls = field_validator("source", "error_count", "errors", mode="before")(_default_if_null)

    @property
    def first_error(self) -> RawError | None:
        return self.errors[0] if self.errors else None


class ProjectConfig(BaseModel):
    """Per-project settings consulted by the autonomous-execution gate."""

    project_id: str
    name: str = ""
    enabled: bool = True
    auto_fix: bool = False
    auto_fix_threshold: int = Field(default=90, ge=0, le=100)
    github_owner: str | None = None
    github_repo: str | None = None


class ChatRole(str, Enum):
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    id: str = Field(default_factory=lambda: _new_id("msg"))
    role: ChatRole
    content: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    phase: AgentPhase | None = None


class ExecutionResult(BaseModel):
    success: bool
    message: str
    url: str | None = None
    pr_number: int | None = None
    merged: bool = False
    merge_commit_sha: str | None = None
    error: str | None = None


class EventName(str, Enum):
    INCIDENT_DETECTED = "incident:detected"
    AGENT_UPDATE = "agent:update"
    LOGS_STREAM = "logs:stream"
    SOLUTION_PROPOSED = "solution:proposed"
    STATUS_CHANGE = "status:change"
    CHAT_MESSAGE = "chat:message"
    TIMELINE_ADD = "timeline:add"


class Event(BaseModel):
    """One outbound notification; payload is a JSON-ready dict."""

    name: EventName
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
