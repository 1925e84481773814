"""Canned outage scenario for demo runs and manual triggers without error evidence."""

from datetime import datetime, timedelta

from outagex.models import (
    CommitInfo,
    Incident,
    IncidentStatus,
    LogEntry,
    LogLevel,
    ResearchResult,
    Severity,
)

DEMO_INCIDENT_ID = "inc-demo0001"
DEMO_SERVICE = "edge-worker-api"


def simulated_incident(incident_id: str | None = None) -> Incident:
    """Gateway 502 outage across three edge services."""
    kwargs = {"id": incident_id} if incident_id else {}
    return Incident(
        title="API Gateway 502 Errors - Edge Workers",
        description=(
            "Sudden spike in 502 Bad Gateway errors across all API endpoints. "
            "Multiple customer reports of service unavailability."
        ),
        severity=Severity.CRITICAL,
        status=IncidentStatus.DETECTING,
        affected_services=["api.example.com", "cdn.example.com", "workers.example.com"],
        **kwargs,
    )


_LOG_SCRIPT = (
    # (seconds ago, level, message, metadata)
    (300, LogLevel.ERROR, "Worker exceeded CPU time limit", {"zone": "us-east", "worker_id": "worker-123"}),
    (290, LogLevel.ERROR, "Unhandled Promise rejection in main handler", {"error": "Cannot read property of undefined", "line": 42}),
    (280, LogLevel.ERROR, "Worker exceeded CPU time limit", {"zone": "us-west", "worker_id": "worker-123"}),
    (270, LogLevel.WARN, "High memory usage detected: 95%", {"memory_mb": 122}),
    (260, LogLevel.ERROR, "502 Bad Gateway returned to client", {"endpoint": "/api/v1/users", "response_time": 30001}),
    (250, LogLevel.ERROR, "Worker exceeded CPU time limit", {"zone": "eu-west", "worker_id": "worker-123"}),
    (240, LogLevel.ERROR, "Unhandled Promise rejection in main handler", {"error": "Cannot read property of undefined", "line": 42}),
    (230, LogLevel.ERROR, "502 Bad Gateway returned to client", {"endpoint": "/api/v1/orders", "response_time": 30002}),
    (220, LogLevel.ERROR, "Worker exceeded CPU time limit", {"zone": "ap-south", "worker_id": "worker-123"}),
    (210, LogLevel.ERROR, "Maximum concurrent requests exceeded", {"current_requests": 1500, "limit": 1000}),
)


def simulated_logs(now: datetime | None = None) -> list[LogEntry]:
    now = now or datetime.utcnow()
    return [
        LogEntry(
            timestamp=now - timedelta(seconds=ago),
            level=level,
            message=message,
            service=DEMO_SERVICE,
            metadata=dict(metadata),
        )
        for ago, level, message, metadata in _LOG_SCRIPT
    ]


def simulated_commits(now: datetime | None = None) -> list[CommitInfo]:
    """Recent history, newest first; the first commit introduced the regression."""
    now = now or datetime.utcnow()
    return [
        CommitInfo(
            sha="a1b2c3d4e5f6",
            author="john.doe@example.com",
            message="feat: Add recursive data processing in worker",
            timestamp=now - timedelta(hours=2),
            files_changed=("src/worker/handler.ts", "src/utils/processor.ts"),
            additions=145,
            deletions=23,
        ),
        CommitInfo(
            sha="b2c3d4e5f6a7",
            author="jane.smith@example.com",
            message="fix: Update dependency versions",
            timestamp=now - timedelta(days=1),
            files_changed=("package.json", "package-lock.json"),
            additions=8,
            deletions=8,
        ),
        CommitInfo(
            sha="c3d4e5f6a7b8",
            author="mike.jones@example.com",
            message="docs: Update README with deployment instructions",
            timestamp=now - timedelta(days=2),
            files_changed=("README.md",),
            additions=25,
            deletions=5,
        ),
    ]


SUSPICIOUS_COMMIT_DIFF = """diff --git a/src/worker/handler.ts b/src/worker/handler.ts
index 1234567..abcdef0 100644
--- a/src/worker/handler.ts
+++ b/src/worker/handler.ts
@@ -15,10 +15,25 @@ export async function handleRequest(request: Request): Promise<Response> {
   const data = await fetchAPIData(endpoint);

-  return new Response(JSON.stringify(data), {
+  const processed = processDataRecursively(data);
+
+  return new Response(JSON.stringify(processed), {
     headers: { 'Content-Type': 'application/json' },
   });
 }

+function processDataRecursively(obj: any): any {
+  if (typeof obj !== 'object' || obj === null) return obj;
+
+  const result: any = Array.isArray(obj) ? [] : {};
+
+  for (const key in obj) {
+    result[key] = processDataRecursively(obj[key]);
+  }
+
+  return result;
+}
"""

SIMULATED_HANDLER_SOURCE = """export async function handleRequest(request: Request): Promise<Response> {
  const endpoint = new URL(request.url).pathname;
  const data = await fetchAPIData(endpoint);
  const processed = processDataRecursively(data);
  return new Response(JSON.stringify(processed), {
    headers: { 'Content-Type': 'application/json' },
  });
}
"""


def simulated_research() -> list[ResearchResult]:
    return [
        ResearchResult(
            source="Stack Overflow",
            title="Edge worker CPU time limit exceeded",
            summary="Workers have a strict CPU time limit. Recursive operations without depth limits often cause this.",
            url="https://stackoverflow.com/questions/worker-cpu-limit",
            relevance=0.95,
        ),
        ResearchResult(
            source="GitHub Issue",
            title="Unbounded recursion causing 502 errors",
            summary="Deep recursive processing of nested objects hit the CPU limit. Fix: add a depth limit or iterate.",
            url="https://github.com/example/workers/issues/1234",
            relevance=0.88,
        ),
    ]
