"""Prompt templates for commit triage, root cause analysis and fix generation."""

from outagex.models import CommitInfo, LogAnalysis, ResearchResult, RootCause

SYSTEM_PROMPT = """You are a senior Site Reliability Engineer responding to a production incident.
You are precise and technical. When asked for JSON you return exactly one JSON object
and nothing else: no markdown, no code fence, no explanatory text."""


def build_commit_prompt(commits: list[CommitInfo], error_pattern: str) -> str:
    """Ask the model to pick the commit most likely behind the error; it must answer with a SHA only."""
    listing = "\n".join(
        f"{i}. SHA: {c.sha}\n"
        f"   Author: {c.author}\n"
        f"   Time: {c.timestamp.isoformat()}\n"
        f"   Message: {c.message}\n"
        f"   Files: {', '.join(c.files_changed) or '(unknown)'}"
        for i, c in enumerate(commits, start=1)
    )
    return f"""You are analyzing a production incident.

ERROR PATTERN: {error_pattern}

RECENT COMMITS:
{listing}

Which commit is most likely causing this error? Respond with ONLY the commit SHA, nothing else."""


def build_root_cause_prompt(
    log_analysis: LogAnalysis | None,
    suspected_commit: CommitInfo,
    diff: str,
    research: list[ResearchResult],
) -> str:
    analysis = log_analysis.model_dump_json(indent=2) if log_analysis else "(not available)"
    findings = "\n".join(f"- {r.title}: {r.summary}" for r in research) or "(none)"
    return f"""Perform a root cause analysis.

LOG ANALYSIS:
{analysis}

SUSPECTED COMMIT:
SHA: {suspected_commit.sha}
Author: {suspected_commit.author}
Message: {suspected_commit.message}

CODE DIFF:
{diff or "(not available)"}

RESEARCH FINDINGS:
{findings}

Return ONLY a JSON object with these keys:
{{
  "description": "Brief description of root cause",
  "reasoning": "Detailed technical explanation",
  "evidence": ["evidence point 1", "evidence point 2", "evidence point 3"],
  "confidence": 0-100
}}"""


def build_solution_prompt(
    root_cause: RootCause,
    diff: str,
    file_path: str | None = None,
    file_content: str | None = None,
) -> str:
    if file_content:
        file_context = f"CURRENT FILE CONTENT ({file_path or 'unknown'}):\n```\n{file_content}\n```"
    else:
        file_context = "NOTE: Full file content not available. Generate the fix from the diff only."
    return f"""Generate a solution for a production incident.

ROOT CAUSE: {root_cause.description}

REASONING: {root_cause.reasoning}

ORIGINAL CODE DIFF (what changed):
{diff or "(not available)"}

{file_context}

Requirements:
1. The "code" field MUST contain the COMPLETE FIXED FILE CONTENT, not a description or comment.
2. If file content is provided, change ONLY the problematic parts and return the ENTIRE file.
3. Never return placeholder text such as "code will be provided"; return actual code.
4. The code must be valid in the same language as the original file.
5. Escape newlines in "code" as \\n and tabs as \\t so the JSON stays valid.

Return ONLY a JSON object with these keys:
{{
  "type": "patch|rollback|config_fix|restart",
  "description": "Brief description",
  "reasoning": "Why this solution works",
  "risk": "low|medium|high",
  "confidence": 0-100,
  "estimatedTime": "e.g. 2 minutes",
  "steps": ["step 1", "step 2"],
  "code": "COMPLETE FIXED FILE CONTENT"
}}"""
