"""
Root cause analysis and fix generation.

Combines log analysis, the suspected commit, research findings and the
implicated source file into a RootCause and a candidate Solution, using
Groq or Amazon Bedrock when configured and deterministic fallbacks otherwise.
"""

from outagex.reasoning_agent.agent import DiagnosisEngine, DiagnosisOutcome
from outagex.reasoning_agent.llm import BedrockClient, GroqClient, build_language_model
from outagex.reasoning_agent.recovery import recover_json

__all__ = [
    "BedrockClient",
    "DiagnosisEngine",
    "DiagnosisOutcome",
    "GroqClient",
    "build_language_model",
    "recover_json",
]
