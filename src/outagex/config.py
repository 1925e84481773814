"""Application configuration loaded from environment."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """OutageX settings from env vars."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Language model: "groq", "bedrock" or "stub" (deterministic fallbacks, no network)
    llm_provider: str = "stub"
    groq_api_key: str = ""
    groq_model: str = "llama-3.3-70b-versatile"
    groq_base_url: str = "https://api.groq.com/openai/v1"
    llm_timeout_seconds: float = 60.0

    # AWS (Bedrock Converse) when llm_provider == "bedrock"
    aws_region: str = "us-east-1"
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    bedrock_model_id: str = "us.amazon.nova-2-lite-v1:0"
    bedrock_read_timeout_seconds: int = 300

    # Deployment platform for rollback/restart solutions: "lambda" or "" (none)
    deployment_provider: str = ""
    lambda_alias_name: str = "live"

    # Research providers
    perplexity_api_key: str = ""
    perplexity_model: str = "sonar"
    brave_api_key: str = ""
    exa_api_key: str = ""
    research_provider_results: int = 5
    research_technology: str = ""
    research_max_results: int = 10

    # Slack sink for chat messages and status changes
    slack_bot_token: str = ""
    slack_channel_id: str = ""

    # Pipeline pacing (seconds slept between phases; 0 disables)
    phase_delay_seconds: float = 0.0
    default_auto_fix_threshold: int = 90

    # Solution validation sandbox: "local" (subprocess in a temp dir) or "" (syntax check skipped)
    sandbox_provider: str = ""
    sandbox_timeout_seconds: float = 30.0
    sandbox_command_timeout_seconds: float = 10.0

    # Source file resolution
    resolver_max_depth: int = 3
    default_branch: str = "main"
    auto_merge: bool = True

    # Runtime error monitor
    error_threshold: int = 1
    error_window_seconds: int = 300

    # Incident / log storage (optional file persistence)
    log_storage_data_dir: str = ""
    log_storage_max_entries: int = 5000

    log_level: str = "INFO"


def get_settings() -> Settings:
    """Return loaded settings from environment (and .env if present)."""
    return Settings()
