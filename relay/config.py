"""Service configuration read from the environment."""

import os
from dataclasses import dataclass, field


@dataclass
class OrchestratorConfig:
    """Limits for a single orchestrator invocation."""

    max_turns: int = 50  # Maximum model streams per invocation
    oracle_window: int = 10  # Trailing messages shown to the continuation oracle
    title_window: int = 10  # Trailing messages used to generate thread titles


@dataclass
class Settings:
    """Top-level service settings."""

    anthropic_api_key: str | None = None
    database_path: str | None = None
    brave_api_key: str | None = None
    docs_dir: str | None = None
    log_level: str = "INFO"
    log_format: str = "text"
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        orchestrator = OrchestratorConfig(
            max_turns=int(os.getenv("RELAY_MAX_TURNS", "50")),
            oracle_window=int(os.getenv("RELAY_ORACLE_WINDOW", "10")),
        )
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            database_path=os.getenv("RELAY_DATABASE_PATH"),
            brave_api_key=os.getenv("BRAVE_API_KEY"),
            docs_dir=os.getenv("RELAY_DOCS_DIR"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text").lower(),
            orchestrator=orchestrator,
        )
