"""Tests for settings and application wiring."""

from unittest.mock import patch

import pytest

from relay.api.dependencies import build_context
from relay.config import OrchestratorConfig, Settings
from relay.services.store import InMemoryMessageStore, SQLiteMessageStore


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            settings = Settings.from_env()

        assert settings.database_path is None
        assert settings.log_level == "INFO"
        assert settings.log_format == "text"
        assert settings.orchestrator == OrchestratorConfig(max_turns=50, oracle_window=10, title_window=10)

    def test_from_environment(self):
        env = {
            "ANTHROPIC_API_KEY": "key",
            "RELAY_DATABASE_PATH": "/tmp/relay.db",
            "RELAY_MAX_TURNS": "7",
            "RELAY_ORACLE_WINDOW": "4",
            "BRAVE_API_KEY": "brave",
            "RELAY_DOCS_DIR": "/docs",
            "LOG_LEVEL": "DEBUG",
            "LOG_FORMAT": "json",
        }
        with patch.dict("os.environ", env, clear=True):
            settings = Settings.from_env()

        assert settings.anthropic_api_key == "key"
        assert settings.database_path == "/tmp/relay.db"
        assert settings.brave_api_key == "brave"
        assert settings.docs_dir == "/docs"
        assert settings.log_level == "DEBUG"
        assert settings.log_format == "json"
        assert settings.orchestrator.max_turns == 7
        assert settings.orchestrator.oracle_window == 4


class TestBuildContext:
    """Tests for wiring the default services."""

    @pytest.mark.asyncio
    async def test_in_memory_store_without_database(self):
        context = await build_context(Settings(anthropic_api_key="key"))

        assert isinstance(context.store, InMemoryMessageStore)
        assert context.registry.get_tool_names(mode="client") == ["confirm_action"]
        assert context.orchestrator.config.max_turns == 50
        assert context.title_service is not None

    @pytest.mark.asyncio
    async def test_sqlite_store_with_database(self, tmp_path):
        settings = Settings(
            anthropic_api_key="key",
            database_path=str(tmp_path / "relay.db"),
            orchestrator=OrchestratorConfig(max_turns=5),
        )

        context = await build_context(settings)

        assert isinstance(context.store, SQLiteMessageStore)
        assert await context.store.get_threads() == []
        assert context.orchestrator.config.max_turns == 5
