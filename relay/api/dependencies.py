"""Application context shared by the API endpoints."""

from dataclasses import dataclass

from fastapi import HTTPException, Request

from relay.clients.anthropic import AnthropicClient
from relay.config import Settings
from relay.services.continuation import AnthropicContinuationOracle
from relay.services.doc_search import DocSearchService
from relay.services.model_stream import AnthropicModelStream
from relay.services.orchestrator import TurnOrchestrator
from relay.services.store import InMemoryMessageStore, MessageStore, SQLiteMessageStore
from relay.services.titles import ThreadTitleService
from relay.services.todos import TodoListService
from relay.services.web_search import WebSearchService
from relay.tools.dispatcher import ToolDispatcher
from relay.tools.registry import ToolsRegistry
from relay.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AppContext:
    """Explicit handles to the services behind the API."""

    store: MessageStore
    orchestrator: TurnOrchestrator
    registry: ToolsRegistry
    title_service: ThreadTitleService | None = None
    client: AnthropicClient | None = None


async def build_context(settings: Settings) -> AppContext:
    """Wire the default services from settings."""
    store: MessageStore
    if settings.database_path:
        store = SQLiteMessageStore(settings.database_path)
        await store.initialize()
    else:
        logger.warning("RELAY_DATABASE_PATH not set, conversations are kept in memory only")
        store = InMemoryMessageStore()

    client = AnthropicClient(api_key=settings.anthropic_api_key)
    registry = ToolsRegistry.with_default_tools(
        todo_service=TodoListService(),
        web_search_service=WebSearchService(api_key=settings.brave_api_key),
        doc_search_service=DocSearchService(settings.docs_dir),
    )

    orchestrator = TurnOrchestrator(
        store=store,
        model=AnthropicModelStream(client, registry),
        oracle=AnthropicContinuationOracle(client, window=settings.orchestrator.oracle_window),
        dispatcher=ToolDispatcher(registry),
        config=settings.orchestrator,
    )

    logger.info(f"Registered tools: {', '.join(registry.get_tool_names())}")
    return AppContext(
        store=store,
        orchestrator=orchestrator,
        registry=registry,
        title_service=ThreadTitleService(client, store, window=settings.orchestrator.title_window),
        client=client,
    )


def get_context(request: Request) -> AppContext:
    """Get the application context from app state."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return context
