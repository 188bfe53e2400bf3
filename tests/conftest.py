"""Shared fixtures and scripted fakes for the agent tests."""

from collections.abc import Callable

import pytest

from relay.config import OrchestratorConfig
from relay.models.llm import Fragment, NextSpeakerDecision
from relay.services.doc_search import DocSearchService
from relay.services.orchestrator import TurnOrchestrator
from relay.services.store import InMemoryMessageStore
from relay.services.todos import TodoListService
from relay.services.web_search import WebSearchService
from relay.tools.dispatcher import ToolDispatcher
from relay.tools.registry import ToolsRegistry


class ScriptedModelStream:
    """Model stream that replays one scripted turn per call.

    A turn is a list of fragments; an exception in the list is raised when
    reached. Once the script runs out every further call yields ``default``.
    """

    def __init__(self, turns=None, default: list | None = None):
        self.turns = list(turns or [])
        self.default = default if default is not None else [Fragment(text="Done.")]
        self.calls = []
        self.system_prompts = []

    async def stream(self, history, system_prompt, cancel=None):
        self.calls.append([message.model_copy(deep=True) for message in history])
        self.system_prompts.append(system_prompt)

        script = self.turns.pop(0) if self.turns else self.default
        for item in script:
            if isinstance(item, Exception):
                raise item
            if cancel is not None and cancel.cancelled:
                return
            yield item


class ScriptedOracle:
    """Continuation oracle answering from a list of next speakers."""

    def __init__(self, speakers=None, default: str = "user"):
        self.speakers = list(speakers or [])
        self.default = default
        self.calls = []

    async def decide(self, messages):
        self.calls.append(list(messages))
        speaker = self.speakers.pop(0) if self.speakers else self.default
        return NextSpeakerDecision(reasoning="scripted", next_speaker=speaker)


class CountingStore(InMemoryMessageStore):
    """In-memory store that counts writes."""

    def __init__(self):
        super().__init__()
        self.writes = 0

    async def add_message(self, message):
        self.writes += 1
        return await super().add_message(message)

    async def update_message(self, message_id, partial):
        self.writes += 1
        return await super().update_message(message_id, partial)

    async def add_thread(self, title="New Conversation", thread_id=None):
        self.writes += 1
        return await super().add_thread(title=title, thread_id=thread_id)


@pytest.fixture
def store():
    return CountingStore()


@pytest.fixture
def todo_service():
    return TodoListService()


@pytest.fixture
def registry(todo_service):
    """Default tool set without external search backends configured."""
    return ToolsRegistry.with_default_tools(
        todo_service=todo_service,
        web_search_service=WebSearchService(api_key=None),
        doc_search_service=DocSearchService(None),
    )


@pytest.fixture
def dispatcher(registry):
    return ToolDispatcher(registry)


@pytest.fixture
def make_orchestrator(store, dispatcher) -> Callable[..., tuple[TurnOrchestrator, ScriptedModelStream, ScriptedOracle]]:
    """Factory building an orchestrator around scripted model and oracle fakes."""

    def factory(turns=None, speakers=None, max_turns: int = 50, default_turn=None, default_speaker: str = "user"):
        model = ScriptedModelStream(turns, default=default_turn)
        oracle = ScriptedOracle(speakers, default=default_speaker)
        orchestrator = TurnOrchestrator(
            store=store,
            model=model,
            oracle=oracle,
            dispatcher=dispatcher,
            config=OrchestratorConfig(max_turns=max_turns),
            system_prompt_builder=lambda mode: f"prompt:{mode}",
        )
        return orchestrator, model, oracle

    return factory
