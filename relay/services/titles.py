"""Thread title generation."""

from relay.clients.anthropic import AnthropicClient, AnthropicMessage
from relay.models.llm import TextBlock
from relay.services.continuation import serialize_window
from relay.services.store import MessageStore
from relay.utils.logging import get_logger

logger = get_logger(__name__)

TITLE_PROMPT = """Write a short title (at most six words) for the conversation below. \
Reply with the title only, without quotes or trailing punctuation."""

TITLE_REFRESH_INTERVAL = 5
MAX_TITLE_LENGTH = 200


def should_refresh_title(user_message_count: int) -> bool:
    """Titles are refreshed on the first user message and every fifth one after."""
    return user_message_count == 1 or (user_message_count > 0 and user_message_count % TITLE_REFRESH_INTERVAL == 0)


class ThreadTitleService:
    """Keeps thread titles in step with the conversation."""

    def __init__(self, client: AnthropicClient, store: MessageStore, window: int = 10):
        self.client = client
        self.store = store
        self.window = window

    async def maybe_update(self, thread_id: str) -> str | None:
        """Regenerate the thread title when due.

        Returns:
            The new title, or None when no update was due or generation failed
        """
        messages = await self.store.get_messages(thread_id)
        user_messages = sum(1 for message in messages if message.role == "user")
        if not should_refresh_title(user_messages):
            return None

        prompt = f"{TITLE_PROMPT}\n\n{serialize_window(messages[-self.window :])}"
        try:
            response = await self.client.create_message(
                messages=[AnthropicMessage(role="user", content=prompt)],
                system_prompt="You name conversations.",
                model=self.client.config.fast_model,
                max_tokens=32,
            )
        except Exception as e:
            logger.warning(f"Title generation failed for thread {thread_id}: {e}")
            return None

        title = "".join(block.text for block in response.content if isinstance(block, TextBlock)).strip().strip('"')
        if not title:
            return None

        thread = await self.store.update_thread(thread_id, title[:MAX_TITLE_LENGTH])
        if thread is None:
            return None

        logger.info(f"Updated title of thread {thread_id} to {thread.title!r}")
        return thread.title
