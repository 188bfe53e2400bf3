"""Tests for the message store adapters."""

import pytest

from relay.errors import PersistenceError
from relay.models.messages import FunctionCallPart, FunctionResponsePart, Message, TextPart, ToolResult
from relay.services.store import InMemoryMessageStore, SQLiteMessageStore


async def make_store(kind: str, tmp_path):
    if kind == "memory":
        return InMemoryMessageStore()
    store = SQLiteMessageStore(str(tmp_path / "relay.db"))
    await store.initialize()
    return store


def text_message(thread_id: str, text: str, role: str = "user") -> Message:
    return Message(thread_id=thread_id, role=role, parts=[TextPart(text=text)])


STORE_KINDS = ["memory", "sqlite"]


@pytest.mark.parametrize("kind", STORE_KINDS)
class TestMessages:
    """Message operations shared by every store."""

    @pytest.mark.asyncio
    async def test_messages_returned_in_creation_order(self, kind, tmp_path):
        store = await make_store(kind, tmp_path)
        thread = await store.add_thread()

        for index in range(5):
            await store.add_message(text_message(thread.id, f"m{index}"))

        messages = await store.get_messages(thread.id)
        assert [m.text for m in messages] == ["m0", "m1", "m2", "m3", "m4"]
        assert await store.count_messages(thread.id) == 5

    @pytest.mark.asyncio
    async def test_limit_and_offset(self, kind, tmp_path):
        store = await make_store(kind, tmp_path)
        thread = await store.add_thread()
        for index in range(5):
            await store.add_message(text_message(thread.id, f"m{index}"))

        assert [m.text for m in await store.get_messages(thread.id, limit=2, offset=1)] == ["m1", "m2"]
        assert [m.text for m in await store.get_messages(thread.id, offset=3)] == ["m3", "m4"]

    @pytest.mark.asyncio
    async def test_parts_round_trip(self, kind, tmp_path):
        """Test that every part type survives storage."""
        store = await make_store(kind, tmp_path)
        thread = await store.add_thread()
        message = Message(
            thread_id=thread.id,
            role="model",
            parts=[
                TextPart(text="Checking"),
                FunctionCallPart(id="c1", name="todo_list", args={"action": "get"}),
                FunctionResponsePart(id="c1", name="todo_list", response=ToolResult.ok({"total": 0})),
            ],
        )

        await store.add_message(message)

        [stored] = await store.get_messages(thread.id)
        assert stored.id == message.id
        assert stored.parts == message.parts

    @pytest.mark.asyncio
    async def test_update_message_parts(self, kind, tmp_path):
        """Test that updating parts replaces them and keeps the message in place."""
        store = await make_store(kind, tmp_path)
        thread = await store.add_thread()
        first = await store.add_message(
            Message(thread_id=thread.id, role="model", parts=[FunctionCallPart(id="c1", name="confirm_action")])
        )
        await store.add_message(text_message(thread.id, "after"))

        updated = first.with_function_response(
            FunctionResponsePart(id="c1", name="confirm_action", response=ToolResult.ok({"confirmed": True}))
        )
        result = await store.update_message(first.id, {"parts": [p.model_dump(mode="json") for p in updated.parts]})

        assert result.responded_call_ids() == {"c1"}
        messages = await store.get_messages(thread.id)
        assert messages[0].id == first.id
        assert messages[0].responded_call_ids() == {"c1"}
        assert messages[1].text == "after"

    @pytest.mark.asyncio
    async def test_update_missing_message_raises(self, kind, tmp_path):
        store = await make_store(kind, tmp_path)

        with pytest.raises(PersistenceError, match="not found"):
            await store.update_message("missing", {"parts": []})

    @pytest.mark.asyncio
    async def test_update_rejects_other_fields(self, kind, tmp_path):
        store = await make_store(kind, tmp_path)
        thread = await store.add_thread()
        message = await store.add_message(text_message(thread.id, "hi"))

        with pytest.raises(PersistenceError, match="role"):
            await store.update_message(message.id, {"role": "model"})

    @pytest.mark.asyncio
    async def test_add_message_to_unknown_thread_raises(self, kind, tmp_path):
        store = await make_store(kind, tmp_path)

        with pytest.raises(PersistenceError):
            await store.add_message(text_message("nowhere", "hi"))

    @pytest.mark.asyncio
    async def test_duplicate_message_id_raises(self, kind, tmp_path):
        store = await make_store(kind, tmp_path)
        thread = await store.add_thread()
        message = await store.add_message(text_message(thread.id, "hi"))

        with pytest.raises(PersistenceError):
            await store.add_message(message)

    @pytest.mark.asyncio
    async def test_delete_message(self, kind, tmp_path):
        store = await make_store(kind, tmp_path)
        thread = await store.add_thread()
        message = await store.add_message(text_message(thread.id, "hi"))

        assert await store.delete_message(message.id) is True
        assert await store.delete_message(message.id) is False
        assert await store.get_messages(thread.id) == []


@pytest.mark.parametrize("kind", STORE_KINDS)
class TestThreads:
    """Thread operations shared by every store."""

    @pytest.mark.asyncio
    async def test_add_and_get_thread(self, kind, tmp_path):
        store = await make_store(kind, tmp_path)

        thread = await store.add_thread(title="Trip planning", thread_id="t-1")

        fetched = await store.get_thread("t-1")
        assert fetched.id == thread.id
        assert fetched.title == "Trip planning"
        assert await store.get_thread("missing") is None

    @pytest.mark.asyncio
    async def test_default_title(self, kind, tmp_path):
        store = await make_store(kind, tmp_path)

        thread = await store.add_thread()

        assert thread.title == "New Conversation"

    @pytest.mark.asyncio
    async def test_update_thread_title(self, kind, tmp_path):
        store = await make_store(kind, tmp_path)
        thread = await store.add_thread()

        updated = await store.update_thread(thread.id, "Renamed")

        assert updated.title == "Renamed"
        assert (await store.get_thread(thread.id)).title == "Renamed"
        assert await store.update_thread("missing", "x") is None

    @pytest.mark.asyncio
    async def test_threads_listed_by_recent_activity(self, kind, tmp_path):
        store = await make_store(kind, tmp_path)
        older = await store.add_thread(title="older")
        newer = await store.add_thread(title="newer")

        await store.add_message(text_message(older.id, "bump"))

        assert [t.id for t in await store.get_threads()] == [older.id, newer.id]

    @pytest.mark.asyncio
    async def test_delete_thread_removes_messages(self, kind, tmp_path):
        store = await make_store(kind, tmp_path)
        thread = await store.add_thread()
        message = await store.add_message(text_message(thread.id, "hi"))

        assert await store.delete_thread(thread.id) is True
        assert await store.get_thread(thread.id) is None
        assert await store.get_messages(thread.id) == []
        assert await store.delete_message(message.id) is False
        assert await store.delete_thread(thread.id) is False


class TestInMemoryIsolation:
    """The in-memory store hands out copies."""

    @pytest.mark.asyncio
    async def test_returned_messages_are_copies(self):
        store = InMemoryMessageStore()
        thread = await store.add_thread()
        message = await store.add_message(text_message(thread.id, "hi"))

        message.parts.append(TextPart(text="tampered"))
        (await store.get_messages(thread.id))[0].parts.clear()

        assert (await store.get_messages(thread.id))[0].text == "hi"
