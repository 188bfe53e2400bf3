"""API endpoints for the agent service."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from relay import __version__
from relay.api.dependencies import AppContext, get_context
from relay.errors import EventValidationError
from relay.models.conversation import (
    DeleteResponse,
    HealthResponse,
    MessagesResponse,
    Pagination,
    StreamRequest,
    ThreadCreateRequest,
    ThreadUpdateRequest,
)
from relay.models.events import CompleteEvent, ErrorEvent, ThreadTitleEvent
from relay.models.messages import Thread, UserEvent
from relay.services.cancellation import CancelToken
from relay.utils.history import merge_function_calls_and_responses
from relay.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


def format_sse(event: BaseModel) -> str:
    """Serialize an event as a server-sent events data frame."""
    return f"data: {event.model_dump_json()}\n\n"


@router.post("/stream", tags=["Conversation"])
async def stream(request: StreamRequest, context: AppContext = Depends(get_context)) -> StreamingResponse:
    """Run the agent for one user event and stream its events.

    The first frame is always ``complete`` with ``is_complete=false``. Malformed
    events are rejected with 400 before the stream opens.
    """
    thread_id = request.message.thread_id
    if request.type == "text" and context.client is not None:
        try:
            context.client.validate_message_tokens(request.message.text)
        except ValueError as e:
            logger.warning(f"Message too long for thread {thread_id}: {e}")
            raise HTTPException(status_code=400, detail=f"Your message is too long. {e}") from e

    cancel = CancelToken()
    event = UserEvent(type=request.type, message=request.message)
    events = context.orchestrator.run_turn(event, cancel=cancel, mode=request.mode)

    logger.info(f"Stream request for thread {thread_id}: {request.type} ({request.mode})")

    # Run up to the first event so validation errors become a plain 400
    first = None
    failure = None
    try:
        first = await anext(events, None)
    except EventValidationError as e:
        logger.warning(f"Rejected event for thread {thread_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Turn failed to start for thread {thread_id}: {e}", exc_info=True)
        failure = ErrorEvent(error=str(e), thread_id=thread_id)

    async def event_stream() -> AsyncIterator[str]:
        yield format_sse(CompleteEvent(is_complete=False))
        if failure is not None:
            yield format_sse(failure)
            return

        try:
            if first is not None:
                yield format_sse(first)
                async for agent_event in events:
                    yield format_sse(agent_event)

            if request.type == "text" and context.title_service is not None and not cancel.cancelled:
                title = await context.title_service.maybe_update(thread_id)
                if title:
                    yield format_sse(ThreadTitleEvent(thread_id=thread_id, title=title))

        except Exception as e:
            logger.error(f"Turn failed for thread {thread_id}: {e}", exc_info=True)
            yield format_sse(ErrorEvent(error=str(e), thread_id=thread_id))

        finally:
            # Client went away or the stream ended; either way the turn must stop
            cancel.cancel()
            await events.aclose()

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/threads", response_model=list[Thread], tags=["Threads"])
async def list_threads(context: AppContext = Depends(get_context)) -> list[Thread]:
    """List threads, most recently updated first."""
    return await context.store.get_threads()


@router.post("/threads", response_model=Thread, status_code=201, tags=["Threads"])
async def create_thread(request: ThreadCreateRequest, context: AppContext = Depends(get_context)) -> Thread:
    thread = await context.store.add_thread(title=request.title)
    logger.info(f"Created thread {thread.id}")
    return thread


@router.put("/threads/{thread_id}", response_model=Thread, tags=["Threads"])
async def update_thread(
    thread_id: str, request: ThreadUpdateRequest, context: AppContext = Depends(get_context)
) -> Thread:
    thread = await context.store.update_thread(thread_id, request.title)
    if thread is None:
        raise HTTPException(status_code=404, detail=f"Thread {thread_id} not found")
    return thread


@router.delete("/threads/{thread_id}", response_model=DeleteResponse, tags=["Threads"])
async def delete_thread(thread_id: str, context: AppContext = Depends(get_context)) -> DeleteResponse:
    if not await context.store.delete_thread(thread_id):
        raise HTTPException(status_code=404, detail=f"Thread {thread_id} not found")
    logger.info(f"Deleted thread {thread_id}")
    return DeleteResponse(success=True)


@router.get("/threads/{thread_id}/messages", response_model=MessagesResponse, tags=["Threads"])
async def get_thread_messages(
    thread_id: str,
    limit: int | None = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
    merged: bool = False,
    context: AppContext = Depends(get_context),
) -> MessagesResponse:
    """Get a page of thread messages in creation order.

    With ``merged=true`` each function call carries its response for display.
    """
    if await context.store.get_thread(thread_id) is None:
        raise HTTPException(status_code=404, detail=f"Thread {thread_id} not found")

    messages = await context.store.get_messages(thread_id, limit=limit, offset=offset)
    if merged:
        messages = merge_function_calls_and_responses(messages)

    total = await context.store.count_messages(thread_id)
    return MessagesResponse(
        messages=messages,
        pagination=Pagination(total=total, limit=limit, offset=offset, has_more=offset + len(messages) < total),
    )


@router.delete("/messages/{message_id}", response_model=DeleteResponse, tags=["Threads"])
async def delete_message(message_id: str, context: AppContext = Depends(get_context)) -> DeleteResponse:
    if not await context.store.delete_message(message_id):
        raise HTTPException(status_code=404, detail=f"Message {message_id} not found")
    return DeleteResponse(success=True)


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
