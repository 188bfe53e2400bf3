"""Main FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relay import __version__
from relay.api.dependencies import AppContext, build_context
from relay.api.endpoints import router
from relay.config import Settings
from relay.utils.logging import LogConfig, setup_logging


def create_app(context: AppContext | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        context: Pre-built services; when omitted they are wired from the
            environment at startup
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "context", None) is None:
            settings = Settings.from_env()
            setup_logging(LogConfig(level=settings.log_level, format=settings.log_format))
            app.state.context = await build_context(settings)
        yield

    app = FastAPI(
        title="Relay Agent",
        description=(
            "A tool-augmented conversational agent that streams its turns over "
            "server-sent events and persists threads between turns."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {
                "name": "Conversation",
                "description": "Stream agent turns for user messages and client tool results.",
            },
            {
                "name": "Threads",
                "description": "Create, rename and delete threads and read their messages.",
            },
            {
                "name": "Health",
                "description": "Service health monitoring and status checks.",
            },
        ],
    )
    app.state.context = context

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("relay.main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True, log_level="info")
