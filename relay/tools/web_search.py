"""Web and document search tools."""

from pydantic import BaseModel, Field, field_validator

from relay.services.doc_search import DocSearchService
from relay.services.web_search import WebSearchService
from relay.tools.base import ToolContext, ToolDefinition


class SearchInput(BaseModel):
    """Input schema for search tools."""

    query: list[str] = Field(
        ...,
        min_length=1,
        description="Search terms or phrases; multiple entries are joined into one query",
        examples=[["latest python release"], ["protein", "daily intake"]],
    )

    @field_validator("query", mode="before")
    @classmethod
    def coerce_query(cls, v):
        """Accept a bare string as a single-term query."""
        if isinstance(v, str):
            return [v]
        return v

    @property
    def text(self) -> str:
        return " ".join(term.strip() for term in self.query if term.strip())


SEARCH_WEB_DESCRIPTION = """Search the web for the given query to get the latest information.

Use this for current events, facts that may have changed recently, or anything
not covered by the conversation so far. Returns up to three results with title,
url and description. Cite the urls you rely on."""

SEARCH_DOCUMENT_DESCRIPTION = """Search the reference documents for passages relevant to the query.

Use this before answering questions about the reference material. Returns the
best matching passages with their source document and a relevance score."""


def create_search_web_tool(web_search_service: WebSearchService) -> ToolDefinition:
    async def search_web_handler(params: SearchInput, context: ToolContext) -> list[dict]:
        return await web_search_service.search(params.text)

    return ToolDefinition(
        name="search_web",
        description=SEARCH_WEB_DESCRIPTION,
        input_schema_class=SearchInput,
        handler=search_web_handler,
    )


def create_search_document_tool(doc_search_service: DocSearchService) -> ToolDefinition:
    async def search_document_handler(params: SearchInput, context: ToolContext) -> list[dict]:
        return await doc_search_service.search(params.text)

    return ToolDefinition(
        name="search_document",
        description=SEARCH_DOCUMENT_DESCRIPTION,
        input_schema_class=SearchInput,
        handler=search_document_handler,
    )
