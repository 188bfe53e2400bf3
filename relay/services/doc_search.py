"""Keyword search over a local directory of text documents."""

import asyncio
import re
from collections import Counter
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from langchain_text_splitters import RecursiveCharacterTextSplitter

from relay.utils.logging import get_logger

logger = get_logger(__name__)

DOCUMENT_SUFFIXES = {".md", ".txt", ".rst"}
TOKEN_PATTERN = re.compile(r"[a-z0-9]+")
CHUNK_SIZE = 800
CHUNK_OVERLAP = 100


@dataclass
class DocumentChunk:
    """A slice of a source document."""

    source: str
    content: str


def tokenize(text: str) -> list[str]:
    return TOKEN_PATTERN.findall(text.lower())


class DocSearchService:
    """Search documents under ``docs_dir`` by query term overlap.

    Documents are read and chunked on the first search, off the event loop.
    """

    def __init__(
        self, docs_dir: str | None, top_k: int = 4, chunk_size: int = CHUNK_SIZE, chunk_overlap: int = CHUNK_OVERLAP
    ):
        self.docs_dir = Path(docs_dir) if docs_dir else None
        self.top_k = top_k
        self.splitter = RecursiveCharacterTextSplitter(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
        self._chunks: list[DocumentChunk] | None = None
        self._load_lock = asyncio.Lock()

    async def search(self, query: str) -> list[dict[str, Any]]:
        terms = set(tokenize(query))
        if not terms:
            raise ValueError("Query is required")

        chunks = await self.chunks()
        if not chunks:
            raise ValueError("No documents are available to search")

        scored = []
        for chunk in chunks:
            counts = Counter(tokenize(chunk.content))
            score = sum(counts[term] for term in terms)
            if score:
                scored.append((score, chunk))

        scored.sort(key=lambda item: item[0], reverse=True)
        logger.info(f"Document search for '{query}' matched {len(scored)} chunks")
        return [{**asdict(chunk), "score": score} for score, chunk in scored[: self.top_k]]

    async def chunks(self) -> list[DocumentChunk]:
        """Return the indexed chunks, reading the directory on first use."""
        async with self._load_lock:
            if self._chunks is None:
                self._chunks = await asyncio.to_thread(self._load)
        return self._chunks

    def split(self, source: str, text: str) -> list[DocumentChunk]:
        return [DocumentChunk(source=source, content=chunk) for chunk in self.splitter.split_text(text)]

    def _load(self) -> list[DocumentChunk]:
        chunks: list[DocumentChunk] = []
        if not self.docs_dir or not self.docs_dir.is_dir():
            return chunks

        for path in sorted(self.docs_dir.rglob("*")):
            if path.suffix.lower() not in DOCUMENT_SUFFIXES:
                continue
            text = path.read_text(encoding="utf-8", errors="ignore")
            chunks.extend(self.split(path.name, text))

        logger.info(f"Indexed {len(chunks)} chunks from {self.docs_dir}")
        return chunks
