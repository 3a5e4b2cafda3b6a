"""
Recursive character chunking with overlap, plus evenly spread chunk selection.

Chunks are slices of the source text (`text[chunk.start:chunk.end]`), so removing
the overlap between consecutive chunks gives back the original text exactly.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypeVar

import structlog
from langchain_text_splitters import RecursiveCharacterTextSplitter

from studylab.schemas import Chunk

logger = structlog.get_logger()

CHUNK_SIZE = 2000
CHUNK_OVERLAP = 400
SEPARATORS = ["\n\n", "\n", ".", "!", "?", ",", " ", ""]

Span = Tuple[int, int]
T = TypeVar("T")


class TextChunker:
    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        separators: Optional[Sequence[str]] = None,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = list(separators if separators is not None else SEPARATORS)
        if not self.separators or self.separators[-1] != "":
            self.separators.append("")
        # Every chunk must stay a verbatim slice of the input
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=self.separators,
            keep_separator="end",
            strip_whitespace=False,
        )

    def split_spans(self, text: str) -> List[Span]:
        if not text:
            return []
        spans: List[Span] = []
        for content in self.splitter.split_text(text):
            lower = 0
            if spans:
                # Identical short chunks can sit side by side; never reuse a start
                previous_start, previous_end = spans[-1]
                lower = max(previous_start + 1, previous_end - self.chunk_overlap)
            start = text.find(content, lower)
            spans.append((start, start + len(content)))
        return spans

    def chunk(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> List[Chunk]:
        metadata = dict(metadata or {})
        source_name = str(metadata.get("source_name") or metadata.get("source") or "Unknown")
        chunks = [
            Chunk(
                content=text[start:end],
                source_name=source_name,
                chunk_index=index,
                start=start,
                end=end,
                metadata=metadata,
            )
            for index, (start, end) in enumerate(self.split_spans(text))
        ]
        if chunks:
            logger.info(
                "text_chunked",
                source=source_name,
                text_length=len(text),
                chunks=len(chunks),
                average_length=round(sum(len(c.content) for c in chunks) / len(chunks)),
            )
        return chunks


def split_text_into_chunks(text: str, metadata: Optional[Dict[str, Any]] = None) -> List[Chunk]:
    return TextChunker().chunk(text, metadata)


def reconstruct_text(chunks: Sequence[Chunk]) -> str:
    """Concatenate chunk contents, dropping the part each chunk shares with its predecessor."""
    parts = []
    covered = 0
    for chunk in chunks:
        parts.append(chunk.content[max(0, covered - chunk.start):])
        covered = max(covered, chunk.end)
    return "".join(parts)


def select_distributed_chunks(chunks: Sequence[T], count: int) -> List[T]:
    """Pick `count` items spread evenly over the whole sequence, keeping their order."""
    if count >= len(chunks):
        return list(chunks)
    if count <= 0:
        return []
    step = len(chunks) / count
    return [chunks[int(i * step)] for i in range(count)]
