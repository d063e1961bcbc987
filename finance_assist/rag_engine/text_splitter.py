"""
Token Text Splitter

Splits documents into chunks bounded by a token budget (not a character
count), cutting at sentence punctuation where that keeps chunks reasonably
large.
"""

import uuid
from bisect import bisect_left, bisect_right
from itertools import accumulate
from typing import Any, List, Optional

import structlog
import tiktoken
from langchain_core.documents import Document
from langchain_text_splitters import TextSplitter

from .config import SplitterConfig
from .errors import ParseError

logger = structlog.get_logger(__name__)

PUNCTUATION_MARKS = (".", "?", "!", "\n")


class TokenTextSplitter(TextSplitter):
    """Split text into windows of at most ``chunk_size`` tokens."""

    def __init__(self,
                 chunk_size: int = 800,
                 min_chunk_size_chars: int = 350,
                 max_num_chunks: int = 10000,
                 keep_separator: bool = True,
                 encoding_name: str = "cl100k_base",
                 encoding: Optional[tiktoken.Encoding] = None,
                 **kwargs: Any):
        super().__init__(chunk_size=chunk_size, chunk_overlap=0, **kwargs)
        self.chunk_size = chunk_size
        self.min_chunk_size_chars = min_chunk_size_chars
        self.max_num_chunks = max_num_chunks
        self.keep_separator = keep_separator
        self._encoding = encoding or tiktoken.get_encoding(encoding_name)

    @classmethod
    def from_config(cls, splitter_config: Optional[SplitterConfig] = None) -> "TokenTextSplitter":
        splitter_config = splitter_config or SplitterConfig()
        return cls(
            chunk_size=splitter_config.chunk_size,
            min_chunk_size_chars=splitter_config.min_chunk_size_chars,
            max_num_chunks=splitter_config.max_num_chunks,
            keep_separator=splitter_config.keep_separator,
            encoding_name=splitter_config.encoding,
        )

    def count_tokens(self, text: str) -> int:
        return len(self._encode(text))

    def split_text(self, text: str) -> List[str]:
        """
        Split text into chunks of at most ``chunk_size`` tokens.

        The text is encoded once. The split position is a byte offset into
        the UTF-8 text, so a cut inside a token leaves the rest of that token
        to count as one token of the next window.
        """
        chunks: List[str] = []
        if not text or not text.strip():
            return chunks

        data = text.encode("utf-8")
        tokens = self._encode(text)
        # Byte offset at which each token starts, then the end of the text
        offsets = [0, *accumulate(len(b) for b in self._encoding.decode_tokens_bytes(tokens))]
        position = 0

        while position < len(data):
            if len(chunks) >= self.max_num_chunks:
                rest = data[position:].decode("utf-8")
                if rest.strip():
                    logger.warning("Chunk limit reached, dropping remaining text",
                                   max_num_chunks=self.max_num_chunks,
                                   dropped_characters=len(rest))
                break

            first = bisect_left(offsets, position)
            budget = self.chunk_size - (1 if offsets[first] > position else 0)
            if len(tokens) - first <= budget:
                piece = data[position:].decode("utf-8")
            else:
                piece = self._window(data, position, offsets, first + budget)
                cut = max(piece.rfind(mark) for mark in PUNCTUATION_MARKS)
                if cut > self.min_chunk_size_chars:
                    piece = piece[:cut + 1]
            position += len(piece.encode("utf-8"))

            if not self.keep_separator:
                piece = piece.replace("\n", " ")
            piece = piece.strip()
            if piece:
                chunks.append(piece)

        return chunks

    def split(self, documents: List[Document]) -> List[Document]:
        """
        Split documents into chunk documents.

        Each chunk inherits its parent's metadata and adds ``chunk_index``,
        ``total_chunks`` and ``parent_document_id``.

        Args:
            documents: Parsed documents to split

        Returns:
            Chunk documents, in document order
        """
        chunks: List[Document] = []

        for document in documents:
            try:
                pieces = self.split_text(document.page_content)
            except ValueError as e:
                raise ParseError(
                    f"Failed to split document: {e}",
                    source=document.metadata.get("source"),
                ) from e

            for index, piece in enumerate(pieces):
                metadata = {
                    **document.metadata,
                    "chunk_index": index,
                    "total_chunks": len(pieces),
                    "parent_document_id": document.id,
                }
                chunks.append(Document(page_content=piece, metadata=metadata, id=str(uuid.uuid4())))

        logger.info("Documents split into chunks",
                    documents=len(documents),
                    chunks=len(chunks),
                    chunk_size=self.chunk_size)
        return chunks

    def split_documents(self, documents) -> List[Document]:
        return self.split(list(documents))

    def _encode(self, text: str) -> List[int]:
        # Special token markers in documents are plain text here
        return self._encoding.encode(text, disallowed_special=())

    @staticmethod
    def _window(data: bytes, start: int, offsets: List[int], end_token: int) -> str:
        """Decode the bytes from ``start`` up to the start of ``end_token`` as an exact text prefix."""
        last_token = len(offsets) - 1
        end_token = max(end_token, bisect_right(offsets, start))
        while True:
            # A character split across the boundary is left for the next window
            window = data[start:offsets[min(end_token, last_token)]].decode("utf-8", errors="ignore")
            if window or end_token >= last_token:
                return window
            end_token += 1
