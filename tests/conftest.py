"""
Shared fixtures: offline doubles for the encoder, chat model and HTTP session.
"""

from typing import Dict, List
from unittest.mock import MagicMock

import pytest
import requests
import tiktoken

from finance_assist.api import create_app
from finance_assist.rag_engine import (
    AssistService,
    ChatClient,
    DocumentService,
    InMemoryVectorStore,
    QuestionAnswerAdvisor,
    SearchRequest,
    TokenTextSplitter,
)
from finance_assist.rag_engine.config import Config, ReaderConfig
from finance_assist.rag_engine.embeddings import HashingEmbedder


class ByteEncoding:
    """One token per UTF-8 byte; same interface as a tiktoken Encoding."""

    def __init__(self):
        self.encode_calls = 0

    def encode(self, text: str, disallowed_special=()) -> List[int]:
        self.encode_calls += 1
        return list(text.encode("utf-8"))

    def decode_tokens_bytes(self, tokens: List[int]) -> List[bytes]:
        return [bytes([token]) for token in tokens]


GPT2_PATTERN = r"""'s|'t|'re|'ve|'m|'ll|'d| ?\p{L}+| ?\p{N}+| ?[^\s\p{L}\p{N}]+|\s+(?!\S)|\s+"""

# Merged in rank order; b"\xac\xe2" spans the boundary between two euro signs
LOCAL_MERGES = [
    b"\xac\xe2", b"\xe2\x82", b"th", b"the", b" the", b"re", b"ve", b"en", b"ue", b"an", b"in",
    b"er", b"on", b"ar", b" r", b"rev", b"reven", b"revenue", b" revenue", b"ing", b"ion",
]


def local_bpe_encoding() -> tiktoken.Encoding:
    """Small byte-level BPE encoding that needs no downloaded rank files."""
    ranks = {bytes([i]): i for i in range(256)}
    for merge in LOCAL_MERGES:
        ranks[merge] = len(ranks)
    return tiktoken.Encoding(
        name="finance_assist_local_bpe",
        pat_str=GPT2_PATTERN,
        mergeable_ranks=ranks,
        special_tokens={"<|endoftext|>": len(ranks)},
    )


class FakeChatModel:
    """Chat model that answers with the context it was given."""

    def __init__(self, fail_with: Exception = None):
        self.calls: List[List[Dict[str, str]]] = []
        self.fail_with = fail_with

    def complete(self, messages: List[Dict[str, str]]) -> str:
        self.calls.append(messages)
        if self.fail_with is not None:
            raise self.fail_with
        user_text = messages[-1]["content"]
        context = user_text.split("---------------------")[1].strip() if "-----" in user_text else ""
        if not context:
            return "I can't answer the question from the provided context."
        return f"Based on the documents: {context[:200]}"


def fake_response(content: bytes, content_type: str = "text/plain", status_code: int = 200):
    response = MagicMock(spec=requests.Response)
    response.content = content
    response.headers = {"Content-Type": content_type}
    response.encoding = "utf-8"
    response.status_code = status_code
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Client Error")
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def splitter():
    return TokenTextSplitter(chunk_size=200, min_chunk_size_chars=50, encoding=ByteEncoding())


@pytest.fixture
def embedder():
    return HashingEmbedder(dimension=512)


@pytest.fixture
def vector_store(embedder):
    return InMemoryVectorStore(embedder)


@pytest.fixture
def chat_model():
    return FakeChatModel()


@pytest.fixture
def assist_service(session, splitter, vector_store, chat_model):
    search_request = SearchRequest()
    chat_client = ChatClient(chat_model, default_advisors=[QuestionAnswerAdvisor(vector_store, search_request)])
    return AssistService(
        document_service=DocumentService(ReaderConfig(timeout=5), session=session),
        splitter=splitter,
        vector_store=vector_store,
        chat_client=chat_client,
        search_request=search_request,
    )


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def app(assist_service, config):
    return create_app(testing=True, assist_service=assist_service, config=config)


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client
