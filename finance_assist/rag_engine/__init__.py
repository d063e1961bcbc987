"""
RAG Engine Module

Document reading, token splitting, embedding, vector storage and the
retrieval-augmented chat client behind the finance assist endpoints.
"""

from .assist_service import AssistService, build_assist_service
from .chat_client import ChatClient, OpenAIChatModel, QuestionAnswerAdvisor
from .document_reader import DocumentService
from .text_splitter import TokenTextSplitter
from .vector_store import InMemoryVectorStore, PineconeVectorStore, SearchRequest

__all__ = [
    "AssistService",
    "build_assist_service",
    "ChatClient",
    "OpenAIChatModel",
    "QuestionAnswerAdvisor",
    "DocumentService",
    "TokenTextSplitter",
    "InMemoryVectorStore",
    "PineconeVectorStore",
    "SearchRequest",
]
