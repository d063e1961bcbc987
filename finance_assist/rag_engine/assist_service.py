"""
Assist Service

Orchestrates ingestion (read, split, store) and question answering, and wires
the collaborators together from configuration.
"""

import time
from typing import Any, Dict, List, Optional

import structlog
from langchain_core.documents import Document
from openai import OpenAI

from .chat_client import ChatClient, OpenAIChatModel, QuestionAnswerAdvisor
from .config import Config, get_config
from .document_reader import DocumentService
from .embeddings import Embedder, HashingEmbedder, OpenAIEmbedder
from .text_splitter import TokenTextSplitter
from .vector_store import InMemoryVectorStore, PineconeVectorStore, SearchRequest, VectorStore
from ..utils.helpers import preview_text

logger = structlog.get_logger(__name__)


class AssistService:
    """Ingests documents into the vector store and answers questions over it."""

    def __init__(self,
                 document_service: DocumentService,
                 splitter: TokenTextSplitter,
                 vector_store: VectorStore,
                 chat_client: ChatClient,
                 search_request: Optional[SearchRequest] = None):
        self.document_service = document_service
        self.splitter = splitter
        self.vector_store = vector_store
        self.chat_client = chat_client
        self.search_request = search_request or SearchRequest()

    def ingest(self, urls: List[str]) -> Dict[str, Any]:
        """
        Read, split and store every document behind the given URLs.

        Nothing is written unless every URL was read and split; the chunks
        then go to the vector store in one batch.

        Args:
            urls: Source locators

        Returns:
            Ingestion statistics
        """
        start_time = time.time()
        if not urls:
            logger.info("Empty ingestion request, nothing to do")
            return {"total_urls": 0, "total_documents": 0, "total_chunks": 0, "processing_time": 0.0}

        documents = self.document_service.read(urls)
        chunks = self.splitter.split(documents)
        self.vector_store.add(chunks)

        result = {
            "total_urls": len(urls),
            "total_documents": len(documents),
            "total_chunks": len(chunks),
            "processing_time": round(time.time() - start_time, 2),
        }
        logger.info("Document ingestion completed", **result)
        return result

    def retrieve(self, keyword: str) -> List[Document]:
        """Return the stored chunks most similar to keyword, using the default search settings."""
        return self.vector_store.similarity_search(self.search_request.with_query(keyword))

    def get_answer(self, question: str) -> str:
        start_time = time.time()
        answer = self.chat_client.content(question)
        logger.info("Question answered",
                    question=preview_text(question),
                    answer_length=len(answer),
                    processing_time=round(time.time() - start_time, 2))
        return answer

    def get_stats(self) -> Dict[str, Any]:
        return {
            "vector_store": {
                "backend": type(self.vector_store).__name__,
                "total_vectors": self.vector_store.count(),
            },
            "search": {
                "top_k": self.search_request.top_k,
                "similarity_threshold": self.search_request.similarity_threshold,
            },
            "splitter": {"chunk_size": self.splitter.chunk_size},
        }


def build_embedder(config: Config, client: Optional[OpenAI] = None) -> Embedder:
    if config.embedding.backend == "hashing":
        return HashingEmbedder(dimension=config.embedding.dimension)
    return OpenAIEmbedder(
        client=client or build_openai_client(config),
        model=config.openai.embedding_model,
        dimension=config.embedding.dimension,
        batch_size=config.embedding.batch_size,
    )


def build_vector_store(config: Config, embedder: Embedder) -> VectorStore:
    if config.vector_store.backend == "pinecone":
        return PineconeVectorStore(
            embedder=embedder,
            api_key=config.pinecone.api_key,
            index_name=config.pinecone.index_name,
            cloud=config.pinecone.cloud,
            region=config.pinecone.region,
            namespace=config.pinecone.namespace,
        )
    return InMemoryVectorStore(embedder)


def build_openai_client(config: Config) -> OpenAI:
    return OpenAI(
        api_key=config.openai.api_key,
        base_url=config.openai.base_url,
        timeout=config.openai.timeout,
        max_retries=0,
    )


def build_assist_service(config: Optional[Config] = None) -> AssistService:
    """
    Instantiate the reader, splitter, embedder, vector store and chat client.

    Args:
        config: Settings to build from (defaults to the global configuration)

    Returns:
        A ready AssistService owning its vector store
    """
    config = config or get_config()
    config.validate()

    client = build_openai_client(config)
    embedder = build_embedder(config, client)
    vector_store = build_vector_store(config, embedder)
    search_request = SearchRequest(
        top_k=config.search.top_k,
        similarity_threshold=config.search.similarity_threshold,
    )
    chat_client = ChatClient(
        OpenAIChatModel(
            client=client,
            model=config.openai.model,
            temperature=config.openai.temperature,
            max_tokens=config.openai.max_tokens,
        ),
        default_advisors=[QuestionAnswerAdvisor(vector_store, search_request)],
    )

    logger.info("AssistService initialized",
                chat_model=config.openai.model,
                embedding_backend=config.embedding.backend,
                vector_store_backend=config.vector_store.backend)

    return AssistService(
        document_service=DocumentService(config.reader),
        splitter=TokenTextSplitter.from_config(config.splitter),
        vector_store=vector_store,
        chat_client=chat_client,
        search_request=search_request,
    )
