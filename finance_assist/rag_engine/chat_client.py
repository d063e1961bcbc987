"""
Answer engine: chat model, retrieval advisor and chat client.

A ChatClient sends one user message to the chat model after running it
through its default advisors. The QuestionAnswerAdvisor retrieves similar
chunks from the vector store and appends them to the user message as context.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

import structlog
from langchain_core.documents import Document
from openai import APITimeoutError, OpenAI, OpenAIError

from .errors import LLMError
from .vector_store import SearchRequest, VectorStore

logger = structlog.get_logger(__name__)

DEFAULT_USER_TEXT_ADVISE = """
Context information is below.
---------------------
{question_answer_context}
---------------------
Given the context and provided history information and not prior knowledge,
reply to the user comment. If the answer is not in the context, inform
the user that you can't answer the question.
"""

RETRIEVED_DOCUMENTS = "qa_retrieved_documents"


@dataclass(frozen=True)
class ChatRequest:
    user_text: str
    system_text: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def messages(self) -> List[Dict[str, str]]:
        messages = []
        if self.system_text:
            messages.append({"role": "system", "content": self.system_text})
        messages.append({"role": "user", "content": self.user_text})
        return messages


@dataclass(frozen=True)
class ChatResponse:
    content: str
    documents: List[Document] = field(default_factory=list)


class ChatModel(ABC):
    """Base class for chat completion backends."""

    @abstractmethod
    def complete(self, messages: List[Dict[str, str]]) -> str:
        """Return the completion text for the given chat messages."""


class OpenAIChatModel(ChatModel):
    """Chat completions through the OpenAI API."""

    def __init__(self,
                 client: OpenAI,
                 model: str = "gpt-4o-mini",
                 temperature: float = 0.7,
                 max_tokens: Optional[int] = None):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def complete(self, messages: List[Dict[str, str]]) -> str:
        options: Dict[str, Any] = {"temperature": self.temperature}
        if self.max_tokens is not None:
            options["max_tokens"] = self.max_tokens

        try:
            response = self.client.chat.completions.create(model=self.model, messages=messages, **options)
        except APITimeoutError as e:
            logger.error("Chat completion timed out", model=self.model, error=str(e))
            raise LLMError(f"Chat completion timed out: {e}", timeout=True) from e
        except OpenAIError as e:
            logger.error("Chat completion failed", model=self.model, error=str(e))
            raise LLMError(f"Chat completion failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMError("Chat completion returned no content")

        logger.info("Response generated successfully", model=self.model, response_length=len(content))
        return content.strip()


class Advisor:
    """Rewrites a chat request before it reaches the chat model."""

    def advise_request(self, request: ChatRequest) -> ChatRequest:
        return request


class QuestionAnswerAdvisor(Advisor):
    """Adds the chunks most similar to the question to the user message."""

    def __init__(self,
                 vector_store: VectorStore,
                 search_request: Optional[SearchRequest] = None,
                 user_text_advise: str = DEFAULT_USER_TEXT_ADVISE):
        self.vector_store = vector_store
        self.search_request = search_request or SearchRequest()
        self.user_text_advise = user_text_advise

    def advise_request(self, request: ChatRequest) -> ChatRequest:
        documents = self.vector_store.similarity_search(self.search_request.with_query(request.user_text))
        context_text = "\n".join(document.page_content for document in documents)
        advised_text = request.user_text + "\n" + self.user_text_advise.format(
            question_answer_context=context_text
        )

        logger.info("Question context retrieved", retrieved_chunks=len(documents))
        return replace(
            request,
            user_text=advised_text,
            context={**request.context, RETRIEVED_DOCUMENTS: documents},
        )


class ChatClient:
    """Single-shot chat client with default advisors and no conversation memory."""

    def __init__(self,
                 chat_model: ChatModel,
                 default_advisors: Optional[List[Advisor]] = None,
                 default_system: Optional[str] = None):
        self.chat_model = chat_model
        self.default_advisors = list(default_advisors or [])
        self.default_system = default_system

    def call(self, user_text: str) -> ChatResponse:
        request = ChatRequest(user_text=user_text, system_text=self.default_system)
        for advisor in self.default_advisors:
            request = advisor.advise_request(request)

        content = self.chat_model.complete(request.messages())
        return ChatResponse(content=content, documents=request.context.get(RETRIEVED_DOCUMENTS, []))

    def content(self, user_text: str) -> str:
        return self.call(user_text).content
