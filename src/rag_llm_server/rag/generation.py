"""Answer generation: retrieved context plus question to a model reply."""

import time
from abc import ABC, abstractmethod
from typing import Iterator

from pydantic import BaseModel

from ..chat.streaming import StreamEvent, token_stream
from ..errors import RAGError
from ..llm import ClaudeClient
from ..logger import logger
from ..prompts import RAG_ANSWER, PromptTemplate
from .models import RetrievedChunk
from .retriever import RAGRetriever, build_context

DEFAULT_ANSWER_MAX_RESULTS = 5
DEFAULT_ANSWER_MIN_SCORE = 0.7


class SourceReference(BaseModel):
    """A source reference from a retrieved chunk."""

    file_name: str
    document_id: str | None
    chunk_index: int | None
    score: float
    content_preview: str  # First 200 chars of chunk


class AnswerResult(BaseModel):
    answer: str
    question: str
    document_id: str | None = None
    chunks_used: int
    found: bool
    sources: list[SourceReference]


class AnswerGenerator(ABC):
    """Produces an answer from a question and a context blob."""

    @abstractmethod
    def generate(self, question: str, context: str) -> str:
        """Raises GenerationError on provider failure."""

    @abstractmethod
    def stream(self, question: str, context: str) -> Iterator[str]:
        """Yield answer fragments."""


class ClaudeAnswerGenerator(AnswerGenerator):
    def __init__(self, client: ClaudeClient, template: PromptTemplate = RAG_ANSWER):
        self.client = client
        self.template = template

    def _messages(self, question: str, context: str):
        prompt = self.template.render({"question": question, "context": context})
        return prompt.system, [{"role": "user", "content": prompt.user}]

    def generate(self, question: str, context: str) -> str:
        system, messages = self._messages(question, context)
        return self.client.complete(system, messages)

    def stream(self, question: str, context: str) -> Iterator[str]:
        system, messages = self._messages(question, context)
        return self.client.stream(system, messages)


def _sources(chunks: list[RetrievedChunk]) -> list[SourceReference]:
    return [
        SourceReference(
            file_name=chunk.source_file_name,
            document_id=chunk.document_id,
            chunk_index=chunk.chunk_index,
            score=chunk.score,
            content_preview=chunk.text[:200] + "..." if len(chunk.text) > 200 else chunk.text,
        )
        for chunk in chunks
    ]


class RAGAssistant:
    """Answers questions from ingested documents.

    When nothing clears the score threshold the generator still runs, with
    the "no relevant documents" marker as context, and its prompt tells the
    model to say the information was not found.
    """

    def __init__(
        self,
        retriever: RAGRetriever,
        generator: AnswerGenerator,
        max_results: int = DEFAULT_ANSWER_MAX_RESULTS,
        min_score: float = DEFAULT_ANSWER_MIN_SCORE,
    ):
        self.retriever = retriever
        self.generator = generator
        self.max_results = max_results
        self.min_score = min_score

    def answer(self, question: str, document_id: str | None = None) -> AnswerResult:
        """Answer a question using RAG.

        Args:
            question: The question to answer.
            document_id: Restrict retrieval to one document.

        Returns:
            AnswerResult with the answer and the chunks it was based on.

        Raises:
            ValidationError: If the question is blank.
            EmbeddingError: If embedding the question fails.
            GenerationError: If the generator fails.
        """
        start = time.perf_counter()
        document_id = document_id or None
        chunks = self.retriever.retrieve(question, self.max_results, self.min_score, document_id)
        context = build_context(chunks)

        generation_start = time.perf_counter()
        try:
            answer = self.generator.generate(question, context)
        except RAGError as e:
            e.question = e.question or question
            e.document_id = e.document_id or document_id
            raise
        generation_duration_ms = (time.perf_counter() - generation_start) * 1000

        total_duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "rag query completed",
            question_length=len(question),
            document_id=document_id,
            chunks_used=len(chunks),
            answer_length=len(answer),
            generation_duration_ms=round(generation_duration_ms, 2),
            total_duration_ms=round(total_duration_ms, 2),
        )

        return AnswerResult(
            answer=answer,
            question=question,
            document_id=document_id,
            chunks_used=len(chunks),
            found=bool(chunks),
            sources=_sources(chunks),
        )

    def stream_answer(self, question: str, document_id: str | None = None) -> Iterator[StreamEvent]:
        """Retrieve eagerly, then stream the generated answer as events.

        Retrieval errors raise before streaming starts; generation errors
        arrive as the terminal ``error`` event.
        """
        document_id = document_id or None
        chunks = self.retriever.retrieve(question, self.max_results, self.min_score, document_id)
        logger.info(
            "rag streaming answer started",
            document_id=document_id,
            chunks_used=len(chunks),
        )
        return token_stream(self.generator.stream(question, build_context(chunks)))
