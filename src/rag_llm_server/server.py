"""FastAPI REST API for the RAG pipeline and the assistant features."""

import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt
from pydantic.alias_generators import to_camel

from .chat import (
    Assistant,
    ChatMemoryStore,
    ConversationalAssistant,
    InMemoryChatMemoryStore,
    PostgresChatMemoryStore,
    sse_stream,
)
from .chat.assistant import PERSONAS
from .chat.streaming import SSE_HEADERS
from .config import Settings, check_vector_dimensions, get_settings
from .db import PostgresDatabase
from .errors import NotFoundError, PayloadTooLargeError, RAGError, ValidationError
from .llm import ClaudeClient
from .logger import clear_context, logger, set_context
from .prompts import PromptRegistry, default_registry
from .rag import (
    ChunkingPolicy,
    ClaudeAnswerGenerator,
    DocumentMetadataStore,
    DocumentRecord,
    Embedder,
    EmbeddingClient,
    InMemoryDocumentStore,
    InMemoryVectorStore,
    PgDocumentStore,
    PgVectorStore,
    RAGAssistant,
    RAGIngestionPipeline,
    RAGRetriever,
    VectorStore,
)
from .rag.embeddings import resolve_dimension

# --- Request/Response Models ---


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(CamelModel):
    success: bool = False
    code: str
    message: str
    document_id: str | None = None
    question: str | None = None


class DocumentResponse(CamelModel):
    id: str
    file_name: str
    chunk_count: int
    file_size_bytes: int
    file_type: str | None = None
    description: str | None = None
    active: bool
    uploaded_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: DocumentRecord) -> "DocumentResponse":
        return cls(**record.model_dump())


class IngestResponse(CamelModel):
    success: bool = True
    message: str
    chunk_count: int
    document_id: str
    file_name: str


class AskRequest(CamelModel):
    question: str
    document_id: str | None = None


class SourceResponse(CamelModel):
    file_name: str
    document_id: str | None = None
    chunk_index: int | None = None
    score: float
    content_preview: str


class AskResponse(CamelModel):
    success: bool = True
    message: str
    answer: str
    original_question: str
    document_id: str | None = None
    chunks_used: int
    found: bool
    sources: list[SourceResponse] = Field(default_factory=list)


class SearchRequest(CamelModel):
    question: str
    max_results: StrictInt | None = None
    min_score: StrictFloat | StrictInt | None = None
    document_id: str | None = None


class SearchResultItem(CamelModel):
    text: str
    score: float
    file_name: str
    document_id: str | None = None
    chunk_index: int | None = None


class SearchResponse(CamelModel):
    success: bool = True
    message: str
    relevant_content: str
    result_count: int
    min_score: float
    max_results: int
    document_id: str | None = None
    results: list[SearchResultItem] = Field(default_factory=list)


class DocumentListResponse(CamelModel):
    success: bool = True
    documents: list[DocumentResponse]
    total_count: int


class DocumentDetailResponse(CamelModel):
    success: bool = True
    message: str | None = None
    document: DocumentResponse


class StatsResponse(CamelModel):
    success: bool = True
    active_documents: int
    total_chunks: int


class AIResponse(CamelModel):
    success: bool = True
    response: str


class CodeReviewRequest(CamelModel):
    language: str
    code: str


class SummarizeRequest(CamelModel):
    text: str
    max_words: StrictInt = 100


class SqlRequest(CamelModel):
    table_name: str
    request: str


class TextRequest(CamelModel):
    text: str


class CodeRequest(CamelModel):
    language: str
    description: str


class TranslateDocumentRequest(CamelModel):
    text: str
    target_lang: str


class MemoryChatRequest(CamelModel):
    memory_id: str
    message: str
    persona: str = "chat"
    language: str | None = None
    storage: str = "memory"


class MemoryResponse(CamelModel):
    success: bool = True
    response: str
    memory_id: str
    duration_ms: float
    storage_type: str


class HealthResponse(BaseModel):
    status: str
    checks: dict[str, bool] = Field(default_factory=dict)


# --- App State ---

registry: PromptRegistry = default_registry()
database: PostgresDatabase | None = None
_metadata_store: DocumentMetadataStore | None = None
_vector_store: VectorStore | None = None
_embedder: Embedder | None = None
_chat_client: ClaudeClient | None = None
_rag_client: ClaudeClient | None = None
_memory_stores: dict[str, ChatMemoryStore] = {}


def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> PostgresDatabase:
    """Lazy initialization of the connection pool."""
    global database
    if database is None:
        database = PostgresDatabase(get_settings().database_url)
        database.connect()
    return database


def get_metadata_store() -> DocumentMetadataStore:
    """Lazy initialization of the document metadata store."""
    global _metadata_store
    if _metadata_store is None:
        if get_settings().metadata_store == "postgres":
            _metadata_store = PgDocumentStore(get_database())
        else:
            _metadata_store = InMemoryDocumentStore()
    return _metadata_store


def get_vector_store() -> VectorStore:
    """Lazy initialization of the vector store."""
    global _vector_store
    if _vector_store is None:
        settings = get_settings()
        if settings.vector_store == "pgvector":
            store = PgVectorStore(get_database(), settings.vector_table, settings.vector_dimension)
            store.ensure_table()
            _vector_store = store
        else:
            _vector_store = InMemoryVectorStore(settings.vector_dimension)
    return _vector_store


def get_embedder() -> Embedder:
    """Lazy initialization of embedding client."""
    global _embedder
    if _embedder is None:
        settings = get_settings()
        _embedder = EmbeddingClient(
            settings.openai_api_key, settings.embedding_model, settings.embedding_dimension
        )
    return _embedder


def get_chat_client() -> ClaudeClient:
    global _chat_client
    if _chat_client is None:
        settings = get_settings()
        _chat_client = ClaudeClient(
            settings.anthropic_api_key, settings.chat_model, settings.chat_temperature
        )
    return _chat_client


def get_rag_client() -> ClaudeClient:
    global _rag_client
    if _rag_client is None:
        settings = get_settings()
        _rag_client = ClaudeClient(
            settings.anthropic_api_key, settings.rag_model, settings.rag_temperature
        )
    return _rag_client


def get_memory_stores() -> dict[str, ChatMemoryStore]:
    """Chat memory backends by storage name; ``postgres`` is created on first use."""
    if "memory" not in _memory_stores:
        _memory_stores["memory"] = InMemoryChatMemoryStore()
    return _memory_stores


def _memory_store(stores: dict[str, ChatMemoryStore], storage: str) -> ChatMemoryStore:
    storage = (storage or "memory").lower()
    if storage not in ("memory", "postgres"):
        raise ValidationError("storage must be 'memory' or 'postgres'")
    if storage not in stores:
        stores[storage] = PostgresChatMemoryStore(
            get_database(), get_settings().chat_memory_ttl_seconds
        )
    return stores[storage]


def get_ingestion_pipeline(
    metadata_store: DocumentMetadataStore = Depends(get_metadata_store),
    vector_store: VectorStore = Depends(get_vector_store),
    embedder: Embedder = Depends(get_embedder),
    settings: Settings = Depends(get_app_settings),
) -> RAGIngestionPipeline:
    return RAGIngestionPipeline(
        metadata_store,
        vector_store,
        embedder,
        policy=ChunkingPolicy(chunk_size=settings.chunk_size, overlap=settings.chunk_overlap),
        ocr=settings.ocr_enabled,
    )


def get_retriever(
    metadata_store: DocumentMetadataStore = Depends(get_metadata_store),
    vector_store: VectorStore = Depends(get_vector_store),
    embedder: Embedder = Depends(get_embedder),
    settings: Settings = Depends(get_app_settings),
) -> RAGRetriever:
    return RAGRetriever(
        embedder,
        vector_store,
        metadata_store,
        exclude_inactive=settings.rag_exclude_inactive,
    )


def get_rag_assistant(
    retriever: RAGRetriever = Depends(get_retriever),
    client: ClaudeClient = Depends(get_rag_client),
    settings: Settings = Depends(get_app_settings),
) -> RAGAssistant:
    return RAGAssistant(
        retriever,
        ClaudeAnswerGenerator(client, registry.get("rag_answer")),
        max_results=settings.rag_max_results,
        min_score=settings.rag_min_score,
    )


def get_assistant(client: ClaudeClient = Depends(get_chat_client)) -> Assistant:
    return Assistant(client, registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    global database, _metadata_store, _vector_store

    logger.info("starting server")
    settings = get_settings()
    registry.validate()
    check_vector_dimensions(
        resolve_dimension(settings.embedding_model, settings.embedding_dimension),
        settings.vector_dimension,
    )

    if settings.uses_postgres:
        get_database()
    get_metadata_store()
    get_vector_store()

    yield

    if database:
        database.disconnect()
        database = None
    _metadata_store = None
    _vector_store = None
    _memory_stores.clear()
    logger.info("server shutdown")


_startup_settings = get_settings()

app = FastAPI(
    title="RAG LLM API",
    description="Document ingestion, retrieval-augmented generation and assistant API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_startup_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    set_context(request_id=request_id)
    try:
        response = await call_next(request)
    finally:
        clear_context()
    response.headers["X-Request-ID"] = request_id
    return response


# --- Exception Handlers ---


def _error_response(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


@app.exception_handler(RAGError)
async def rag_error_handler(request: Request, exc: RAGError):
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request failed",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
        error=exc.message,
    )
    return _error_response(
        exc.status_code,
        ErrorResponse(
            code=exc.code,
            message=exc.message,
            document_id=exc.document_id,
            question=exc.question,
        ),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
        for error in exc.errors()
    )
    logger.warning("request validation failed", path=request.url.path, error=details)
    return _error_response(
        400, ErrorResponse(code=ValidationError.code, message=f"Invalid request: {details}")
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error", path=request.url.path)
    return _error_response(
        500, ErrorResponse(code="INTERNAL_ERROR", message="An unexpected error occurred")
    )


def _event_stream(events) -> StreamingResponse:
    return StreamingResponse(sse_stream(events), media_type="text/event-stream", headers=SSE_HEADERS)


# --- Health Endpoints ---


@app.get("/health", response_model=HealthResponse)
def health():
    """Liveness check."""
    return HealthResponse(status="healthy")


@app.get("/ready", response_model=HealthResponse)
def ready(settings: Settings = Depends(get_app_settings)):
    """Readiness check - verifies database connectivity when postgres is configured."""
    checks = {}
    if settings.uses_postgres:
        checks["database"] = database is not None and database.ping()

    status = "healthy" if all(checks.values()) else "unhealthy"
    return HealthResponse(status=status, checks=checks)


# --- RAG Endpoints ---


@app.post("/rag/ingest", response_model=IngestResponse)
def ingest(
    file: UploadFile = File(...),
    document_id: str | None = Form(None, alias="documentId"),
    description: str | None = Form(None),
    pipeline: RAGIngestionPipeline = Depends(get_ingestion_pipeline),
    settings: Settings = Depends(get_app_settings),
):
    """Ingest an uploaded document: parse, chunk, embed and record it."""
    file_name = file.filename or "unknown"
    data = file.file.read(settings.max_upload_size + 1)
    if len(data) > settings.max_upload_size:
        raise PayloadTooLargeError(
            f"File too large. Maximum size is {settings.max_upload_size} bytes",
            document_id=document_id,
        )

    result = pipeline.ingest(
        data,
        file_name,
        file_size_bytes=len(data),
        requested_id=document_id,
        description=description,
    )
    return IngestResponse(
        message=f"Document ingested into {result.chunks_count} chunks",
        chunk_count=result.chunks_count,
        document_id=result.document.id,
        file_name=result.document.file_name,
    )


@app.post("/rag/ask", response_model=AskResponse)
def ask(request: AskRequest, assistant: RAGAssistant = Depends(get_rag_assistant)):
    """Answer a question from the ingested documents."""
    result = assistant.answer(request.question, request.document_id)
    return AskResponse(
        message="Answer generated" if result.found else "No relevant documents found",
        answer=result.answer,
        original_question=result.question,
        document_id=result.document_id,
        chunks_used=result.chunks_used,
        found=result.found,
        sources=[SourceResponse(**s.model_dump()) for s in result.sources],
    )


@app.post("/rag/ask/stream")
def ask_stream(request: AskRequest, assistant: RAGAssistant = Depends(get_rag_assistant)):
    """Answer a question as a Server-Sent Events token stream."""
    return _event_stream(assistant.stream_answer(request.question, request.document_id))


@app.post("/rag/search", response_model=SearchResponse)
def search(
    request: SearchRequest,
    retriever: RAGRetriever = Depends(get_retriever),
    settings: Settings = Depends(get_app_settings),
):
    """Raw retrieval without generation, for debugging relevance."""
    max_results = settings.search_max_results if request.max_results is None else request.max_results
    min_score = settings.rag_min_score if request.min_score is None else request.min_score

    result = retriever.search_relevant_content(
        request.question, max_results, min_score, request.document_id
    )
    return SearchResponse(
        message=f"Found {len(result.chunks)} relevant chunks",
        relevant_content=result.context,
        result_count=len(result.chunks),
        min_score=min_score,
        max_results=max_results,
        document_id=result.document_id,
        results=[
            SearchResultItem(
                text=chunk.text,
                score=chunk.score,
                file_name=chunk.source_file_name,
                document_id=chunk.document_id,
                chunk_index=chunk.chunk_index,
            )
            for chunk in result.chunks
        ],
    )


@app.get("/rag/documents", response_model=DocumentListResponse)
def list_documents(store: DocumentMetadataStore = Depends(get_metadata_store)):
    """List active documents, most recently uploaded first."""
    records = store.list_active()
    return DocumentListResponse(
        documents=[DocumentResponse.from_record(r) for r in records],
        total_count=len(records),
    )


@app.get("/rag/documents/{document_id}", response_model=DocumentDetailResponse)
def get_document(document_id: str, store: DocumentMetadataStore = Depends(get_metadata_store)):
    record = store.get(document_id)
    if record is None:
        raise NotFoundError(f"Document not found: {document_id}", document_id=document_id)
    return DocumentDetailResponse(document=DocumentResponse.from_record(record))


@app.delete("/rag/documents/{document_id}", response_model=DocumentDetailResponse)
def delete_document(document_id: str, store: DocumentMetadataStore = Depends(get_metadata_store)):
    """Soft delete: the record becomes inactive, its vectors stay in the vector store."""
    record = store.soft_delete(document_id)
    return DocumentDetailResponse(
        message=f"Document deactivated: {document_id}",
        document=DocumentResponse.from_record(record),
    )


@app.get("/rag/stats", response_model=StatsResponse)
def stats(store: DocumentMetadataStore = Depends(get_metadata_store)):
    return StatsResponse(
        active_documents=store.count_active(),
        total_chunks=store.sum_active_chunks(),
    )


# --- Assistant Endpoints ---


@app.get("/ai/chat", response_model=AIResponse)
def ai_chat(message: str = Query(...), assistant: Assistant = Depends(get_assistant)):
    return AIResponse(response=assistant.chat(message))


@app.get("/ai/chat-with-system", response_model=AIResponse)
def ai_chat_with_system(message: str = Query(...), assistant: Assistant = Depends(get_assistant)):
    return AIResponse(response=assistant.chat_with_system(message))


@app.get("/ai/explain", response_model=AIResponse)
def ai_explain(
    role: str = Query(...), topic: str = Query(...), assistant: Assistant = Depends(get_assistant)
):
    return AIResponse(response=assistant.explain(role, topic))


@app.post("/ai/code-review", response_model=AIResponse)
def ai_code_review(request: CodeReviewRequest, assistant: Assistant = Depends(get_assistant)):
    return AIResponse(response=assistant.review_code(request.language, request.code))


@app.get("/ai/translate", response_model=AIResponse)
def ai_translate(
    source_lang: str = Query(..., alias="from"),
    target_lang: str = Query(..., alias="to"),
    text: str = Query(...),
    assistant: Assistant = Depends(get_assistant),
):
    return AIResponse(response=assistant.translate(source_lang, target_lang, text))


@app.post("/ai/summarize", response_model=AIResponse)
def ai_summarize(request: SummarizeRequest, assistant: Assistant = Depends(get_assistant)):
    return AIResponse(response=assistant.summarize(request.text, request.max_words))


@app.post("/ai/sql", response_model=AIResponse)
def ai_sql(request: SqlRequest, assistant: Assistant = Depends(get_assistant)):
    return AIResponse(response=assistant.generate_sql(request.table_name, request.request))


@app.post("/ai/sentiment", response_model=AIResponse)
def ai_sentiment(request: TextRequest, assistant: Assistant = Depends(get_assistant)):
    return AIResponse(response=assistant.analyze_sentiment(request.text))


@app.get("/ai/blog", response_model=AIResponse)
def ai_blog(topic: str = Query(...), assistant: Assistant = Depends(get_assistant)):
    return AIResponse(response=assistant.write_blog_post(topic))


# --- Conversation Memory Endpoints ---


@app.post("/ai/memory/chat", response_model=MemoryResponse)
def memory_chat(
    request: MemoryChatRequest,
    client: ClaudeClient = Depends(get_chat_client),
    stores: dict[str, ChatMemoryStore] = Depends(get_memory_stores),
    settings: Settings = Depends(get_app_settings),
):
    """Chat with conversation memory keyed by ``memoryId``."""
    persona = request.persona.replace("-", "_")
    if persona not in PERSONAS:
        raise ValidationError(
            f"Unknown persona '{request.persona}'; expected one of {', '.join(sorted(PERSONAS))}"
        )
    params = {}
    if persona == "language_tutor":
        params["language"] = request.language or "English"

    store = _memory_store(stores, request.storage)
    assistant = ConversationalAssistant(
        client, store, registry, settings.chat_memory_max_messages
    )

    start = time.perf_counter()
    reply = assistant.chat(request.memory_id, request.message, persona=persona, **params)
    duration_ms = (time.perf_counter() - start) * 1000

    return MemoryResponse(
        response=reply,
        memory_id=request.memory_id,
        duration_ms=round(duration_ms, 2),
        storage_type=request.storage.lower(),
    )


@app.delete("/ai/memory/{memory_id}", response_model=MemoryResponse)
def memory_forget(
    memory_id: str,
    storage: str = Query("memory"),
    stores: dict[str, ChatMemoryStore] = Depends(get_memory_stores),
):
    """Forget a conversation."""
    start = time.perf_counter()
    store = _memory_store(stores, storage)
    store.delete_messages(memory_id)
    duration_ms = (time.perf_counter() - start) * 1000
    return MemoryResponse(
        response=f"Conversation deleted: {memory_id}",
        memory_id=memory_id,
        duration_ms=round(duration_ms, 2),
        storage_type=storage.lower(),
    )


# --- Streaming Endpoints ---


@app.get("/ai/stream/chat")
def stream_chat(message: str = Query(..., min_length=1), assistant: Assistant = Depends(get_assistant)):
    return _event_stream(assistant.stream("chat", message=message))


@app.get("/ai/stream/blog")
def stream_blog(topic: str = Query(..., min_length=1), assistant: Assistant = Depends(get_assistant)):
    return _event_stream(assistant.stream("blog", topic=topic))


@app.post("/ai/stream/code")
def stream_code(request: CodeRequest, assistant: Assistant = Depends(get_assistant)):
    return _event_stream(
        assistant.stream("stream_code", language=request.language, description=request.description)
    )


@app.get("/ai/stream/story")
def stream_story(
    genre: str = Query(..., min_length=1),
    topic: str = Query(..., min_length=1),
    assistant: Assistant = Depends(get_assistant),
):
    return _event_stream(assistant.stream("stream_story", genre=genre, topic=topic))


@app.post("/ai/stream/analyze")
def stream_analyze(request: TextRequest, assistant: Assistant = Depends(get_assistant)):
    return _event_stream(assistant.stream("stream_analyze", text=request.text))


@app.get("/ai/stream/lecture")
def stream_lecture(
    topic: str = Query(..., min_length=1),
    audience: str = Query(..., min_length=1),
    assistant: Assistant = Depends(get_assistant),
):
    return _event_stream(assistant.stream("stream_lecture", topic=topic, audience=audience))


@app.post("/ai/stream/translate")
def stream_translate(request: TranslateDocumentRequest, assistant: Assistant = Depends(get_assistant)):
    return _event_stream(
        assistant.stream("stream_translate", text=request.text, target_lang=request.target_lang)
    )
