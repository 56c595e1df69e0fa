"""Error taxonomy shared by the RAG core, the assistants and the HTTP layer."""


class RAGError(Exception):
    """Base class for errors surfaced to API callers.

    Attributes:
        status_code: HTTP status the API layer responds with.
        code: Stable machine-readable error code.
        document_id: Document the failing operation referenced, if any.
        question: Question the failing operation was answering, if any.
    """

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        document_id: str | None = None,
        question: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.document_id = document_id
        self.question = question


class ValidationError(RAGError):
    """Empty file, empty question, out-of-range parameter or malformed body."""

    status_code = 400
    code = "VALIDATION_ERROR"


class PayloadTooLargeError(ValidationError):
    """Uploaded file exceeds the configured size limit."""

    status_code = 413
    code = "PAYLOAD_TOO_LARGE"


class DuplicateDocumentError(RAGError):
    """A document id is already taken by an existing record."""

    status_code = 409
    code = "DUPLICATE_DOCUMENT"


class NotFoundError(RAGError):
    """No document record, active or inactive, has the requested id."""

    status_code = 404
    code = "DOCUMENT_NOT_FOUND"


class ParseError(RAGError):
    """The document parser could not turn the uploaded bytes into text."""

    code = "PARSE_ERROR"


class VectorStoreError(RAGError):
    code = "VECTOR_STORE_ERROR"


class MetadataStoreError(RAGError):
    code = "METADATA_STORE_ERROR"


class EmbeddingError(RAGError):
    """The embedding provider call failed (timeout, quota, network, bad shape)."""

    status_code = 502
    code = "EMBEDDING_ERROR"


class GenerationError(RAGError):
    """The generation provider call failed or returned an unusable response."""

    status_code = 502
    code = "GENERATION_ERROR"


class ConfigurationError(RAGError):
    """Invalid or inconsistent configuration detected at startup."""

    code = "CONFIGURATION_ERROR"


class PromptTemplateError(ConfigurationError):
    """A prompt template's placeholders do not match its declared parameters."""

    code = "PROMPT_TEMPLATE_ERROR"


class ChatMemoryError(RAGError):
    """The conversation memory backend could not be read or written."""

    code = "CHAT_MEMORY_ERROR"
