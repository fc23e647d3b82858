"""Response shapes that may carry usage, and the parsers that find it.

Usage shows up in different envelopes depending on the API surface (chat
completions, legacy completions, embeddings) and on whether the response is
buffered or streamed. Each shape is tried in a fixed order; a shape that
doesn't validate just means "try the next one". Most responses carry no
usage at all, so nothing here raises.
"""

from pydantic import BaseModel, ConfigDict, NonNegativeInt


class Usage(BaseModel):
    """Usage statistics from an OpenAI-style API response."""

    # Strict: "42" or true are not token counts
    model_config = ConfigDict(frozen=True, strict=True)

    prompt_tokens: NonNegativeInt | None = None
    completion_tokens: NonNegativeInt | None = None
    total_tokens: NonNegativeInt | None = None

    def log_format(self) -> str:
        """Returns a formatted string for logging."""
        return (
            f"prompt_tokens={self.prompt_tokens} "
            f"completion_tokens={self.completion_tokens} "
            f"total_tokens={self.total_tokens}"
        )


class CompletionResponse(BaseModel):
    """Non-streaming completion response (chat or legacy)."""

    id: str | None = None
    object: str | None = None
    created: int | None = None
    model: str | None = None
    usage: Usage | None = None


class Delta(BaseModel):
    role: str | None = None
    content: str | None = None


class Choice(BaseModel):
    index: int | None = None
    delta: Delta | None = None
    finish_reason: str | None = None


class CompletionChunk(BaseModel):
    """One server-sent event of a streaming completion.

    Usage only appears on the final chunk, and only when the caller asked
    for it (stream_options.include_usage).
    """

    id: str | None = None
    object: str | None = None
    created: int | None = None
    model: str | None = None
    choices: list[Choice] | None = None
    usage: Usage | None = None


class EmbeddingData(BaseModel):
    # A string when the caller asked for encoding_format=base64
    embedding: list[float] | str | None = None
    index: int | None = None
    object: str | None = None


class EmbeddingsResponse(BaseModel):
    data: list[EmbeddingData]
    model: str | None = None
    usage: Usage | None = None


BODY_SHAPES: tuple[type[BaseModel], ...] = (CompletionResponse, EmbeddingsResponse)
CHUNK_SHAPES: tuple[type[BaseModel], ...] = (CompletionChunk, CompletionResponse)

SSE_DATA_PREFIX = "data: "
SSE_DONE = "[DONE]"


def _first_usage(data: str | bytes, shapes: tuple[type[BaseModel], ...]) -> Usage | None:
    for shape in shapes:
        try:
            return shape.model_validate_json(data).usage
        except ValueError:  # ValidationError, or bytes that aren't UTF-8
            continue
    return None


def try_parse_usage_from_body(body: bytes) -> Usage | None:
    """Attempts to parse usage from a complete JSON body (non-streaming)."""
    return _first_usage(body, BODY_SHAPES)


def try_parse_usage_from_chunk(chunk: str) -> Usage | None:
    """Attempts to parse usage from the JSON payload of one SSE line.

    Returns None if the chunk doesn't contain usage (most chunks don't).
    """
    json_text = chunk.removeprefix(SSE_DATA_PREFIX)
    if json_text == SSE_DONE:
        return None
    return _first_usage(json_text, CHUNK_SHAPES)


def parse_usage_from_sse_chunk(chunk: bytes) -> Usage | None:
    """Parse usage from a raw event-stream chunk, treated as a single line."""
    try:
        text = chunk.decode("utf-8")
    except UnicodeDecodeError:
        return None

    text = text.strip().removeprefix(SSE_DATA_PREFIX)
    if text == SSE_DONE:
        return None

    return try_parse_usage_from_chunk(text)


def is_usage_tracked_path(path: str) -> bool:
    """Check if a request path should have usage tracked (completions/embeddings).

    Deliberately loose so versioned prefixes (/v1, /v2, ...) still match.
    """
    return (
        "/chat/completions" in path
        or path.endswith("completions")
        or path.endswith("/embeddings")
    )
