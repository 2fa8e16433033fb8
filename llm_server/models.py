"""
DATA MODELS MODULE
==================

This file defines the Pydantic models for the OpenAI-compatible subset of the
chat-completion API that this server speaks. FastAPI uses them to parse
incoming JSON and to serialize responses.

Only the fields the server actually reads or writes are modeled. Request models
are deliberately lenient: clients (MacWhisper, iOS shortcuts, curl) send all
sorts of extra fields and content shapes, and none of that may fail a request.

MODELS:
  ChatMessage            - One message of the request (role + string or list-of-parts content).
  ChatCompletionRequest  - Body of POST {prefix}/v1/chat/completions.
  ChatCompletion         - Non-streaming response body.
  ChatCompletionChunk    - One SSE chunk of a streaming response.
  ModelCard / ModelList  - Body of GET {prefix}/v1/models.
  ErrorResponse          - Body of every 500 returned by a backend route.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional

# ==============================================================================
# REQUEST MODELS
# ==============================================================================

class ChatMessage(BaseModel):
    """
    A single message in the request.

    content is either a plain string or a list of typed parts such as
    {"type": "text", "text": "..."}; anything else is tolerated and simply
    contributes no text.
    """
    model_config = ConfigDict(extra="allow")

    role: Any = None
    content: Any = None


class ChatCompletionRequest(BaseModel):
    """
    Request body for POST {prefix}/v1/chat/completions.

    - messages: The conversation; only user messages (and the first system message) are read.
    - model: Optional model hint. Unknown Claude models fall back to the default.
    - stream: If true the response is sent as text/event-stream chunks.
    """
    model_config = ConfigDict(extra="allow")

    messages: List[ChatMessage] = Field(default_factory=list)
    model: Optional[str] = None
    stream: Optional[bool] = False

    @field_validator("messages", mode="before")
    @classmethod
    def _lenient_messages(cls, value: Any) -> List[Any]:
        # Entries that are not objects become empty messages; a non-list is no messages.
        if not isinstance(value, (list, tuple)):
            return []
        return [item if isinstance(item, dict) else {} for item in value]

    @field_validator("model", mode="before")
    @classmethod
    def _lenient_model(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    @field_validator("stream", mode="before")
    @classmethod
    def _lenient_stream(cls, value: Any) -> bool:
        return value is True

# ==============================================================================
# RESPONSE MODELS
# ==============================================================================

class AssistantMessage(BaseModel):
    role: str = "assistant"
    content: str


class Choice(BaseModel):
    index: int = 0
    message: AssistantMessage
    finish_reason: str = "stop"


class Usage(BaseModel):
    """Character counts, not tokens. Clients only need plausible numbers here."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletion(BaseModel):
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[Choice]
    usage: Usage


class ChunkChoice(BaseModel):
    index: int = 0
    delta: Dict[str, str]
    finish_reason: Optional[str] = None


class ChatCompletionChunk(BaseModel):
    id: str
    object: str = "chat.completion.chunk"
    created: int
    model: str
    choices: List[ChunkChoice]


class ModelCard(BaseModel):
    id: str
    object: str = "model"
    owned_by: str


class ModelList(BaseModel):
    object: str = "list"
    data: List[ModelCard]


class ErrorDetail(BaseModel):
    message: str
    type: str = "server_error"


class ErrorResponse(BaseModel):
    error: ErrorDetail
