"""
RESPONSE FORMATTER
==================

Builds OpenAI-compatible response bodies from a finished backend result.

  build_response(...)      - the chat.completion object (non-streaming).
  build_stream_chunks(...) - the two chat.completion.chunk objects of a stream.
  stream_events(...)       - the SSE lines for a stream, ending with "data: [DONE]".
  new_completion_id(kind)  - "chatcmpl-<kind>-<epoch millis>".

The backend result is always complete before anything is formatted, so a
"stream" is just the same content in chunk shape: one chunk with the whole
text, one empty chunk with finish_reason "stop", then the [DONE] sentinel.

Usage numbers are character counts, not tokens.
"""

import json
import time
from typing import Iterator, List, Optional

from llm_server.models import (
    AssistantMessage,
    ChatCompletion,
    ChatCompletionChunk,
    Choice,
    ChunkChoice,
    Usage,
)

STREAM_DONE = "data: [DONE]\n\n"


def new_completion_id(kind: str) -> str:
    """Completion ids only need to be unique within one process run."""
    return f"chatcmpl-{kind}-{int(time.time() * 1000)}"


def build_response(
    completion_id: str,
    model: str,
    content: str,
    input_length: int,
    created: Optional[int] = None,
) -> ChatCompletion:
    """Non-streaming chat.completion with character-count usage."""
    return ChatCompletion(
        id=completion_id,
        created=created if created is not None else int(time.time()),
        model=model,
        choices=[Choice(message=AssistantMessage(content=content))],
        usage=Usage(
            prompt_tokens=input_length,
            completion_tokens=len(content),
            total_tokens=input_length + len(content),
        ),
    )


def build_stream_chunks(
    completion_id: str,
    model: str,
    content: str,
    created: Optional[int] = None,
) -> List[ChatCompletionChunk]:
    """Content chunk (finish_reason None) followed by the finish chunk (finish_reason 'stop')."""
    created = created if created is not None else int(time.time())
    return [
        ChatCompletionChunk(
            id=completion_id,
            created=created,
            model=model,
            choices=[ChunkChoice(delta={"role": "assistant", "content": content}, finish_reason=None)],
        ),
        ChatCompletionChunk(
            id=completion_id,
            created=created,
            model=model,
            choices=[ChunkChoice(delta={}, finish_reason="stop")],
        ),
    ]


def stream_events(completion_id: str, model: str, content: str) -> Iterator[str]:
    """Yield the SSE payload: one 'data:' line per chunk, then the [DONE] sentinel."""
    for chunk in build_stream_chunks(completion_id, model, content):
        yield f"data: {json.dumps(chunk.model_dump())}\n\n"
    yield STREAM_DONE
