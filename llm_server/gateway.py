"""
GATEWAY ROUTES
==============

Builds one APIRouter per backend. Each router is mounted under the backend's
prefix (/claude, /libretranslate) and exposes the OpenAI-compatible pair:

  POST /v1/chat/completions - normalize messages, run the backend, answer as
                              chat.completion or as an SSE stream.
  GET  /v1/models           - the backend's fixed model list.

SESSION CARRY-OVER (backends with uses_session=True, i.e. Claude):
  1. Enter a session turn: if the session is active its exchanges are carried
     over, otherwise a fresh session starts.
  2. The carried-over exchanges are prepended to the input as prompt text.
  3. After a successful backend call, the dictated text and the raw output are
     stored as the next exchange pair.

Translation requests never read or write the session.

ERRORS:
  Backend failures become HTTP 500 with {"error": {"message", "type": "server_error"}}.
  The backend result is always complete before the first byte of a response is
  written, so streaming requests fail the same clean way.
"""

import logging
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse

from llm_server.models import (
    ChatCompletionRequest,
    ErrorDetail,
    ErrorResponse,
    ModelCard,
    ModelList,
)
from llm_server.services.backend import Backend, BackendError, BackendResult
from llm_server.services.session_service import (
    SessionContext,
    SessionStore,
    build_prompt,
)
from llm_server.utils.messages import (
    extract_dictated_text,
    extract_system_prompt,
    extract_user_text,
)
from llm_server.utils.responses import build_response, new_completion_id, stream_events

logger = logging.getLogger("LLM-Server")

SEPARATOR = "─" * 60
CONTEXT_LOG_LIMIT = 4
CONTEXT_LOG_WIDTH = 60


# -----------------------------------------------------------------------------
# LOGGING HELPERS
# -----------------------------------------------------------------------------

def _indent(text: str, prefix: str = "  ") -> str:
    return prefix + text.replace("\n", "\n" + prefix)


def log_session_request(
    dictated: str,
    result: BackendResult,
    context: Optional[SessionContext],
    stats: dict,
) -> None:
    """Log session status, the tail of the carried-over context, input and output."""
    lines = [SEPARATOR]
    if context is not None:
        lines.append(
            f"● Session │ carry-over │ {stats['message_count']} msgs │ last: {stats['time_since_last_activity']}"
        )
    else:
        lines.append("○ Session │ new session")

    if context is not None and context.exchanges:
        lines.append(SEPARATOR)
        lines.append("Context:")
        for exchange in context.exchanges[-CONTEXT_LOG_LIMIT:]:
            arrow = "  ← " if exchange.role == "user" else "  → "
            content = exchange.content
            if len(content) > CONTEXT_LOG_WIDTH:
                content = content[:CONTEXT_LOG_WIDTH] + "..."
            lines.append(arrow + content)
        if len(context.exchanges) > CONTEXT_LOG_LIMIT:
            lines.append(f"  ... and {len(context.exchanges) - CONTEXT_LOG_LIMIT} more")

    lines.append(SEPARATOR)
    lines.append("← Input")
    lines.append(_indent(dictated))
    lines.append(f"→ Output ({result.model_identifier})")
    lines.append(_indent(result.text))
    lines.append(SEPARATOR)
    logger.info("\n" + "\n".join(lines))


def log_io(backend_name: str, dictated: str, result: BackendResult) -> None:
    """Log input and output of a stateless backend."""
    label = f"OUTPUT ({backend_name}{', passthrough' if result.passthrough else ''})"
    logger.info(
        "\n┌─ INPUT\n%s\n└─\n┌─ %s\n%s\n└─",
        _indent(dictated, "│ "),
        label,
        _indent(result.text, "│ "),
    )


# -----------------------------------------------------------------------------
# RESPONSE HELPERS
# -----------------------------------------------------------------------------

def error_response(message: str, status_code: int = 500) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def completion_response(
    kind: str,
    model_label: str,
    content: str,
    input_length: int,
    stream: bool,
):
    completion_id = new_completion_id(kind)
    if stream:
        return StreamingResponse(
            stream_events(completion_id, model_label, content),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )
    return build_response(completion_id, model_label, content, input_length)


# -----------------------------------------------------------------------------
# ROUTER FACTORY
# -----------------------------------------------------------------------------

def router(backend: Backend, session_store: Optional[SessionStore] = None) -> APIRouter:
    """Build the chat-completions + models router for one backend."""
    api = APIRouter()
    use_session = backend.uses_session and session_store is not None

    async def run_with_session(text: str, system_prompt: Optional[str], model: Optional[str], dictated: str):
        async with session_store.turn() as turn:
            stats = session_store.stats()
            prompt = build_prompt(text, turn.context)
            result = await backend.generate(prompt, system_prompt, model)
            turn.record(dictated, result.text)
        log_session_request(dictated, result, turn.context, stats)
        return result

    @api.post("/v1/chat/completions")
    async def chat_completions(request: ChatCompletionRequest):
        """OpenAI-compatible chat completion backed by this router's backend."""
        text = extract_user_text(request.messages)
        system_prompt = extract_system_prompt(request.messages)
        dictated = extract_dictated_text(text)

        try:
            if use_session:
                result = await run_with_session(text, system_prompt, request.model, dictated)
            else:
                result = await backend.generate(text, system_prompt, request.model)
                log_io(backend.name, dictated, result)
        except BackendError as e:
            logger.error(f"{backend.name} error: {e.message}", exc_info=True)
            return error_response(e.message)
        except Exception as e:
            logger.error(f"Unexpected {backend.name} error: {e}", exc_info=True)
            return error_response(str(e))

        return completion_response(
            kind=backend.name,
            model_label=request.model or backend.name,
            content=result.text,
            input_length=len(text),
            stream=bool(request.stream),
        )

    @api.get("/v1/models", response_model=ModelList)
    async def list_models():
        """The fixed list of models this backend accepts."""
        return ModelList(
            data=[ModelCard(id=model_id, owned_by=backend.owned_by) for model_id in backend.models]
        )

    return api
