"""
MESSAGE NORMALIZER
==================

Turns the heterogeneous `messages` list of a chat-completion request into flat
text. Content may be a plain string or a list of typed parts; only parts of
type "text" count. Nothing here raises: malformed messages degrade to "".

  extract_user_text(messages)     - all user messages, newline-joined, in order.
  extract_system_prompt(messages) - text of the FIRST system message, or None.
  extract_dictated_text(text)     - the text inside the first ``` fenced block, if any.
"""

import re
from typing import Any, Optional, Sequence

# Clients like MacWhisper wrap the raw dictation in a prompt, fencing the literal
# dictation with triple backticks. Only the first fenced block counts.
DICTATION_FENCE = re.compile(r"```\n?([\s\S]*?)\n?```")


def _field(message: Any, name: str) -> Any:
    """Read a field from a ChatMessage model or a plain dict."""
    if isinstance(message, dict):
        return message.get(name)
    return getattr(message, name, None)


def _content_text(content: Any) -> Optional[str]:
    """String content verbatim; list content as its text parts joined with newlines; else None."""
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        texts = []
        for part in content:
            if _field(part, "type") != "text":
                continue
            text = _field(part, "text")
            texts.append(text if isinstance(text, str) else "")
        return "\n".join(texts)
    return None


def extract_user_text(messages: Sequence[Any]) -> str:
    """Join the text of every user message with newlines, preserving order."""
    if not isinstance(messages, (list, tuple)):
        return ""
    parts = []
    for message in messages:
        if _field(message, "role") != "user":
            continue
        parts.append(_content_text(_field(message, "content")) or "")
    return "\n".join(parts)


def extract_system_prompt(messages: Sequence[Any]) -> Optional[str]:
    """Return the text of the first system message, or None if there is none."""
    if not isinstance(messages, (list, tuple)):
        return None
    for message in messages:
        if _field(message, "role") == "system":
            return _content_text(_field(message, "content"))
    return None


def extract_dictated_text(text: str) -> str:
    """Return the trimmed content of the first fenced block, or the whole text if unfenced."""
    match = DICTATION_FENCE.search(text)
    if match:
        return match.group(1).strip()
    return text
