"""
UTILITIES PACKAGE
=================

Pure helpers used by the routes and services (no I/O, no state):

  messages   - extract user text, system prompt and dictated text from chat messages.
  responses  - chat.completion bodies and SSE chunks.
  time_info  - format_elapsed(): "12s ago" / "3m ago".
"""
