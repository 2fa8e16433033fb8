"""
CLAUDE SERVICE MODULE
=====================

Generation backend that shells out to the Claude CLI:

    claude -p <prompt> --model <model> [--system-prompt <system prompt>]

The command is built as an argument vector and run without a shell, so the
dictated text is never interpolated into a command line.

MODEL CHOICE:
  The request's model is used only if it is one of VALID_CLAUDE_MODELS; anything
  else (missing, "gpt-4o", "claude") is replaced with DEFAULT_CLAUDE_MODEL. The
  result always reports the model that was actually used.

LIMITS:
  The CLI gets CLAUDE_TIMEOUT_SECONDS; on expiry it is killed and the request
  fails. stdout is read incrementally and the CLI is killed as soon as it has
  written more than CLAUDE_MAX_OUTPUT_BYTES, so a runaway answer never sits in
  memory in full. Failures raise BackendError and are not retried.

The CLI call blocks, so generate() runs it in a worker thread: only the request
that is waiting for Claude is suspended, not the server.
"""

import logging
import subprocess
import threading
from typing import Callable, List, Optional

from fastapi.concurrency import run_in_threadpool

from llm_server.services.backend import Backend, BackendError, BackendResult
from config import (
    CLAUDE_COMMAND,
    CLAUDE_MAX_OUTPUT_BYTES,
    CLAUDE_TIMEOUT_SECONDS,
    DEFAULT_CLAUDE_MODEL,
    VALID_CLAUDE_MODELS,
)

logger = logging.getLogger("LLM-Server")

# run_capped signature: runner(args, timeout=..., max_output_bytes=...). Tests pass a stub.
Runner = Callable[..., subprocess.CompletedProcess]

READ_CHUNK_BYTES = 64 * 1024


class OutputLimitExceeded(Exception):
    """The child wrote more than the allowed number of bytes to stdout and was killed."""

    def __init__(self, limit: int):
        super().__init__(f"output exceeded {limit} bytes")
        self.limit = limit


def run_capped(args: List[str], timeout: float, max_output_bytes: int) -> subprocess.CompletedProcess:
    """
    Like subprocess.run(args, capture_output=True, timeout=timeout), but stdout is
    read in chunks and the child is killed once it exceeds max_output_bytes.

    Raises subprocess.TimeoutExpired, OutputLimitExceeded or OSError (could not start).
    stdout and stderr are returned as UTF-8 text.
    """
    stdout = bytearray()
    stderr = bytearray()
    exceeded = threading.Event()

    with subprocess.Popen(
        args,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    ) as process:

        def read_stdout():
            for chunk in iter(lambda: process.stdout.read1(READ_CHUNK_BYTES), b""):
                stdout.extend(chunk)
                if len(stdout) > max_output_bytes:
                    exceeded.set()
                    process.kill()
                    return

        def read_stderr():
            # Only the head of stderr is kept; the rest is drained so the child never blocks.
            for chunk in iter(lambda: process.stderr.read1(READ_CHUNK_BYTES), b""):
                if len(stderr) < max_output_bytes:
                    stderr.extend(chunk)

        readers = [
            threading.Thread(target=read_stdout, daemon=True),
            threading.Thread(target=read_stderr, daemon=True),
        ]
        for reader in readers:
            reader.start()

        try:
            returncode = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
            raise
        finally:
            for reader in readers:
                reader.join(timeout=1)

    if exceeded.is_set():
        raise OutputLimitExceeded(max_output_bytes)
    return subprocess.CompletedProcess(
        args,
        returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def resolve_model(model_hint: Optional[str], default: str = DEFAULT_CLAUDE_MODEL) -> str:
    """Return model_hint if it is an allowed Claude model, otherwise the default."""
    if model_hint and model_hint in VALID_CLAUDE_MODELS:
        return model_hint
    return default


def build_command(
    prompt: str,
    model: str,
    system_prompt: Optional[str] = None,
    command: str = CLAUDE_COMMAND,
) -> List[str]:
    """Argument vector for one non-interactive Claude CLI call."""
    args = [command, "-p", prompt, "--model", model]
    if system_prompt:
        args += ["--system-prompt", system_prompt]
    return args


# ==============================================================================
# CLAUDE BACKEND CLASS
# ==============================================================================

class ClaudeBackend(Backend):
    """Runs the Claude CLI once per request; supports session carry-over."""

    name = "claude"
    owned_by = "anthropic"
    uses_session = True

    def __init__(
        self,
        command: str = CLAUDE_COMMAND,
        default_model: str = DEFAULT_CLAUDE_MODEL,
        timeout_seconds: float = CLAUDE_TIMEOUT_SECONDS,
        max_output_bytes: int = CLAUDE_MAX_OUTPUT_BYTES,
        runner: Optional[Runner] = None,
    ):
        self.command = command
        self._default_model = resolve_model(default_model, default="haiku")
        self.timeout_seconds = timeout_seconds
        self.max_output_bytes = max_output_bytes
        self._runner = runner or run_capped

    @property
    def models(self) -> List[str]:
        return list(VALID_CLAUDE_MODELS)

    @property
    def default_model(self) -> str:
        return self._default_model

    def run(self, prompt: str, system_prompt: Optional[str], model: str) -> str:
        """Invoke the CLI synchronously and return its trimmed stdout."""
        args = build_command(prompt, model, system_prompt, command=self.command)
        try:
            completed = self._runner(
                args,
                timeout=self.timeout_seconds,
                max_output_bytes=self.max_output_bytes,
            )
        except subprocess.TimeoutExpired as e:
            raise BackendError(
                f"Claude CLI timed out after {self.timeout_seconds:g}s", backend=self.name
            ) from e
        except OutputLimitExceeded as e:
            raise BackendError(
                f"Claude CLI output exceeded {e.limit} bytes", backend=self.name
            ) from e
        except OSError as e:
            # FileNotFoundError when the CLI is not installed, PermissionError, ...
            raise BackendError(f"Could not start Claude CLI: {e}", backend=self.name) from e

        if completed.returncode != 0:
            detail = (completed.stderr or completed.stdout or "").strip()
            message = f"Claude CLI exited with code {completed.returncode}"
            if detail:
                message += f": {detail}"
            raise BackendError(message, backend=self.name)

        output = completed.stdout or ""
        if len(output.encode("utf-8")) > self.max_output_bytes:
            raise BackendError(
                f"Claude CLI output exceeded {self.max_output_bytes} bytes", backend=self.name
            )
        return output.strip()

    async def generate(
        self,
        text: str,
        system_prompt: Optional[str] = None,
        model_hint: Optional[str] = None,
    ) -> BackendResult:
        model = resolve_model(model_hint, default=self._default_model)
        if model_hint and model != model_hint:
            logger.info("Unknown Claude model %r requested, using %s", model_hint, model)
        output = await run_in_threadpool(self.run, text, system_prompt, model)
        return BackendResult(text=output, model_identifier=model)
