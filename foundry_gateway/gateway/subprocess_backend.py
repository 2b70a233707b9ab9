"""Subprocess backend — runs a local LLM CLI tool for one request.

Lifecycle: Idle → Spawned → (Streaming | TimedOut | OutputExceeded | Exited) → Done

  - The prompt reaches the tool either as an argument (``{{prompt}}`` in the
    template) or on stdin, never both.
  - stdout and stderr are drained concurrently into a shared byte budget;
    crossing it kills the child and discards everything captured.
  - One deadline covers the whole run; on expiry the child is killed.
  - The child is always reaped before ``execute`` returns or raises.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shlex

from foundry_gateway.core.config import MODEL_PLACEHOLDER, PROMPT_PLACEHOLDER
from foundry_gateway.core.exceptions import (
    ExecutionFailedError,
    ExecutionTimeoutError,
    OutputExceededError,
)
from foundry_gateway.gateway.backends import BaseBackend
from foundry_gateway.gateway.types import ExecutionRequest, ExecutionResult, ProviderKind

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024


def parse_args(raw: str | None) -> list[str]:
    """Parse an argument template from configuration.

    Accepts a JSON array (``["exec", "{{prompt}}"]``) or a shell-style string
    (``exec --model {{model}}``). Raises ValueError on malformed input.
    """
    if not raw or not raw.strip():
        return []
    trimmed = raw.strip()
    if trimmed.startswith("["):
        parsed = json.loads(trimmed)
        if not isinstance(parsed, list):
            raise ValueError("argument template must be a JSON array")
        return [str(item) for item in parsed]
    return shlex.split(trimmed)


def validate_template(args: list[str]) -> None:
    for placeholder in (PROMPT_PLACEHOLDER, MODEL_PLACEHOLDER):
        if args.count(placeholder) > 1:
            raise ValueError(f"{placeholder} may appear at most once")


class BoundedCapture:
    """Collects stdout/stderr under one shared byte ceiling."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        self.total_bytes = 0
        self.stdout = bytearray()
        self.stderr = bytearray()

    def add(self, chunk: bytes, sink: bytearray) -> None:
        self.total_bytes += len(chunk)
        if self.max_bytes > 0 and self.total_bytes > self.max_bytes:
            raise OutputExceededError("Output exceeded MAX_OUTPUT_BYTES.")
        sink.extend(chunk)

    async def drain(self, stream: asyncio.StreamReader, sink: bytearray) -> None:
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return
            self.add(chunk, sink)


async def _feed_stdin(stdin: asyncio.StreamWriter, data: bytes) -> None:
    try:
        stdin.write(data)
        await stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        # The child closed its input early; its exit status decides the outcome.
        logger.debug("Child closed stdin before the prompt was fully written")
    finally:
        stdin.close()


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Kill the child if it is still running and reap it. Safe to repeat."""
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


class SubprocessBackend(BaseBackend):
    """Runs ``command`` with a templated argument list."""

    kind = ProviderKind.SUBPROCESS

    def __init__(self, provider: str, command: str, args: list[str] | None = None, max_output_bytes: int = 1_000_000):
        super().__init__(provider)
        self.command = command
        self.args = list(args or [])
        validate_template(self.args)
        self.max_output_bytes = max_output_bytes

    @property
    def pipes_prompt(self) -> bool:
        return PROMPT_PLACEHOLDER not in self.args

    def build_argv(self, prompt: str, model: str | None) -> list[str]:
        """Substitute placeholders in the argument template.

        Without a model the ``{{model}}`` slot is dropped together with the
        flag right before it (``--model {{model}}``).
        """
        args = list(self.args)
        if MODEL_PLACEHOLDER in args:
            index = args.index(MODEL_PLACEHOLDER)
            if model:
                args[index] = model
            else:
                start = index - 1 if index > 0 and args[index - 1].startswith("-") else index
                del args[start : index + 1]
        if PROMPT_PLACEHOLDER in args:
            args[args.index(PROMPT_PLACEHOLDER)] = prompt
        return [self.command, *args]

    async def execute(self, request: ExecutionRequest, timeout: float) -> ExecutionResult:
        prompt = request.prompt
        argv = self.build_argv(prompt, request.model)
        stdin_data = prompt.encode("utf-8") if self.pipes_prompt else None

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning("Failed to start %s (%s): %s", self.provider, self.command, e)
            raise ExecutionFailedError(f"Failed to start {self.command}: {e}")

        capture = BoundedCapture(self.max_output_bytes)
        try:
            returncode = await asyncio.wait_for(self._communicate(proc, capture, stdin_data), timeout)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.1fs (pid %s)", self.provider, timeout, proc.pid)
            raise ExecutionTimeoutError(f"{self.provider} timed out after {timeout:g}s.")
        except OutputExceededError:
            logger.warning("%s exceeded %d output bytes (pid %s)", self.provider, self.max_output_bytes, proc.pid)
            raise
        finally:
            await _terminate(proc)

        stdout = capture.stdout.decode("utf-8", errors="replace").strip()
        stderr = capture.stderr.decode("utf-8", errors="replace").strip()

        if returncode != 0:
            logger.warning("%s exited with code %d", self.provider, returncode)
            raise ExecutionFailedError(stderr or f"{self.provider} exited with code {returncode}.", exit_code=returncode)

        return ExecutionResult(text=stdout, model=request.model, exit_code=returncode)

    async def _communicate(
        self,
        proc: asyncio.subprocess.Process,
        capture: BoundedCapture,
        stdin_data: bytes | None,
    ) -> int:
        tasks = [
            asyncio.ensure_future(capture.drain(proc.stdout, capture.stdout)),
            asyncio.ensure_future(capture.drain(proc.stderr, capture.stderr)),
        ]
        if stdin_data is not None:
            tasks.append(asyncio.ensure_future(_feed_stdin(proc.stdin, stdin_data)))
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
        return await proc.wait()
