"""Tests for the subprocess execution backend (real child processes)."""

from __future__ import annotations

import asyncio
import sys
import time

import pytest

from foundry_gateway.core.exceptions import (
    ExecutionFailedError,
    ExecutionTimeoutError,
    OutputExceededError,
)
from foundry_gateway.gateway.subprocess_backend import (
    BoundedCapture,
    SubprocessBackend,
    _terminate,
    parse_args,
    validate_template,
)
from foundry_gateway.gateway.types import ExecutionRequest, Message


def _request(prompt: str = "hello there", model: str | None = None) -> ExecutionRequest:
    return ExecutionRequest(provider="codex", messages=(Message("user", prompt),), model=model)


def _backend(script: str, *extra: str, max_output_bytes: int = 1_000_000) -> SubprocessBackend:
    return SubprocessBackend(
        provider="codex",
        command=sys.executable,
        args=["-c", script, *extra],
        max_output_bytes=max_output_bytes,
    )


# ==========================================================================
# Argument templates
# ==========================================================================


class TestArgumentTemplates:
    def test_parse_json_array(self):
        assert parse_args('["exec", "--model", "{{model}}", "{{prompt}}"]') == ["exec", "--model", "{{model}}", "{{prompt}}"]

    def test_parse_shell_string(self):
        assert parse_args("exec --json '{{prompt}}'") == ["exec", "--json", "{{prompt}}"]

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_parse_empty(self, raw):
        assert parse_args(raw) == []

    def test_parse_rejects_malformed_json(self):
        with pytest.raises(ValueError):
            parse_args('["exec", ')

    def test_duplicate_placeholder_rejected(self):
        with pytest.raises(ValueError, match="at most once"):
            validate_template(["{{prompt}}", "--again", "{{prompt}}"])

    def test_backend_validates_template(self):
        with pytest.raises(ValueError):
            SubprocessBackend(provider="codex", command="codex", args=["{{model}}", "{{model}}"])

    def test_prompt_placeholder_substituted(self):
        backend = SubprocessBackend(provider="claude", command="claude", args=["-p", "{{prompt}}"])
        assert backend.pipes_prompt is False
        assert backend.build_argv("write a poem", None) == ["claude", "-p", "write a poem"]

    def test_without_prompt_placeholder_prompt_is_piped(self):
        backend = SubprocessBackend(provider="codex", command="codex", args=["exec", "-"])
        assert backend.pipes_prompt is True
        assert backend.build_argv("write a poem", None) == ["codex", "exec", "-"]

    def test_model_placeholder_substituted(self):
        backend = SubprocessBackend(provider="codex", command="codex", args=["exec", "--model", "{{model}}"])
        assert backend.build_argv("p", "o3") == ["codex", "exec", "--model", "o3"]

    def test_missing_model_drops_slot_and_flag(self):
        backend = SubprocessBackend(provider="codex", command="codex", args=["exec", "--model", "{{model}}", "--json"])
        assert backend.build_argv("p", None) == ["codex", "exec", "--json"]

    def test_missing_model_drops_bare_slot(self):
        backend = SubprocessBackend(provider="codex", command="codex", args=["{{model}}", "run"])
        assert backend.build_argv("p", "") == ["codex", "run"]


# ==========================================================================
# Bounded capture
# ==========================================================================


class TestBoundedCapture:
    def test_total_spans_both_streams(self):
        capture = BoundedCapture(max_bytes=10)
        capture.add(b"12345", capture.stdout)
        capture.add(b"12345", capture.stderr)
        with pytest.raises(OutputExceededError):
            capture.add(b"1", capture.stdout)

    def test_non_positive_ceiling_is_unbounded(self):
        capture = BoundedCapture(max_bytes=0)
        capture.add(b"x" * 10_000, capture.stdout)
        assert capture.total_bytes == 10_000


# ==========================================================================
# Execution
# ==========================================================================


class TestExecute:
    @pytest.mark.asyncio
    async def test_prompt_piped_on_stdin(self):
        backend = _backend("import sys; sys.stdout.write(sys.stdin.read().upper())")
        result = await backend.execute(_request("roll initiative"), timeout=10)
        assert result.text == "ROLL INITIATIVE"
        assert result.exit_code == 0

    @pytest.mark.asyncio
    async def test_prompt_as_argument(self):
        backend = _backend("import sys; print('arg:' + sys.argv[1]); print('stdin:' + repr(sys.stdin.read()))", "{{prompt}}")
        result = await backend.execute(_request("a goblin"), timeout=10)
        assert result.text == "arg:a goblin\nstdin:''"

    @pytest.mark.asyncio
    async def test_model_passed_through(self):
        backend = _backend("import sys; print(sys.argv[1])", "{{model}}")
        result = await backend.execute(_request(model="o4-mini"), timeout=10)
        assert result.text == "o4-mini"
        assert result.model == "o4-mini"

    @pytest.mark.asyncio
    async def test_stdout_is_trimmed(self):
        backend = _backend("print('\\n\\n  spaced out  \\n')")
        result = await backend.execute(_request(), timeout=10)
        assert result.text == "spaced out"

    @pytest.mark.asyncio
    async def test_child_ignoring_stdin_still_succeeds(self):
        backend = _backend("print('ok')")
        result = await backend.execute(_request("x" * 500_000), timeout=10)
        assert result.text == "ok"

    @pytest.mark.asyncio
    async def test_non_zero_exit_reports_stderr(self):
        backend = _backend("import sys; sys.stderr.write('  model not found  '); sys.exit(3)")
        with pytest.raises(ExecutionFailedError) as exc_info:
            await backend.execute(_request(), timeout=10)
        assert exc_info.value.message == "model not found"
        assert exc_info.value.exit_code == 3

    @pytest.mark.asyncio
    async def test_non_zero_exit_without_stderr(self):
        backend = _backend("import sys; sys.exit(2)")
        with pytest.raises(ExecutionFailedError, match="codex exited with code 2"):
            await backend.execute(_request(), timeout=10)

    @pytest.mark.asyncio
    async def test_missing_command(self):
        backend = SubprocessBackend(provider="codex", command="/nonexistent/foundry-cli-tool")
        with pytest.raises(ExecutionFailedError, match="Failed to start"):
            await backend.execute(_request(), timeout=10)

    @pytest.mark.asyncio
    async def test_timeout_kills_child(self):
        backend = _backend("import time; time.sleep(30)")
        start = time.monotonic()
        with pytest.raises(ExecutionTimeoutError, match="timed out"):
            await backend.execute(_request(), timeout=0.5)
        assert time.monotonic() - start < 10

    @pytest.mark.asyncio
    async def test_output_ceiling_kills_runaway_child(self):
        backend = _backend(
            "import sys\nwhile True:\n    sys.stdout.write('x' * 4096)\n    sys.stdout.flush()",
            max_output_bytes=50_000,
        )
        with pytest.raises(OutputExceededError):
            await backend.execute(_request(), timeout=10)

    @pytest.mark.asyncio
    async def test_output_ceiling_counts_stderr(self):
        backend = _backend(
            "import sys; sys.stdout.write('a' * 600); sys.stdout.flush(); sys.stderr.write('b' * 600)",
            max_output_bytes=1000,
        )
        with pytest.raises(OutputExceededError):
            await backend.execute(_request(), timeout=10)

    @pytest.mark.asyncio
    async def test_output_under_ceiling_succeeds(self):
        backend = _backend("import sys; sys.stdout.write('a' * 900)", max_output_bytes=1000)
        result = await backend.execute(_request(), timeout=10)
        assert result.text == "a" * 900

    @pytest.mark.asyncio
    async def test_concurrent_runs_are_isolated(self):
        backend = _backend("import sys; sys.stdout.write(sys.stdin.read())")
        results = await asyncio.gather(*(backend.execute(_request(f"prompt-{i}"), timeout=10) for i in range(5)))
        assert [r.text for r in results] == [f"prompt-{i}" for i in range(5)]


@pytest.mark.asyncio
async def test_terminate_is_idempotent():
    proc = await asyncio.create_subprocess_exec(sys.executable, "-c", "pass")
    await proc.wait()
    await _terminate(proc)
    await _terminate(proc)
    assert proc.returncode == 0
