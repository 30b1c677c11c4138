"""Tests for interpreter sessions and the local subprocess backend."""

import asyncio

import pytest

import interpreter
from evaluation.errors import HarnessStartupError
from interpreter import (
    ExecutionResult,
    InterpreterSession,
    SubprocessBackend,
    create_backend,
    get_session,
)


class FakeBackend:
    name = "fake"

    def __init__(self, fail_start: bool = False):
        self.fail_start = fail_start
        self.starts = 0
        self.running = 0
        self.max_running = 0
        self.closed = False

    async def start(self) -> None:
        self.starts += 1
        await asyncio.sleep(0.01)
        if self.fail_start:
            raise RuntimeError("no interpreter")

    async def execute(self, source: str, timeout: float) -> ExecutionResult:
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        await asyncio.sleep(0.01)
        self.running -= 1
        if source == "fail":
            return ExecutionResult(stdout="partial\n", stderr="ValueError: bad", returncode=1)
        return ExecutionResult(stdout=f"ran {source}\n")

    async def close(self) -> None:
        self.closed = True


# =========================================================================
# ExecutionResult
# =========================================================================


class TestExecutionResult:
    def test_success_returns_stdout(self):
        assert ExecutionResult(stdout="hi\n").combined_output() == "hi\n"

    def test_failure_appends_error_tail(self):
        result = ExecutionResult(stdout="hi\n", stderr="Traceback...\nValueError: x\n", returncode=1)
        assert result.combined_output() == "hi\n\nError: Traceback...\nValueError: x"

    def test_failure_without_stderr(self):
        result = ExecutionResult(stdout="", returncode=3)
        assert result.combined_output().endswith("Error: Program exited with status 3")

    def test_timeout_is_not_success(self):
        assert not ExecutionResult(stdout="", timed_out=True).success


# =========================================================================
# Session lifecycle
# =========================================================================


class TestSession:
    async def test_concurrent_initialize_starts_once(self):
        backend = FakeBackend()
        session = InterpreterSession(backend)
        assert session.status == "idle"

        await asyncio.gather(session.initialize(), session.initialize(), session.initialize())
        assert backend.starts == 1
        assert session.status == "ready"

        await session.initialize()
        assert backend.starts == 1

    async def test_failed_start_can_be_retried(self):
        backend = FakeBackend(fail_start=True)
        session = InterpreterSession(backend)

        with pytest.raises(HarnessStartupError) as exc_info:
            await session.initialize()
        assert "no interpreter" in str(exc_info.value)
        assert session.status == "failed"
        assert session.last_error == "no interpreter"

        backend.fail_start = False
        await session.initialize()
        assert backend.starts == 2
        assert session.status == "ready"
        assert session.last_error is None

    async def test_run_initializes_on_demand(self):
        backend = FakeBackend()
        session = InterpreterSession(backend)
        assert await session.run("x") == "ran x\n"
        assert backend.starts == 1

    async def test_run_reports_failures_with_error_tail(self):
        session = InterpreterSession(FakeBackend())
        assert await session.run("fail") == "partial\n\nError: ValueError: bad"

    async def test_runs_are_serialized(self):
        backend = FakeBackend()
        session = InterpreterSession(backend)
        await asyncio.gather(*(session.run(str(i)) for i in range(5)))
        assert backend.max_running == 1

    async def test_close(self):
        backend = FakeBackend()
        session = InterpreterSession(backend)
        await session.initialize()
        await session.close()
        assert backend.closed
        assert session.status == "idle"


# =========================================================================
# Subprocess backend
# =========================================================================


class TestSubprocessBackend:
    async def test_runs_source_in_a_fresh_process(self):
        backend = SubprocessBackend()
        await backend.start()
        first = await backend.execute("x = 1\nprint(x)\n", timeout=10)
        second = await backend.execute("print('x' in globals())\n", timeout=10)
        assert first.stdout == "1\n"
        assert second.stdout == "False\n"

    async def test_utf8_output(self):
        result = await SubprocessBackend().execute("print('héllo ✓')\n", timeout=10)
        assert result.stdout == "héllo ✓\n"

    async def test_uncaught_error_sets_returncode(self):
        result = await SubprocessBackend().execute("raise ValueError('nope')\n", timeout=10)
        assert not result.success
        assert "ValueError: nope" in result.stderr

    async def test_timeout_kills_the_process(self):
        result = await SubprocessBackend().execute("while True:\n    pass\n", timeout=0.5)
        assert result.timed_out
        assert result.stderr.startswith("TimeoutError")

    async def test_bad_executable_fails_start(self):
        session = InterpreterSession(SubprocessBackend("/nonexistent/python"))
        with pytest.raises(HarnessStartupError):
            await session.initialize()


# =========================================================================
# Factory
# =========================================================================


def test_default_backend_is_subprocess():
    assert isinstance(create_backend(), SubprocessBackend)


def test_modal_backend_is_selected_by_setting(monkeypatch):
    from sandbox import ModalBackend

    monkeypatch.setattr(interpreter.settings, "interpreter_backend", "modal")
    assert isinstance(create_backend(), ModalBackend)


def test_get_session_is_a_singleton(monkeypatch):
    monkeypatch.setattr(interpreter, "_session", None)
    assert get_session() is get_session()
