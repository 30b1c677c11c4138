"""Interpreter sessions: where synthesized harness programs actually run.

A session owns one execution backend. Every program runs in a fresh Python
process, so runs cannot see each other's globals, but calls are still
serialized through the session lock to keep at most one student program
running per session.
"""

import asyncio
import logging
import sys
import tempfile
import time
from dataclasses import dataclass
from typing import Protocol

from config import settings
from evaluation.errors import HarnessStartupError
from evaluation.results import ERROR_PREFIX

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Result of running one program."""
    stdout: str
    stderr: str = ""
    returncode: int = 0
    timed_out: bool = False
    execution_time_ms: int = 0

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def combined_output(self) -> str:
        """stdout, followed by an ``Error: <message>`` tail when the program failed."""
        if self.success:
            return self.stdout
        message = self.stderr.strip() or f"Program exited with status {self.returncode}"
        return f"{self.stdout}\n{ERROR_PREFIX}{message}"


class ExecutionBackend(Protocol):
    name: str

    async def start(self) -> None: ...

    async def execute(self, source: str, timeout: float) -> ExecutionResult: ...

    async def close(self) -> None: ...


class SubprocessBackend:
    """Runs each program in a local ``python -I`` child process, source on stdin."""

    name = "subprocess"

    def __init__(self, python_executable: str | None = None):
        self.python_executable = python_executable or sys.executable
        self._workdir = tempfile.gettempdir()

    async def start(self) -> None:
        proc = await asyncio.create_subprocess_exec(
            self.python_executable, "-I", "-c", "import json, linecache, traceback",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise RuntimeError(stderr.decode("utf-8", "replace").strip() or "interpreter check failed")

    async def execute(self, source: str, timeout: float) -> ExecutionResult:
        start = time.monotonic()
        proc = await asyncio.create_subprocess_exec(
            self.python_executable, "-I", "-X", "utf8", "-",
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self._workdir,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(source.encode("utf-8")), timeout=timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"Program killed after {timeout:g}s timeout")
            return ExecutionResult(
                stdout="",
                stderr=f"TimeoutError: program did not finish within {timeout:g} seconds",
                returncode=proc.returncode if proc.returncode is not None else -1,
                timed_out=True,
                execution_time_ms=int((time.monotonic() - start) * 1000),
            )

        return ExecutionResult(
            stdout=stdout.decode("utf-8", "replace"),
            stderr=stderr.decode("utf-8", "replace"),
            returncode=proc.returncode,
            execution_time_ms=int((time.monotonic() - start) * 1000),
        )

    async def close(self) -> None:
        pass


class InterpreterSession:
    """Lifecycle and serialization around one execution backend."""

    def __init__(self, backend: ExecutionBackend, timeout_seconds: float = 10.0):
        self.backend = backend
        self.timeout_seconds = timeout_seconds
        self._ready = False
        self._init_task: asyncio.Task | None = None
        self._last_error: str | None = None
        self._lock = asyncio.Lock()

    @property
    def status(self) -> str:
        if self._ready:
            return "ready"
        if self._init_task is not None:
            return "loading"
        return "failed" if self._last_error else "idle"

    @property
    def last_error(self) -> str | None:
        return self._last_error

    async def initialize(self) -> "InterpreterSession":
        """Boot the backend once. Concurrent callers share the same in-flight start.

        A failed start raises HarnessStartupError; the next call tries again.
        """
        if self._ready:
            return self
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._start())
        task = self._init_task
        try:
            await asyncio.shield(task)
        except Exception as e:
            if self._init_task is task:
                self._init_task = None
            self._last_error = str(e) or type(e).__name__
            raise HarnessStartupError(
                f"The Python interpreter could not be started: {self._last_error}"
            ) from e
        return self

    async def _start(self) -> None:
        start = time.monotonic()
        logger.info(f"Starting {self.backend.name} interpreter backend")
        await self.backend.start()
        self._ready = True
        self._init_task = None
        self._last_error = None
        logger.info("Interpreter ready in %.2fs", time.monotonic() - start)

    async def execute(self, source: str) -> ExecutionResult:
        await self.initialize()
        async with self._lock:
            result = await self.backend.execute(source, self.timeout_seconds)
        logger.debug(
            "Program finished: returncode=%s timed_out=%s %dms",
            result.returncode, result.timed_out, result.execution_time_ms,
        )
        return result

    async def run(self, source: str) -> str:
        """Run ``source`` and return its stdout, with an ``Error:`` tail on failure."""
        return (await self.execute(source)).combined_output()

    async def close(self) -> None:
        await self.backend.close()
        self._ready = False


def create_backend() -> ExecutionBackend:
    if settings.interpreter_backend == "modal":
        from sandbox import ModalBackend

        return ModalBackend(settings.modal_app_name, settings.sandbox_idle_timeout_seconds)
    return SubprocessBackend(settings.python_executable or None)


_session: InterpreterSession | None = None


def get_session() -> InterpreterSession:
    """The process-wide interpreter session."""
    global _session
    if _session is None:
        _session = InterpreterSession(create_backend(), settings.execution_timeout_seconds)
    return _session
