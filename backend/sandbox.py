"""Modal sandbox backend. Runs harness programs in a persistent remote sandbox.

The sandbox is created once when the interpreter session starts and reused
for every run until the session is closed.
"""

import logging
import math
import time

import modal

from interpreter import ExecutionResult

logger = logging.getLogger(__name__)

# Student programs only need the standard library.
_sandbox_image = modal.Image.debian_slim(python_version="3.12")


class ModalBackend:
    name = "modal"

    def __init__(self, app_name: str, idle_timeout_seconds: int = 3600):
        self.app_name = app_name
        self.idle_timeout_seconds = idle_timeout_seconds
        self._sandbox: modal.Sandbox | None = None

    async def start(self) -> None:
        app = await modal.App.lookup.aio(self.app_name, create_if_missing=True)
        self._sandbox = await modal.Sandbox.create.aio(
            image=_sandbox_image,
            app=app,
            timeout=self.idle_timeout_seconds,
        )
        logger.info(f"Created Modal sandbox {self._sandbox.object_id}")

    async def execute(self, source: str, timeout: float) -> ExecutionResult:
        sb = self._sandbox
        if sb is None:
            raise RuntimeError("Modal sandbox is not running. Start the session first.")

        start = time.monotonic()
        # The program goes over stdin; argv is capped at 128 KiB per argument.
        process = await sb.exec.aio("python", "-X", "utf8", "-", timeout=math.ceil(timeout))
        process.stdin.write(source.encode("utf-8"))
        process.stdin.write_eof()
        await process.stdin.drain.aio()
        stdout = await process.stdout.read.aio()
        stderr = await process.stderr.read.aio()
        await process.wait.aio()
        elapsed = time.monotonic() - start

        timed_out = process.returncode != 0 and elapsed >= timeout
        if timed_out:
            logger.warning(f"Sandbox program hit the {timeout:g}s timeout")
            stderr = f"TimeoutError: program did not finish within {timeout:g} seconds"

        return ExecutionResult(
            stdout=stdout,
            stderr=stderr,
            returncode=process.returncode,
            timed_out=timed_out,
            execution_time_ms=int(elapsed * 1000),
        )

    async def close(self) -> None:
        sb, self._sandbox = self._sandbox, None
        if sb is None:
            return
        try:
            await sb.terminate.aio()
        except Exception:
            logger.debug("Sandbox already terminated", exc_info=True)
