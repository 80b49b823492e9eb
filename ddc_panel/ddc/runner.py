from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Sequence

from .reader import read_lines

LOG = logging.getLogger(__name__)


@dataclass
class CommandResult:
    args: list[str]
    ok: bool
    exit_code: int | None
    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)
    error: str | None = None
    duration_ms: int | None = None

    @property
    def output(self) -> str:
        return "\n".join(self.stdout)


class ProcessRunner:
    """Spawns external commands on the running event loop.

    Output is drained stdout first, then stderr; the completion callback fires
    once both are exhausted. A command that cannot be spawned completes with
    empty output rather than raising.
    """

    def __init__(self):
        self._inflight: set[asyncio.subprocess.Process] = set()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def run(
        self,
        args: Sequence[str],
        on_complete: Callable[[CommandResult], None] | None = None,
    ) -> CommandResult:
        args = [str(arg) for arg in args]
        LOG.info("Executing command: %s", " ".join(args))
        start = time.perf_counter()
        try:
            if not args:
                raise ValueError("empty command")
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as exc:
            LOG.error("Error executing command %s: %s", " ".join(args), exc)
            result = CommandResult(args=args, ok=False, exit_code=None, error=str(exc))
            self._complete(result, on_complete)
            return result

        self._inflight.add(proc)
        stdout: list[str] = []
        stderr: list[str] = []
        try:
            await read_lines(proc.stdout, stdout.append)
            await read_lines(proc.stderr, stderr.append)
            exit_code = await proc.wait()
        finally:
            self._inflight.discard(proc)
        duration_ms = int((time.perf_counter() - start) * 1000)

        if stderr:
            LOG.warning("Command error output: %s", "\n".join(stderr))
        error = None
        if exit_code != 0:
            error = (stderr[-1].strip() if stderr else "") or f"exit status {exit_code}"
            LOG.debug("Command %s exited with %s", args[0], exit_code)
        result = CommandResult(
            args=args,
            ok=exit_code == 0,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            error=error,
            duration_ms=duration_ms,
        )
        self._complete(result, on_complete)
        return result

    def close(self) -> None:
        """Forget in-flight children. They are not terminated."""
        if self._inflight:
            LOG.info("Abandoning %d running command(s)", len(self._inflight))
        self._inflight.clear()

    def _complete(self, result: CommandResult, on_complete: Callable[[CommandResult], None] | None) -> None:
        if on_complete is None:
            return
        try:
            on_complete(result)
        except Exception:
            LOG.exception("Command completion callback failed")
