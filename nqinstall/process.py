"""Run external commands with both output streams drained concurrently."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from .errors import ProcessFailed

logger = logging.getLogger(__name__)

LineCallback = Callable[[str, str], None]

_EOF = object()
_TAIL_LINES = 20


@dataclass
class ProcessOutcome:
    """Result of one supervised command."""

    command: str
    returncode: int | None
    lines: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def tail(self, count: int = _TAIL_LINES) -> str:
        return "\n".join(line for line in self.lines[-count:] if line.strip())

    def raise_for_status(self) -> "ProcessOutcome":
        if not self.success:
            raise ProcessFailed(self.command, self.returncode, self.tail())
        return self


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


class ProcessSupervisor:
    """Launch one external process and funnel its stdout/stderr into one ordered sink.

    Two reader tasks push lines onto a shared queue in arrival order; the
    supervisor is the only consumer and hands every line to ``on_line``.
    A read error ends only the reader that hit it. The exit status is always
    awaited.
    """

    def __init__(self, keep_lines: int = 200) -> None:
        self._keep_lines = keep_lines

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | os.PathLike[str] | None = None,
        stdin_data: str | None = None,
        on_line: LineCallback | None = None,
    ) -> ProcessOutcome:
        argv = [command, *args]
        display = _fmt_argv(argv)
        logger.info("CMD %s", display)
        outcome = ProcessOutcome(command=display, returncode=None)

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
                env=dict(os.environ, **(env or {})),
            )
        except OSError as exc:
            logger.error("Failed to start %s: %s", display, exc)
            raise ProcessFailed(display, None, str(exc)) from exc

        if proc.stdout is None or proc.stderr is None:
            proc.kill()
            await proc.wait()
            raise ProcessFailed(display, None, "output streams were not captured")

        if stdin_data is not None and proc.stdin is not None:
            try:
                proc.stdin.write(stdin_data.encode())
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as exc:
                logger.warning("Could not write stdin for %s: %s", display, exc)
                outcome.warnings.append(f"stdin write failed: {exc}")
            finally:
                proc.stdin.close()

        sink: asyncio.Queue = asyncio.Queue()
        readers = [
            asyncio.create_task(self._drain(proc.stdout, "stdout", sink)),
            asyncio.create_task(self._drain(proc.stderr, "stderr", sink)),
        ]

        kept: deque[str] = deque(maxlen=self._keep_lines)
        open_readers = len(readers)
        while open_readers:
            item = await sink.get()
            if item is _EOF:
                open_readers -= 1
                continue
            stream, line = item
            if stream == "warning":
                outcome.warnings.append(line)
            else:
                kept.append(line)
            if on_line is not None:
                on_line(stream, line)

        await asyncio.gather(*readers)
        outcome.returncode = await proc.wait()
        outcome.lines = list(kept)
        if outcome.success:
            logger.info("%s finished", display)
        else:
            logger.warning("%s exited with status %s", display, outcome.returncode)
        return outcome

    async def _drain(
        self,
        stream: asyncio.StreamReader,
        name: str,
        sink: asyncio.Queue,
    ) -> None:
        try:
            while True:
                try:
                    raw = await stream.readline()
                except ValueError as exc:
                    # Line longer than the stream limit; the reader already
                    # dropped the buffered part, keep draining the pipe.
                    message = f"Skipped over-long line on {name}: {exc}"
                    logger.warning(message)
                    await sink.put(("warning", message))
                    continue
                except OSError as exc:
                    message = f"Error reading {name}: {exc}"
                    logger.warning(message)
                    await sink.put(("warning", message))
                    break
                if not raw:
                    break
                await sink.put((name, raw.decode("utf-8", errors="replace").rstrip("\r\n")))
        finally:
            await sink.put(_EOF)
