"""
Stdio Transport

Runs a tool server as a subprocess and exchanges newline-delimited JSON-RPC
over its stdin/stdout. stderr is drained continuously and logged at DEBUG so
a chatty server can never block on a full pipe.
"""

import asyncio
import contextlib
import json
import os
import shutil
from typing import Any

from loguru import logger

from tool_gateway.config import StdioTransportConfig
from tool_gateway.errors import ServerConnectionError, TransportError

from .base import Transport


# Seconds allowed for each shutdown stage (stdin EOF, SIGTERM) before escalating
GRACEFUL_EXIT_SECONDS = 2.0
# asyncio StreamReader line limit; tool catalogs can be large
STREAM_LIMIT = 4 * 1024 * 1024


class StdioTransport(Transport):
    def __init__(self, server_id: str, config: StdioTransportConfig) -> None:
        super().__init__(server_id)
        self._config = config
        self._proc: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task[None] | None = None

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    async def open(self) -> None:
        command = shutil.which(self._config.command) or self._config.command
        env = dict(os.environ)
        env.update(self._config.env)

        try:  # nosemgrep: forbid-try-except - spawn failures become ServerConnectionError
            self._proc = await asyncio.create_subprocess_exec(
                command,
                *self._config.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=self._config.cwd,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise ServerConnectionError(
                f"[{self.server_id}] failed to start {self._config.command!r}: {e}"
            ) from e

        logger.info(
            f"[StdioTransport:{self.server_id}] Started PID {self._proc.pid}: "
            f"{command} {' '.join(self._config.args)}"
        )
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    async def send(self, message: dict[str, Any]) -> None:
        proc = self._proc
        if proc is None or proc.stdin is None or proc.returncode is not None:
            raise TransportError(f"[{self.server_id}] process is not running")
        line = json.dumps(message, ensure_ascii=False) + "\n"
        try:  # nosemgrep: forbid-try-except - broken pipe becomes TransportError
            proc.stdin.write(line.encode("utf-8"))
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise TransportError(f"[{self.server_id}] stdin closed: {e}") from e

    async def receive(self) -> Any | None:
        proc = self._proc
        if proc is None or proc.stdout is None:
            return None
        while True:
            try:  # nosemgrep: forbid-try-except - oversized lines become TransportError
                raw = await proc.stdout.readline()
            except (ValueError, asyncio.LimitOverrunError) as e:
                raise TransportError(f"[{self.server_id}] unreadable stdout line: {e}") from e
            if not raw:
                return None
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            try:  # nosemgrep: forbid-try-except - non-JSON output is skipped, not fatal
                return json.loads(line)
            except json.JSONDecodeError:
                logger.warning(f"[StdioTransport:{self.server_id}] Ignoring non-JSON stdout: {line[:200]}")

    async def close(self) -> None:
        proc = self._proc
        if proc is None:
            return
        if proc.returncode is None:
            if proc.stdin is not None and not proc.stdin.is_closing():
                proc.stdin.close()
            try:
                await asyncio.wait_for(proc.wait(), timeout=GRACEFUL_EXIT_SECONDS)
            except TimeoutError:
                with contextlib.suppress(ProcessLookupError):
                    proc.terminate()
                try:
                    await asyncio.wait_for(proc.wait(), timeout=GRACEFUL_EXIT_SECONDS)
                except TimeoutError:
                    with contextlib.suppress(ProcessLookupError):
                        proc.kill()
                    await proc.wait()
        if self._stderr_task is not None:
            self._stderr_task.cancel()
        logger.info(f"[StdioTransport:{self.server_id}] Stopped (exit code {proc.returncode})")

    async def _drain_stderr(self) -> None:
        proc = self._proc
        if proc is None or proc.stderr is None:
            return
        while True:
            raw = await proc.stderr.readline()
            if not raw:
                return
            logger.debug(f"[StdioTransport:{self.server_id}] stderr: {raw.decode(errors='replace').rstrip()}")
