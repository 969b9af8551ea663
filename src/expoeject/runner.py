"""Subprocess runner that streams child output and redacts secrets."""
from __future__ import annotations

import logging
import shlex
import subprocess
import sys
import threading
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import IO, TextIO

from rich.console import Console

from .logging import redact

LOGGER = logging.getLogger(__name__)


class ExternalToolError(RuntimeError):
    """Raised when an external command cannot be launched or exits non-zero."""

    def __init__(self, message: str, *, command: str, returncode: int | None = None) -> None:
        """Store the redacted *command* line and the child's *returncode*."""
        super().__init__(message)
        self.command = command
        self.returncode = returncode


class CommandRunner:
    """Run external commands, forwarding their output to injected sinks.

    The echoed ``$ command`` line has every known secret replaced by
    ``[REDACTED]``; the child process itself receives the real arguments.
    """

    def __init__(
        self,
        console: Console | None = None,
        *,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        """Bind the runner to an echo *console* and optional output sinks."""
        self.console = console or Console()
        self._stdout = stdout
        self._stderr = stderr
        self._secrets: set[str] = set()

    @property
    def secrets(self) -> frozenset[str]:
        """Return the secrets currently redacted from echoed commands."""
        return frozenset(self._secrets)

    def register_secret(self, value: str | None) -> None:
        """Redact *value* from every subsequently echoed command."""
        if value:
            self._secrets.add(value)

    def printable(self, args: Sequence[str], secrets: Iterable[str] = ()) -> str:
        """Return the shell-quoted, redacted rendering of *args*."""
        known = self._secrets.union(secret for secret in secrets if secret)
        masked = [redact(str(arg), known) for arg in args]
        return redact(shlex.join(masked), known)

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        secrets: Iterable[str] = (),
    ) -> None:
        """Execute *args* and raise :class:`ExternalToolError` unless it succeeds."""
        command = [str(arg) for arg in args]
        printable = self.printable(command, secrets)
        self.console.print(f"$ {printable}", markup=False, highlight=False, soft_wrap=True)
        if cwd is not None:
            LOGGER.debug("Running in %s: %s", cwd, printable)

        try:
            returncode = self._execute(command, cwd=cwd)
        except OSError as exc:
            raise ExternalToolError(
                f"failed to launch {command[0]}: {exc.strerror or exc}",
                command=printable,
            ) from exc
        if returncode != 0:
            raise ExternalToolError(
                f"{printable} failed (exit {returncode})",
                command=printable,
                returncode=returncode,
            )

    def _execute(self, command: Sequence[str], *, cwd: Path | None) -> int:
        """Spawn *command* and pump its output into the sinks (isolated for testing)."""
        stdout_sink = self._stdout or sys.stdout
        stderr_sink = self._stderr or sys.stderr
        process = subprocess.Popen(  # noqa: S603
            list(command),
            cwd=str(cwd) if cwd is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            bufsize=1,
        )
        assert process.stdout is not None and process.stderr is not None
        stderr_pump = threading.Thread(
            target=_pump,
            args=(process.stderr, stderr_sink),
            name="expoeject-stderr",
            daemon=True,
        )
        stderr_pump.start()
        try:
            _pump(process.stdout, stdout_sink)
        finally:
            returncode = process.wait()
            stderr_pump.join()
        return returncode


def _pump(source: IO[str], sink: TextIO) -> None:
    with source:
        for line in source:
            sink.write(line)
            sink.flush()


__all__ = ["CommandRunner", "ExternalToolError"]
