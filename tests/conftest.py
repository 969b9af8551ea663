"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import io
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path

import pytest
from rich.console import Console

from expoeject.config import CONFIG_ENV_VAR, INPUT_ENV_KEYS, TOOL_ENV_KEYS
from expoeject.runner import CommandRunner


class RecordingRunner(CommandRunner):
    """Runner that records commands instead of spawning processes.

    Commands whose subcommand (``install``, ``login``, ``eject``, ...) appears
    in *fail_on* exit with status 1; those in *launch_fail* raise
    ``FileNotFoundError`` as if the binary were missing.
    """

    def __init__(
        self,
        console: Console,
        *,
        fail_on: Iterable[str] = (),
        launch_fail: Iterable[str] = (),
    ) -> None:
        """Initialise the recorder with its failure plan."""
        super().__init__(console)
        self.calls: list[tuple[list[str], Path | None]] = []
        self.fail_on = set(fail_on)
        self.launch_fail = set(launch_fail)

    @property
    def commands(self) -> list[list[str]]:
        """Return the recorded argument lists in call order."""
        return [command for command, _ in self.calls]

    @property
    def subcommands(self) -> list[str]:
        """Return the recorded subcommands in call order."""
        return [command[1] for command, _ in self.calls]

    def _execute(self, command: Sequence[str], *, cwd: Path | None) -> int:
        self.calls.append((list(command), cwd))
        if command[1] in self.launch_fail:
            raise FileNotFoundError(2, "No such file or directory", command[0])
        return 1 if command[1] in self.fail_on else 0


def make_console() -> Console:
    """Return a console that renders plain text into an in-memory buffer."""
    return Console(file=io.StringIO(), width=200, color_system=None, force_terminal=False)


@pytest.fixture
def console() -> Console:
    """Provide an in-memory console."""
    return make_console()


@pytest.fixture
def make_runner(console: Console) -> Callable[..., RecordingRunner]:
    """Return a factory for recording runners bound to the shared console."""

    def _factory(**kwargs: Iterable[str]) -> RecordingRunner:
        return RecordingRunner(console, **kwargs)

    return _factory


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove step inputs that could leak in from the host environment."""
    for names in INPUT_ENV_KEYS.values():
        for name in names:
            monkeypatch.delenv(name, raising=False)
    for name in TOOL_ENV_KEYS.values():
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
