"""Typed wrapper around the npm and ``expo`` commands used by an eject run."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .config import LATEST_VERSION
from .runner import CommandRunner

EXPO_CLI_PACKAGE = "expo-cli"
NON_INTERACTIVE = "--non-interactive"


class EjectMethod(str, Enum):
    """Values accepted by ``expo eject --eject-method``.

    With ``plain`` the project loses access to Expo SDK imports; ``expoKit``
    keeps them but requires a logged-in Expo account.
    """

    PLAIN = "plain"
    EXPO_KIT = "expoKit"

    @classmethod
    def for_account(cls, user_name: str | None) -> EjectMethod:
        """Return ``EXPO_KIT`` when an account name is supplied, else ``PLAIN``."""
        return cls.EXPO_KIT if user_name else cls.PLAIN


@dataclass(frozen=True, slots=True)
class ToolchainSession:
    """Parameters shared by every ``expo`` invocation in a run."""

    version: str
    method: EjectMethod
    workdir: Path | None = None


class ExpoCLI:
    """Build and run the npm/expo command lines for a :class:`ToolchainSession`."""

    def __init__(
        self,
        runner: CommandRunner,
        session: ToolchainSession,
        *,
        npm_bin: str = "npm",
        expo_bin: str = "expo",
    ) -> None:
        """Initialise the client with its runner, session and binaries."""
        self.runner = runner
        self.session = session
        self.npm_bin = npm_bin
        self.expo_bin = expo_bin

    def install_args(self) -> list[str]:
        """Return the global npm install command for the configured version."""
        package = EXPO_CLI_PACKAGE
        if self.session.version != LATEST_VERSION:
            package = f"{EXPO_CLI_PACKAGE}@{self.session.version}"
        return [self.npm_bin, "install", "-g", package]

    def install(self) -> None:
        """Install the Expo CLI globally via npm."""
        self.runner.run(self.install_args())

    def login(self, user_name: str, password: str) -> None:
        """Log in to the Expo account without prompting."""
        args = [self.expo_bin, "login", NON_INTERACTIVE, "-u", user_name, "-p", password]
        self.runner.run(args, secrets=(password,))

    def logout(self) -> None:
        """Log out from the Expo account without prompting."""
        self.runner.run([self.expo_bin, "logout", NON_INTERACTIVE])

    def eject(self) -> None:
        """Create the native Xcode and Android Studio projects."""
        args = [
            self.expo_bin,
            "eject",
            NON_INTERACTIVE,
            "--eject-method",
            self.session.method.value,
        ]
        self.runner.run(args, cwd=self.session.workdir)

    def publish(self) -> None:
        """Publish the project to Expo."""
        self.runner.run([self.expo_bin, "publish", NON_INTERACTIVE], cwd=self.session.workdir)


__all__ = ["EXPO_CLI_PACKAGE", "EjectMethod", "ExpoCLI", "ToolchainSession"]
