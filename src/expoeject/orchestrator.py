"""Sequencing of the eject run: install, login, eject, publish, patch, logout."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from rich.console import Console
from rich.markup import escape

from .config import StepConfig, validate_credentials, validate_workdir
from .exit_codes import ExitCode
from .logging import OperationScope
from .manifest import (
    REACT_NATIVE_PACKAGE,
    ManifestPatchResult,
    ParseError,
    patch_dependency_version,
)
from .runner import CommandRunner, ExternalToolError
from .toolchain import EjectMethod, ExpoCLI, ToolchainSession

LOGGER = logging.getLogger(__name__)


class EjectStepError(RuntimeError):
    """Raised when a fatal step of the eject run fails."""

    def __init__(self, step: str, message: str, *, exit_code: ExitCode) -> None:
        """Record the failing *step* alongside the exit code to report."""
        super().__init__(message)
        self.step = step
        self.exit_code = exit_code


@dataclass(slots=True)
class EjectResult:
    """Summary of a completed eject run."""

    method: EjectMethod
    published: bool = False
    manifest: ManifestPatchResult | None = None
    logged_out: bool | None = None


class EjectWorkflow:
    """Drive the Expo CLI through a full eject run for one :class:`StepConfig`."""

    def __init__(
        self,
        config: StepConfig,
        *,
        runner: CommandRunner,
        console: Console | None = None,
        op: OperationScope | None = None,
    ) -> None:
        """Bind the workflow to its configuration, runner and log scope."""
        self.config = config
        self.runner = runner
        self.console = console or runner.console
        self.op = op

    def run(self) -> EjectResult:
        """Execute every step in order; logout is attempted on all exit paths.

        Raises :class:`~expoeject.config.ConfigurationError` for invalid inputs
        and :class:`EjectStepError` for any other fatal failure.
        """
        config = self.config
        self._validate()
        self.runner.register_secret(config.password)

        method = self._define_eject_method()
        result = EjectResult(method=method)
        expo = ExpoCLI(
            self.runner,
            ToolchainSession(
                version=config.expo_cli_version,
                method=method,
                workdir=config.workdir,
            ),
            npm_bin=config.npm_bin,
            expo_bin=config.expo_bin,
        )

        self._section(f"Install Expo CLI version: {config.expo_cli_version}")
        try:
            expo.install()
        except ExternalToolError as exc:
            raise self._failure(
                "expo.install",
                f"Failed to install the selected ({config.expo_cli_version}) "
                f"version for Expo CLI, error: {exc}",
                exc,
            ) from exc
        self._step("expo.install", "success")

        self._section("Login to Expo")
        if method is EjectMethod.EXPO_KIT:
            try:
                expo.login(config.user_name, config.password)
            except ExternalToolError as exc:
                raise self._failure(
                    "expo.login",
                    f"Failed to log in to your provided Expo account, error: {exc}",
                    exc,
                ) from exc
            self._step("expo.login", "success")
        else:
            self.console.print("--eject-method has been set to plain => Skip...")
            self._step("expo.login", "skipped")

        with self._logout_guard(expo, result):
            self._section("Eject project")
            try:
                expo.eject()
            except ExternalToolError as exc:
                raise self._failure(
                    "expo.eject", f"Failed to eject project: {exc}", exc
                ) from exc
            self._step("expo.eject", "success", detail=method.value)

            if config.publish_enabled:
                self._section("Publish project")
                try:
                    expo.publish()
                except ExternalToolError as exc:
                    raise self._failure(
                        "expo.publish", f"Failed to publish project: {exc}", exc
                    ) from exc
                result.published = True
                self._step("expo.publish", "success")
            else:
                self._step("expo.publish", "skipped")

            if config.force_react_native_version:
                result.manifest = self._patch_manifest()
            else:
                self._step("manifest.patch", "skipped")

        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        validate_credentials(self.config.user_name, self.config.password)
        try:
            validate_workdir(self.config.workdir)
        except OSError as exc:
            raise self._failure(
                "inputs.validate",
                f"Unable to determine whether workdir exists: {exc}",
                exc,
                exit_code=ExitCode.ENVIRONMENT,
            ) from exc
        self._step("inputs.validate", "success")

    def _define_eject_method(self) -> EjectMethod:
        self._section("Define --eject-method")
        method = EjectMethod.for_account(self.config.user_name)
        if method is EjectMethod.EXPO_KIT:
            self.console.print(
                "Expo account credentials have provided => "
                f"Set the --eject-method to {method.value}"
            )
        else:
            self.console.print(
                "Expo account credentials have not provided => "
                f"Set the --eject-method to {method.value}"
            )
        self._step("eject-method.define", "success", detail=method.value)
        return method

    def _patch_manifest(self) -> ManifestPatchResult:
        version = self.config.force_react_native_version
        self._section(f"Force {REACT_NATIVE_PACKAGE} version: {version}")
        try:
            patch = patch_dependency_version(self.config.workdir, version)
        except ParseError as exc:
            raise self._failure(
                "manifest.patch", str(exc), exc, exit_code=ExitCode.ENVIRONMENT
            ) from exc
        except OSError as exc:
            raise self._failure(
                "manifest.patch",
                f"Failed to write modified package.json file: {exc}",
                exc,
                exit_code=ExitCode.ENVIRONMENT,
            ) from exc
        self.console.print(
            f"{REACT_NATIVE_PACKAGE}: {patch.previous_version or '(unset)'} "
            f"-> {patch.new_version}",
            markup=False,
        )
        self._step("manifest.patch", "success", detail=str(patch.path))
        return patch

    @contextmanager
    def _logout_guard(self, expo: ExpoCLI, result: EjectResult) -> Iterator[None]:
        """Log out from Expo when the enclosed block exits, however it exits."""
        try:
            yield
        finally:
            self._section("Logging out from Expo")
            if expo.session.method is EjectMethod.EXPO_KIT:
                try:
                    expo.logout()
                except ExternalToolError as exc:
                    result.logged_out = False
                    message = f"Failed to log out from your Expo account, error: {exc}"
                    LOGGER.debug(message)
                    self.console.print(f"[yellow]{escape(message)}[/yellow]")
                    self._step("expo.logout", "warning", detail=str(exc))
                else:
                    result.logged_out = True
                    self._step("expo.logout", "success")
            else:
                self.console.print("You were not logged in => Skip...")
                self._step("expo.logout", "skipped")

    def _failure(
        self,
        step: str,
        message: str,
        cause: BaseException,
        *,
        exit_code: ExitCode = ExitCode.PROVIDER,
    ) -> EjectStepError:
        LOGGER.debug("Step %s failed: %r", step, cause)
        self._step(step, "error", detail=str(cause))
        return EjectStepError(step, message, exit_code=exit_code)

    def _section(self, title: str) -> None:
        self.console.print()
        self.console.print(f"[bold blue]{escape(title)}[/bold blue]")

    def _step(self, name: str, status: str, *, detail: str | None = None) -> None:
        if self.op is not None:
            self.op.add_step(name, status=status, detail=detail)


__all__ = ["EjectResult", "EjectStepError", "EjectWorkflow"]
