"""Structured operation logging for expoeject.

Each CLI invocation is recorded as a single JSON document appended to
``operations.jsonl`` under the configured logs directory. A record captures the
command, its (already masked) arguments, the ordered steps that ran, and the
final result. Logging is best effort: when the directory cannot be created or
written the logger disables itself instead of failing the run.

Every string written to the log is passed through :func:`redact` so a
registered secret never reaches disk verbatim.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

LOGGER = logging.getLogger(__name__)

REDACTION_MARKER = "[REDACTED]"
OPERATIONS_LOG_NAME = "operations.jsonl"


def redact(text: str, secrets: Iterable[str]) -> str:
    """Return *text* with every non-empty secret replaced by the marker."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTION_MARKER)
    return text


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class OperationScope:
    """Collects steps and the final result for a single logged operation."""

    def __init__(self, logger: StructuredLogger, command: str) -> None:
        """Bind the scope to *logger* for the operation named *command*."""
        self._logger = logger
        self.command = command
        self.op_id = uuid.uuid4().hex[:12]
        self.steps: list[dict[str, object]] = []
        self.result: dict[str, object] | None = None

    def add_step(self, name: str, *, status: str, detail: str | None = None) -> None:
        """Append a step entry to the operation record."""
        step: dict[str, object] = {"name": name, "status": status, "at": _now_iso()}
        if detail is not None:
            step["detail"] = self._logger.sanitize(detail)
        self.steps.append(step)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result("success", message, changed=changed, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] = (),
        errors: Sequence[str] = (),
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=list(warnings),
            errors=list(errors),
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            errors=list(errors) if errors else [message],
            rc=rc,
            context=context,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int | None = None,
        warnings: list[str] | None = None,
        errors: list[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        result: dict[str, object] = {"status": status, "message": message}
        if changed is not None:
            result["changed"] = changed
        if warnings:
            result["warnings"] = warnings
        if errors:
            result["errors"] = errors
        if rc is not None:
            result["rc"] = rc
        if context:
            result["context"] = dict(context)
        self.result = self._logger.sanitize(result)  # type: ignore[assignment]


class StructuredLogger:
    """Append JSON operation records to ``<log_dir>/operations.jsonl``."""

    def __init__(self, log_dir: Path | None) -> None:
        """Prepare the log directory; disable logging if it is unusable."""
        self._secrets: set[str] = set()
        self._log_dir = log_dir
        self._operations_log_path = (log_dir or Path(".")) / OPERATIONS_LOG_NAME
        self._enabled = log_dir is not None
        if log_dir is None:
            return
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.debug("Structured logging disabled, cannot create %s: %s", log_dir, exc)
            self._enabled = False

    @property
    def enabled(self) -> bool:
        """Return whether records are currently being written."""
        return self._enabled

    def register_secret(self, value: str | None) -> None:
        """Ensure *value* is redacted from every subsequent record."""
        if value:
            self._secrets.add(value)

    def sanitize(self, value: object) -> object:
        """Return a JSON-safe, redacted copy of *value*."""
        if value is None or isinstance(value, (bool, int, float)):
            return value
        if isinstance(value, str):
            return redact(value, self._secrets)
        if isinstance(value, Mapping):
            return {str(key): self.sanitize(item) for key, item in value.items()}
        if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
            return [self.sanitize(item) for item in value]
        return redact(str(value), self._secrets)

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Record the enclosed block as one operation.

        An exception escaping the block is recorded as an error result (unless
        the block already reported one) and then re-raised.
        """
        scope = OperationScope(self, command)
        started_at = _now_iso()
        started = time.monotonic()
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(str(exc) or type(exc).__name__)
            raise
        finally:
            record = {
                "op_id": scope.op_id,
                "command": command,
                "started_at": started_at,
                "duration_ms": int((time.monotonic() - started) * 1000),
                "args": self.sanitize(dict(args or {})),
                "target": self.sanitize(dict(target or {})),
                "steps": scope.steps,
                "result": scope.result or {"status": "unknown"},
            }
            self._write(record)

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        line = json.dumps(record, sort_keys=True)
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            LOGGER.debug("Disabling structured logging after write failure: %s", exc)
            self._enabled = False


__all__ = [
    "OPERATIONS_LOG_NAME",
    "REDACTION_MARKER",
    "OperationScope",
    "StructuredLogger",
    "redact",
]
