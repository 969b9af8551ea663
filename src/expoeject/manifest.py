"""Rewrite the ``react-native`` pin inside a project's ``package.json``."""
from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

LOGGER = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"
REACT_NATIVE_PACKAGE = "react-native"


class ParseError(RuntimeError):
    """Raised when the manifest is missing, unreadable, or has an unexpected shape."""


@dataclass(frozen=True, slots=True)
class ManifestPatchResult:
    """Outcome of a dependency pin rewrite."""

    path: Path
    package: str
    previous_version: str | None
    new_version: str


def manifest_path(workdir: str | os.PathLike[str] | None) -> Path:
    """Return the manifest location for *workdir* (current directory when empty)."""
    if workdir is None or not str(workdir):
        return Path(MANIFEST_NAME)
    return Path(workdir) / MANIFEST_NAME


def load_manifest(path: Path) -> dict[str, Any]:
    """Parse *path* as a JSON object, preserving key order."""
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(f"Failed to read {path}: {exc}") from exc
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Failed to parse {path}: {exc}") from exc
    if not isinstance(document, dict):
        raise ParseError(f"{path} must contain a JSON object at the top level.")
    return document


def patch_dependency_version(
    workdir: str | os.PathLike[str] | None,
    version: str,
    *,
    package: str = REACT_NATIVE_PACKAGE,
) -> ManifestPatchResult:
    """Pin ``dependencies[package]`` to *version* and rewrite the manifest.

    Every other key is left as loaded. ``OSError`` raised while writing is
    propagated to the caller.
    """
    path = manifest_path(workdir)
    document = load_manifest(path)

    dependencies = document.get("dependencies")
    if not isinstance(dependencies, dict):
        raise ParseError(f"Failed to parse dependencies from {path}: expected a JSON object.")

    previous = dependencies.get(package)
    dependencies[package] = version
    LOGGER.debug("Pinning %s from %r to %r in %s", package, previous, version, path)

    _write_manifest(path, document)
    return ManifestPatchResult(
        path=path,
        package=package,
        previous_version=previous if isinstance(previous, str) else None,
        new_version=version,
    )


def _write_manifest(path: Path, document: dict[str, Any]) -> None:
    content = json.dumps(document, indent=2, ensure_ascii=False) + "\n"
    # Replace the link target so a symlinked manifest stays a symlink.
    target = path.resolve()
    temp = target.with_name(f"{target.name}.tmp")
    try:
        temp.write_text(content, encoding="utf-8")
        shutil.copymode(target, temp)
        temp.replace(target)
    finally:
        if temp.exists():
            temp.unlink()


__all__ = [
    "MANIFEST_NAME",
    "REACT_NATIVE_PACKAGE",
    "ManifestPatchResult",
    "ParseError",
    "load_manifest",
    "manifest_path",
    "patch_dependency_version",
]
