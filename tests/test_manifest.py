"""Tests for the package.json dependency patcher."""
from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest

from expoeject.manifest import (
    ParseError,
    load_manifest,
    manifest_path,
    patch_dependency_version,
)


def _write(path: Path, payload: object) -> Path:
    target = path / "package.json"
    target.write_text(json.dumps(payload), encoding="utf-8")
    return target


def test_pin_is_overridden_and_siblings_survive(tmp_path: Path) -> None:
    """Only the react-native entry changes."""
    target = _write(
        tmp_path,
        {"dependencies": {"react-native": "0.64.0", "lodash": "4.0.0"}},
    )

    result = patch_dependency_version(tmp_path, "0.66.0")

    data = json.loads(target.read_text(encoding="utf-8"))
    assert data["dependencies"]["react-native"] == "0.66.0"
    assert data["dependencies"]["lodash"] == "4.0.0"
    assert result.path == target
    assert result.previous_version == "0.64.0"
    assert result.new_version == "0.66.0"


def test_untouched_fields_round_trip(tmp_path: Path) -> None:
    """Arbitrary JSON values elsewhere in the manifest are preserved exactly."""
    original = {
        "name": "app",
        "version": "1.0.0",
        "private": True,
        "scripts": {"start": "expo start", "ios": "expo start --ios"},
        "dependencies": {"expo": "~44.0.0", "react": "17.0.1", "react-native": "0.64.3"},
        "devDependencies": {"@babel/core": "^7.12.9"},
        "jest": {"preset": "jest-expo", "roots": ["<rootDir>/src"], "ratio": 0.5, "n": None},
        "description": "Ünïcödé ✓",
    }
    target = _write(tmp_path, original)

    patch_dependency_version(tmp_path, "0.66.0")

    data = json.loads(target.read_text(encoding="utf-8"))
    expected = json.loads(json.dumps(original))
    expected["dependencies"]["react-native"] = "0.66.0"
    assert data == expected
    assert list(data.keys()) == list(original.keys())
    assert list(data["dependencies"].keys()) == ["expo", "react", "react-native"]


def test_output_is_pretty_printed_with_two_spaces(tmp_path: Path) -> None:
    """The rewritten file uses two-space indentation."""
    target = _write(tmp_path, {"dependencies": {"react-native": "0.64.0"}})

    patch_dependency_version(tmp_path, "0.66.0")

    assert target.read_text(encoding="utf-8") == (
        '{\n  "dependencies": {\n    "react-native": "0.66.0"\n  }\n}\n'
    )


def test_missing_dependencies_mapping_raises_parse_error(tmp_path: Path) -> None:
    """A manifest without dependencies is rejected and left untouched."""
    target = _write(tmp_path, {"name": "app"})
    before = target.read_text(encoding="utf-8")

    with pytest.raises(ParseError, match="Failed to parse dependencies"):
        patch_dependency_version(tmp_path, "0.66.0")

    assert target.read_text(encoding="utf-8") == before


def test_empty_workdir_uses_current_directory(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Without a workdir the manifest is resolved relative to the cwd."""
    _write(tmp_path, {"dependencies": {"react-native": "0.64.0"}})
    monkeypatch.chdir(tmp_path)

    result = patch_dependency_version(None, "0.66.0")

    assert result.path == Path("package.json")
    assert manifest_path("") == Path("package.json")
    assert load_manifest(tmp_path / "package.json")["dependencies"]["react-native"] == "0.66.0"


def test_missing_manifest_raises_parse_error(tmp_path: Path) -> None:
    """A missing file cannot be patched."""
    with pytest.raises(ParseError, match="Failed to read"):
        patch_dependency_version(tmp_path, "0.66.0")


def test_invalid_json_raises_parse_error(tmp_path: Path) -> None:
    """Malformed JSON is reported and the file is left alone."""
    target = tmp_path / "package.json"
    target.write_text("{not json", encoding="utf-8")

    with pytest.raises(ParseError, match="Failed to parse"):
        patch_dependency_version(tmp_path, "0.66.0")

    assert target.read_text(encoding="utf-8") == "{not json"


@pytest.mark.parametrize(
    "payload",
    [
        ["react-native"],
        "react-native",
        {"dependencies": ["react-native"]},
        {"dependencies": "react-native@0.64.0"},
    ],
)
def test_unexpected_shapes_raise_parse_error(tmp_path: Path, payload: object) -> None:
    """The top level and the dependencies field must both be objects."""
    _write(tmp_path, payload)

    with pytest.raises(ParseError):
        patch_dependency_version(tmp_path, "0.66.0")


def test_write_failure_propagates_os_error(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A failed write surfaces as OSError and leaves the original intact."""
    target = _write(tmp_path, {"dependencies": {"react-native": "0.64.0"}})
    before = target.read_text(encoding="utf-8")
    original_write_text = Path.write_text

    def fail_write(self: Path, *args: object, **kwargs: object) -> int:
        if self.name == "package.json.tmp":
            raise OSError(28, "No space left on device")
        return original_write_text(self, *args, **kwargs)  # type: ignore[arg-type]

    monkeypatch.setattr(Path, "write_text", fail_write)

    with pytest.raises(OSError, match="No space left"):
        patch_dependency_version(tmp_path, "0.66.0")

    assert target.read_text(encoding="utf-8") == before
    assert not (tmp_path / "package.json.tmp").exists()


def test_non_utf8_manifest_raises_parse_error(tmp_path: Path) -> None:
    """Undecodable bytes are reported as a read failure."""
    target = tmp_path / "package.json"
    target.write_bytes(b'{"dependencies": {"x": "\xff"}}')

    with pytest.raises(ParseError, match="Failed to read"):
        patch_dependency_version(tmp_path, "0.66.0")


def test_rewrite_keeps_file_mode(tmp_path: Path) -> None:
    """Permission bits of the manifest survive the rewrite."""
    target = _write(tmp_path, {"dependencies": {"react-native": "0.64.0"}})
    target.chmod(0o640)

    patch_dependency_version(tmp_path, "0.66.0")

    assert stat.S_IMODE(target.stat().st_mode) == 0o640


def test_rewrite_keeps_symlinked_manifest(tmp_path: Path) -> None:
    """A symlinked package.json stays a link and its target is updated."""
    shared = tmp_path / "shared"
    shared.mkdir()
    real = _write(shared, {"dependencies": {"react-native": "0.64.0"}})
    project = tmp_path / "project"
    project.mkdir()
    link = project / "package.json"
    link.symlink_to(real)

    patch_dependency_version(project, "0.66.0")

    assert link.is_symlink()
    assert json.loads(real.read_text(encoding="utf-8"))["dependencies"] == {
        "react-native": "0.66.0"
    }
