"""Pytest configuration for installer tests."""
from __future__ import annotations

import os
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolated_app_data(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep the log file and saved settings out of the real user profile."""
    app_data = tmp_path / "appdata"
    monkeypatch.setenv("SPINSTALLER_LOG_FILE", str(app_data / "installer.log"))
    monkeypatch.setenv("XDG_DATA_HOME", str(app_data))
    monkeypatch.setenv("APPDATA", str(app_data))
    yield


@pytest.fixture
def make_tree():
    def _make(root: Path, files: dict) -> Path:
        root.mkdir(parents=True, exist_ok=True)
        for rel, content in files.items():
            target = root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return root

    return _make


@pytest.fixture
def tree_state():
    """Every directory and file (with contents) below a root, for exact comparisons."""

    def _state(root: Path):
        dirs = set()
        files = {}
        for current_root, dirnames, filenames in os.walk(root):
            for name in dirnames:
                dirs.add(os.path.relpath(os.path.join(current_root, name), root))
            for name in filenames:
                path = os.path.join(current_root, name)
                with open(path, "rb") as handle:
                    files[os.path.relpath(path, root)] = handle.read()
        return dirs, files

    return _state


@pytest.fixture
def staging(tmp_path: Path, make_tree) -> Path:
    return make_tree(
        tmp_path / "staging",
        {
            "d3d9.dll": "patch d3d9",
            "shaderpatch.yml": "patch config",
            os.path.join("data", "shaderpatch", "shaders.bin"): "patch shaders",
        },
    )


@pytest.fixture
def game(tmp_path: Path, make_tree) -> Path:
    return make_tree(
        tmp_path / "game",
        {
            "BattlefrontII.exe": "game exe",
            "shaderpatch.yml": "original config",
        },
    )
