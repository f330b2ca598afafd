from __future__ import annotations

import os
from pathlib import Path

import pytest
import vdf

import game_locator
from game_locator import (
    STEAM_GAME_SUBDIR,
    find_game_executable,
    install_root_from_executable,
    search_for_install_paths,
    steam_library_folders,
)


def _steam_root(tmp_path: Path) -> Path:
    root = tmp_path / "Steam"
    (root / "steamapps").mkdir(parents=True)
    return root


def _write_library_file(steam_root: Path, document) -> None:
    with open(steam_root / "steamapps" / "libraryfolders.vdf", "w", encoding="utf-8") as handle:
        vdf.dump(document, handle, pretty=True)


def _install_game(library: Path, exe_name: str = "BattlefrontII.exe") -> Path:
    game_dir = library / STEAM_GAME_SUBDIR
    game_dir.mkdir(parents=True)
    exe = game_dir / exe_name
    exe.write_text("exe", encoding="utf-8")
    return exe


def test_library_folders_new_format(tmp_path: Path):
    steam_root = _steam_root(tmp_path)
    second = tmp_path / "Library2"
    _write_library_file(
        steam_root,
        {"libraryfolders": {"0": {"path": str(steam_root)}, "1": {"path": str(second), "label": ""}}},
    )

    assert steam_library_folders(str(steam_root)) == [str(steam_root), str(second)]


def test_library_folders_old_format(tmp_path: Path):
    steam_root = _steam_root(tmp_path)
    second = tmp_path / "Library2"
    _write_library_file(steam_root, {"LibraryFolders": {"TimeNextStatsReport": "1", "1": str(second)}})

    assert steam_library_folders(str(steam_root)) == [str(steam_root), str(second)]


def test_unreadable_library_file_falls_back_to_steam_root(tmp_path: Path):
    steam_root = _steam_root(tmp_path)
    (steam_root / "steamapps" / "libraryfolders.vdf").write_text('"libraryfolders"\n{\n"1"\n{\n', encoding="utf-8")

    assert steam_library_folders(str(steam_root)) == [str(steam_root)]


def test_search_finds_game_in_secondary_library(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setattr(game_locator, "_registry_install_paths", lambda: [])
    steam_root = _steam_root(tmp_path)
    second = tmp_path / "Library2"
    exe = _install_game(second)
    _write_library_file(steam_root, {"libraryfolders": {"0": {"path": str(steam_root)}, "1": {"path": str(second)}}})

    assert search_for_install_paths(str(steam_root)) == [str(exe)]


def test_search_deduplicates_registry_and_steam(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    steam_root = _steam_root(tmp_path)
    exe = _install_game(steam_root)
    missing = str(tmp_path / "gone" / "BattlefrontII.exe")
    monkeypatch.setattr(game_locator, "_registry_install_paths", lambda: [str(exe), missing])

    assert search_for_install_paths(str(steam_root)) == [str(exe)]


def test_executable_lookup_ignores_case(tmp_path: Path):
    (tmp_path / "battlefrontii.EXE").write_text("exe", encoding="utf-8")

    found = find_game_executable(str(tmp_path))

    assert found == str(tmp_path / "battlefrontii.EXE")
    assert install_root_from_executable(found) == str(tmp_path)


def test_executable_lookup_handles_missing_directory(tmp_path: Path):
    assert find_game_executable(str(tmp_path / "missing")) is None
    assert find_game_executable(None) is None
