from __future__ import annotations

import os
from pathlib import Path

import pytest

from errors import PathResolutionError
from paths import (
    LEDGER_RELATIVE_PATH,
    WRITE_PROBE_NAME,
    has_write_access,
    is_within_root,
    iter_staged_files,
    missing_parents,
    prune_empty_dirs,
    relative_path,
)


def test_relative_path_strips_the_root(tmp_path: Path):
    rel = relative_path(str(tmp_path / "data" / "file.txt"), str(tmp_path))
    assert rel == os.path.join("data", "file.txt")


def test_relative_path_rejects_files_outside_the_root(tmp_path: Path):
    with pytest.raises(PathResolutionError):
        relative_path(str(tmp_path / "other" / "file.txt"), str(tmp_path / "root"))


def test_relative_path_rejects_the_root_itself(tmp_path: Path):
    with pytest.raises(PathResolutionError):
        relative_path(str(tmp_path), str(tmp_path))


def test_is_within_root_does_not_match_sibling_prefixes(tmp_path: Path):
    assert is_within_root(str(tmp_path / "game"), str(tmp_path / "game" / "a.txt"))
    assert not is_within_root(str(tmp_path / "game"), str(tmp_path / "game2" / "a.txt"))


def test_iter_staged_files_skips_reserved_paths(tmp_path: Path, make_tree):
    root = make_tree(
        tmp_path / "staging",
        {
            "b.txt": "b",
            "a.txt": "a",
            os.path.join("data", "shaderpatch", "shaders.bin"): "s",
            LEDGER_RELATIVE_PATH: "{}",
            os.path.join("data", "shaderpatch", "backup", "x.txt"): "x",
            os.path.join("data", "shaderpatch", ".install_pass", "pass-1", "0"): "j",
            "vc_redist.x64.exe": "redist",
        },
    )

    staged = [os.path.relpath(path, root) for path in iter_staged_files(str(root), ("vc_redist.x64.exe",))]

    assert staged == ["a.txt", "b.txt", os.path.join("data", "shaderpatch", "shaders.bin")]


def test_missing_parents_lists_outermost_first(tmp_path: Path):
    target = tmp_path / "a" / "b" / "c.txt"
    assert missing_parents(str(target)) == [str(tmp_path / "a"), str(tmp_path / "a" / "b")]


def test_prune_empty_dirs_stops_at_non_empty_parent(tmp_path: Path):
    (tmp_path / "root" / "keep" / "empty" / "deeper").mkdir(parents=True)
    (tmp_path / "root" / "keep" / "file.txt").write_text("x", encoding="utf-8")

    removed = prune_empty_dirs(str(tmp_path / "root" / "keep" / "empty" / "deeper"), str(tmp_path / "root"))

    assert len(removed) == 2
    assert (tmp_path / "root" / "keep").is_dir()


def test_prune_empty_dirs_never_removes_the_root(tmp_path: Path):
    (tmp_path / "root" / "sub").mkdir(parents=True)

    prune_empty_dirs(str(tmp_path / "root" / "sub"), str(tmp_path / "root"))

    assert (tmp_path / "root").is_dir()
    assert not (tmp_path / "root" / "sub").exists()


def test_has_write_access_cleans_up_probe(tmp_path: Path):
    assert has_write_access(str(tmp_path)) is True
    assert not (tmp_path / WRITE_PROBE_NAME).exists()
