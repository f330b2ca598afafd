from __future__ import annotations

import os
from pathlib import Path

import pytest

import journal as journal_module
from journal import PassJournal


def test_revert_restores_stashed_files_and_removes_created_dirs(tmp_path: Path, tree_state):
    (tmp_path / "keep.txt").write_text("original", encoding="utf-8")
    before = tree_state(tmp_path)
    journal = PassJournal(str(tmp_path))

    journal.stash(str(tmp_path / "keep.txt"))
    journal.make_dirs(str(tmp_path / "data" / "shaderpatch" / "backup"))
    new_file = tmp_path / "data" / "new.txt"
    new_file.write_text("new", encoding="utf-8")
    journal.created_file(str(new_file))

    assert journal.revert() == []
    assert tree_state(tmp_path) == before


def test_commit_discards_stash(tmp_path: Path):
    (tmp_path / "old.txt").write_text("old", encoding="utf-8")
    journal = PassJournal(str(tmp_path))
    journal.stash(str(tmp_path / "old.txt"))
    (tmp_path / "data" / "shaderpatch" / "install_info.json").write_text("{}", encoding="utf-8")

    journal.commit()

    assert not os.path.exists(journal.journal_root)
    assert not (tmp_path / "old.txt").exists()
    assert journal.ops == []


def test_failed_restore_keeps_the_stashed_copy(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    (tmp_path / "d3d9.dll").write_text("previous patch", encoding="utf-8")
    journal = PassJournal(str(tmp_path))
    stash_path = journal.stash(str(tmp_path / "d3d9.dll"))

    def locked_move(source, destination):
        raise PermissionError("d3d9.dll is in use")

    monkeypatch.setattr(journal_module, "_move", locked_move)

    errors = journal.revert()

    assert len(errors) == 1
    assert Path(stash_path).read_text(encoding="utf-8") == "previous patch"
