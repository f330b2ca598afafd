from __future__ import annotations

import os
from pathlib import Path

import pytest

from deferred_cleanup import DELETE, REMOVE_TREE, RESTORE, CleanupAction
from errors import LedgerCorruptError
from installer import Installer
from ledger import Ledger
from uninstaller import UninstallOutcome, UninstallState, Uninstaller, is_uninstallable


class _RecordingScheduler:
    def __init__(self):
        self.calls = []

    def __call__(self, actions, wait_for_pids):
        self.calls.append((list(actions), list(wait_for_pids)))
        return "cleanup-script" if actions else None


def _install(game: Path, staging: Path) -> None:
    Installer(str(staging), is_elevated=lambda: False).install(str(game))


def _uninstaller(game: Path, **kwargs) -> Uninstaller:
    kwargs.setdefault("scheduler", _RecordingScheduler())
    kwargs.setdefault("is_elevated", lambda: False)
    kwargs.setdefault("executable_path", "")
    return Uninstaller(str(game), **kwargs)


def test_uninstall_restores_the_original_tree(game: Path, staging: Path, tree_state):
    before = tree_state(game)
    _install(game, staging)
    assert is_uninstallable(str(game))
    uninstaller = _uninstaller(game)

    outcome = uninstaller.start_uninstall()

    assert outcome is UninstallOutcome.REMOVED
    assert uninstaller.state is UninstallState.CLEANUP
    assert uninstaller.deferred_files == []
    assert tree_state(game) == before
    assert not is_uninstallable(str(game))


def test_finish_uninstall_without_leftovers_schedules_nothing(game: Path, staging: Path):
    _install(game, staging)
    scheduler = _RecordingScheduler()
    uninstaller = _uninstaller(game, scheduler=scheduler)
    uninstaller.start_uninstall()

    assert uninstaller.finish_uninstall() is None
    assert scheduler.calls == [([], [os.getpid()])]
    assert uninstaller.state is UninstallState.DONE


def test_locked_files_are_deferred(monkeypatch: pytest.MonkeyPatch, game: Path, staging: Path):
    _install(game, staging)
    real_remove = os.remove
    locked = {str(game / "d3d9.dll"), str(game / "shaderpatch.yml")}

    def remove(path, *args, **kwargs):
        if str(path) in locked:
            raise PermissionError("file in use")
        return real_remove(path, *args, **kwargs)

    monkeypatch.setattr(os, "remove", remove)
    scheduler = _RecordingScheduler()
    uninstaller = _uninstaller(game, scheduler=scheduler)

    uninstaller.start_uninstall(parent_pid=4242)
    script = uninstaller.finish_uninstall()

    assert [deferred.relative_path for deferred in uninstaller.deferred_files] == ["d3d9.dll", "shaderpatch.yml"]
    assert not is_uninstallable(str(game))
    assert not (game / "data" / "shaderpatch" / "shaders.bin").exists()
    backup = os.path.join(str(game), "data", "shaderpatch", "backup", "shaderpatch.yml")
    assert script == "cleanup-script"
    actions, pids = scheduler.calls[0]
    assert actions == [
        CleanupAction(DELETE, str(game / "d3d9.dll")),
        CleanupAction(RESTORE, str(game / "shaderpatch.yml"), backup),
        CleanupAction(REMOVE_TREE, os.path.join(str(game), "data", "shaderpatch")),
    ]
    assert pids == [os.getpid(), 4242]


def test_installer_binary_inside_game_is_scheduled(game: Path, staging: Path):
    _install(game, staging)
    executable = str(game / "ShaderPatchInstaller.exe")
    uninstaller = _uninstaller(game, executable_path=executable)
    uninstaller.start_uninstall()

    actions = uninstaller.cleanup_actions()

    assert actions == [
        CleanupAction(DELETE, executable),
        CleanupAction(REMOVE_TREE, os.path.join(str(game), "data", "shaderpatch")),
    ]


def test_admin_install_is_delegated(game: Path, staging: Path, tree_state):
    _install(game, staging)
    ledger = Ledger.load(str(game))
    ledger.admin_install = True
    ledger.persist()
    before = tree_state(game)
    calls = []

    def elevate(args, wait=True):
        calls.append((list(args), wait))

    uninstaller = _uninstaller(game, elevate=elevate)

    assert uninstaller.start_uninstall() is UninstallOutcome.DELEGATED
    assert calls == [(["-uninstall", str(os.getpid())], False)]
    assert tree_state(game) == before


def test_missing_ledger_is_an_error(game: Path):
    with pytest.raises(LedgerCorruptError):
        _uninstaller(game).start_uninstall()


def test_locked_ledger_file_is_deferred(monkeypatch: pytest.MonkeyPatch, game: Path, staging: Path):
    _install(game, staging)
    ledger_path = Ledger.load(str(game)).ledger_path
    real_remove = os.remove

    def remove(path, *args, **kwargs):
        if str(path) == ledger_path:
            raise PermissionError("ledger is open")
        return real_remove(path, *args, **kwargs)

    monkeypatch.setattr(os, "remove", remove)
    scheduler = _RecordingScheduler()
    uninstaller = _uninstaller(game, scheduler=scheduler)

    assert uninstaller.start_uninstall() is UninstallOutcome.REMOVED
    uninstaller.finish_uninstall()

    actions, _ = scheduler.calls[0]
    assert actions == [
        CleanupAction(DELETE, ledger_path),
        CleanupAction(REMOVE_TREE, os.path.join(str(game), "data", "shaderpatch")),
    ]
