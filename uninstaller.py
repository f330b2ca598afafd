"""Uninstall pass: remove every ledger entry, deferring files that are in use."""
from __future__ import annotations

import enum
import os
import shutil
from dataclasses import dataclass
from typing import Callable, List, Optional

from deferred_cleanup import DELETE, REMOVE_TREE, RESTORE, CleanupAction, schedule_deferred_cleanup
from elevation import relaunch_elevated
from errors import LedgerCorruptError
from ledger import Ledger, ledger_path_for
from paths import LEDGER_RELATIVE_PATH, RESERVED_DIR, has_write_access, is_within_root, path_key, prune_empty_dirs
from utils import get_executable_path, is_admin, write_log


class UninstallState(enum.Enum):
    IDLE = "idle"
    CHECKING_ACCESS = "checking_access"
    DELEGATED = "delegated"
    REMOVING = "removing"
    CLEANUP = "cleanup"
    DONE = "done"


class UninstallOutcome(enum.Enum):
    REMOVED = "removed"
    DELEGATED = "delegated"


@dataclass
class RemovalResult:
    relative_path: str
    ok: bool
    error: Optional[OSError] = None


@dataclass
class DeferredFile:
    relative_path: str
    installed_path: str
    backup_path: Optional[str] = None


def is_uninstallable(root: str) -> bool:
    """True when root holds a Shader Patch install ledger."""
    return os.path.isfile(ledger_path_for(root))


class Uninstaller:
    def __init__(
        self,
        install_root: str,
        *,
        log_widget=None,
        scheduler: Callable[..., Optional[str]] = schedule_deferred_cleanup,
        elevate: Callable[..., Optional[int]] = relaunch_elevated,
        is_elevated: Callable[[], bool] = is_admin,
        executable_path: Optional[str] = None,
    ):
        self.install_root = os.path.abspath(install_root)
        self.log_widget = log_widget
        self.scheduler = scheduler
        self.elevate = elevate
        self.is_elevated = is_elevated
        self.executable_path = executable_path if executable_path is not None else get_executable_path()
        self.state = UninstallState.IDLE
        self.deferred_files: List[DeferredFile] = []
        self.parent_pid: Optional[int] = None

    @property
    def reserved_dir(self) -> str:
        return os.path.join(self.install_root, RESERVED_DIR)

    def start_uninstall(self, elevated: Optional[bool] = None, parent_pid: Optional[int] = None) -> UninstallOutcome:
        if elevated is None:
            elevated = self.is_elevated()
        self.parent_pid = parent_pid

        self.state = UninstallState.CHECKING_ACCESS
        if not is_uninstallable(self.install_root):
            raise LedgerCorruptError(f"No install ledger found in {self.install_root}")
        ledger = Ledger.load(self.install_root)

        if not elevated and (ledger.admin_install or not has_write_access(self.install_root)):
            self.state = UninstallState.DELEGATED
            write_log("Shader Patch was installed with administrator rights; restarting elevated.", "Info", self.log_widget)
            self.elevate(["-uninstall", str(os.getpid())], wait=False)
            return UninstallOutcome.DELEGATED

        self.state = UninstallState.REMOVING
        removed = 0
        for rel, had_backup in sorted(ledger.entries().items(), key=lambda item: path_key(item[0])):
            result = self._remove_file(ledger, rel, had_backup)
            if result.ok:
                removed += 1
            else:
                backup = ledger.backup_path(rel) if had_backup else None
                self.deferred_files.append(DeferredFile(rel, ledger.installed_path(rel), backup))
                write_log(f"Could not remove {rel} ({result.error}); it will be removed after exit.", "Warning", self.log_widget)
            ledger.remove_entry(rel)

        self.state = UninstallState.CLEANUP
        try:
            ledger.delete_file()
        except OSError as exc:
            write_log(f"Failed to delete install ledger ({exc}); it will be removed after exit.", "Warning", self.log_widget)
            self.deferred_files.append(DeferredFile(LEDGER_RELATIVE_PATH, ledger.ledger_path))
        self._prune_reserved_dir()

        write_log(
            f"Uninstall removed {removed} files; {len(self.deferred_files)} deferred until exit.",
            "Success",
            self.log_widget,
        )
        return UninstallOutcome.REMOVED

    def _remove_file(self, ledger: Ledger, rel: str, had_backup: bool) -> RemovalResult:
        installed = ledger.installed_path(rel)
        try:
            if os.path.lexists(installed):
                os.remove(installed)
            if had_backup:
                backup = ledger.backup_path(rel)
                if os.path.exists(backup):
                    os.makedirs(os.path.dirname(installed), exist_ok=True)
                    shutil.move(backup, installed)
                else:
                    write_log(f"Backup for {rel} is missing; original cannot be restored.", "Warning", self.log_widget)
            else:
                prune_empty_dirs(os.path.dirname(installed), self.install_root)
        except OSError as exc:
            return RemovalResult(rel, False, exc)
        return RemovalResult(rel, True)

    def _prune_reserved_dir(self) -> None:
        if not os.path.isdir(self.reserved_dir):
            return
        for current_root, _, _ in os.walk(self.reserved_dir, topdown=False):
            try:
                os.rmdir(current_root)
            except OSError:
                continue
        prune_empty_dirs(os.path.dirname(self.reserved_dir), self.install_root)

    def cleanup_actions(self) -> List[CleanupAction]:
        actions = []
        for deferred in self.deferred_files:
            if deferred.backup_path:
                actions.append(CleanupAction(RESTORE, deferred.installed_path, deferred.backup_path))
            else:
                actions.append(CleanupAction(DELETE, deferred.installed_path))

        executable = self.executable_path
        if executable and is_within_root(self.install_root, executable):
            scheduled = {os.path.normcase(action.path) for action in actions}
            if os.path.normcase(executable) not in scheduled:
                actions.append(CleanupAction(DELETE, executable))

        if actions:
            actions.append(CleanupAction(REMOVE_TREE, self.reserved_dir))
        return actions

    def finish_uninstall(self) -> Optional[str]:
        """Hand deferred files and the installer binary to the post-exit cleanup."""
        pids = [os.getpid()]
        if self.parent_pid:
            pids.append(self.parent_pid)
        script = self.scheduler(self.cleanup_actions(), pids)
        self.state = UninstallState.DONE
        return script
