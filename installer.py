"""Install pass: copy the staged patch into a game directory, or leave it untouched."""
from __future__ import annotations

import enum
import os
import shutil
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable, Optional

from elevation import relaunch_elevated
from errors import AccessDenied, ElevatedProcessFailed, FileOperationError, InstallerError
from file_installer import FileInstaller
from journal import PassJournal
from ledger import Ledger
from paths import has_write_access, is_within_root, iter_staged_files, prune_empty_dirs
from runtime_redist import REDIST_NAME
from utils import is_admin, write_log

ProgressCallback = Callable[[int, str], None]


class InstallState(enum.Enum):
    IDLE = "idle"
    CHECKING_ACCESS = "checking_access"
    DELEGATED = "delegated"
    INSTALLING_FILES = "installing_files"
    TIDYING = "tidying"
    PERSISTING = "persisting"
    DONE = "done"
    REVERTING_AND_FAILED = "reverting_and_failed"


class InstallOutcome(enum.Enum):
    INSTALLED = "installed"
    DELEGATED = "delegated"


class Installer:
    """Drives one install pass of the staged patch files.

    Either every staged file ends up installed and the ledger is saved, or
    the game directory is put back the way it was and the original error
    is raised again.
    """

    def __init__(
        self,
        staging_root: str,
        *,
        log_widget=None,
        progress: Optional[ProgressCallback] = None,
        runtime_task: Optional[Callable[[], None]] = None,
        elevate: Callable[..., Optional[int]] = relaunch_elevated,
        is_elevated: Callable[[], bool] = is_admin,
        excluded_names: Iterable[str] = (REDIST_NAME,),
    ):
        self.staging_root = os.path.abspath(staging_root)
        self.log_widget = log_widget
        self.progress = progress
        self.runtime_task = runtime_task
        self.elevate = elevate
        self.is_elevated = is_elevated
        self.excluded_names = tuple(excluded_names)
        self.state = InstallState.IDLE
        self._work_done = 0
        self._work_total = 0

    def install(self, install_root: str, elevated: Optional[bool] = None) -> InstallOutcome:
        install_root = os.path.abspath(install_root)
        if elevated is None:
            elevated = self.is_elevated()
        if not os.path.isdir(install_root):
            raise FileOperationError(install_root, FileNotFoundError("Game directory does not exist"))
        if is_within_root(self.staging_root, install_root):
            raise InstallerError(f"Cannot install into {install_root}: it is inside the installer directory.")

        self.state = InstallState.CHECKING_ACCESS
        if not has_write_access(install_root):
            if elevated:
                raise AccessDenied(install_root)
            return self._delegate(install_root)

        try:
            self._run_pass(install_root, elevated)
        except AccessDenied as exc:
            if elevated:
                raise
            write_log(f"{exc}; retrying with administrator rights.", "Warning", self.log_widget)
            return self._delegate(install_root)
        return InstallOutcome.INSTALLED

    def _delegate(self, install_root: str) -> InstallOutcome:
        self.state = InstallState.DELEGATED
        write_log("Administrator rights are required to install into this directory.", "Info", self.log_widget)
        exit_code = self.elevate(["-install", install_root])
        if exit_code != 0:
            raise ElevatedProcessFailed(exit_code if exit_code is not None else -1)
        write_log("Elevated installer completed successfully.", "Success", self.log_widget)
        return InstallOutcome.DELEGATED

    def _run_pass(self, install_root: str, elevated: bool) -> None:
        self.state = InstallState.INSTALLING_FILES
        ledger = Ledger.load(install_root)
        snapshot = ledger.snapshot()
        journal = PassJournal(install_root, self.log_widget)
        file_installer = FileInstaller(ledger, self.staging_root, journal=journal, log_widget=self.log_widget)
        sources = list(iter_staged_files(self.staging_root, self.excluded_names))
        self._work_done = 0
        self._work_total = len(sources) + len(file_installer.unused_old_files) + 1

        executor: Optional[ThreadPoolExecutor] = None
        runtime_future: Optional[Future] = None
        if self.runtime_task is not None:
            executor = ThreadPoolExecutor(max_workers=1)
            runtime_future = executor.submit(self.runtime_task)

        write_log(f"Installing {len(sources)} files into {install_root}", "Info", self.log_widget)
        try:
            for source in sources:
                rel = file_installer.install_file(source)
                self._advance(f"Copying {rel}")

            self.state = InstallState.TIDYING
            for rel in file_installer.remaining_unused():
                self._tidy(ledger, journal, rel)
                self._advance(f"Removing {rel}")

            self.state = InstallState.PERSISTING
            if runtime_future is not None:
                runtime_future.result()
            ledger.admin_install = ledger.admin_install or elevated
            journal.make_dirs(os.path.dirname(ledger.ledger_path))
            ledger.persist()
        except Exception as exc:
            self.state = InstallState.REVERTING_AND_FAILED
            write_log(f"Install failed: {exc}. Reverting changes...", "Error", self.log_widget)
            self._revert(ledger, journal, snapshot)
            raise
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        journal.commit()
        self.state = InstallState.DONE
        write_log(f"Shader Patch installed to {install_root}", "Success", self.log_widget)
        self._advance("Complete")

    def _tidy(self, ledger: Ledger, journal: PassJournal, rel: str) -> None:
        """Take down a file the previous install placed but this one no longer ships."""
        installed = ledger.installed_path(rel)
        try:
            if os.path.lexists(installed):
                journal.stash(installed)
            if ledger.had_backup(rel):
                backup = ledger.backup_path(rel)
                if os.path.exists(backup):
                    journal.make_dirs(os.path.dirname(installed))
                    shutil.move(backup, installed)
                    journal.restored_backup(backup, installed)
                    self._prune(journal, os.path.dirname(backup), ledger.install_root)
                else:
                    write_log(f"Backup for {rel} is missing; it cannot be restored.", "Warning", self.log_widget)
            else:
                self._prune(journal, os.path.dirname(installed), ledger.install_root)
        except PermissionError as exc:
            raise AccessDenied(installed, f"Access denied while removing {rel}: {exc}") from exc
        except OSError as exc:
            raise FileOperationError(installed, exc) from exc
        ledger.remove_entry(rel)

    @staticmethod
    def _prune(journal: PassJournal, directory: str, install_root: str) -> None:
        for removed in prune_empty_dirs(directory, install_root):
            journal.removed_dir(removed)

    def _revert(self, ledger: Ledger, journal: PassJournal, snapshot) -> None:
        errors = journal.revert()
        ledger.restore(snapshot)
        if errors:
            write_log(f"Revert finished with {len(errors)} errors; some files may need manual cleanup.", "Warning", self.log_widget)
        else:
            write_log("All changes from the failed install were reverted.", "Info", self.log_widget)

    def _advance(self, message: str) -> None:
        self._work_done += 1
        if self.progress is None or not self._work_total:
            return
        percent = int(self._work_done * 100 / self._work_total)
        self.progress(min(percent, 100), message)
