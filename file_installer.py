"""Copies staged files into the game directory while keeping them revertible."""
from __future__ import annotations

import os
import shutil
from typing import Dict, List, Optional

from errors import AccessDenied, FileOperationError
from journal import PassJournal
from ledger import Ledger
from paths import path_key, relative_path
from utils import write_log


class FileInstaller:
    """Installs one staged file at a time into ``ledger.install_root``.

    The ledger is owned by the caller for the duration of a pass; this
    class only mutates it through :meth:`install_file`.
    """

    def __init__(
        self,
        ledger: Ledger,
        staging_root: str,
        unused_old_files: Optional[Dict[str, str]] = None,
        journal: Optional[PassJournal] = None,
        log_widget=None,
    ):
        self.ledger = ledger
        self.staging_root = os.path.abspath(staging_root)
        self.journal = journal
        self.log_widget = log_widget
        if unused_old_files is None:
            unused_old_files = {path_key(rel): rel for rel in ledger}
        self.unused_old_files = unused_old_files

    def remaining_unused(self) -> List[str]:
        return sorted(self.unused_old_files.values(), key=path_key)

    def install_file(self, source_path: str) -> str:
        """Install source_path and return its relative path."""
        rel = relative_path(source_path, self.staging_root)
        destination = self.ledger.installed_path(rel)
        try:
            self._install(rel, source_path, destination)
        except PermissionError as exc:
            raise AccessDenied(destination, f"Access denied while installing {rel}: {exc}") from exc
        except OSError as exc:
            raise FileOperationError(destination, exc) from exc
        self.unused_old_files.pop(path_key(rel), None)
        return rel

    def _install(self, rel: str, source_path: str, destination: str) -> None:
        destination_exists = os.path.isfile(destination)
        preexisting = rel in self.ledger
        # Once a path has a backup it keeps it; re-installs never back up again.
        had_backup = self.ledger.had_backup(rel) if preexisting else False

        self._make_dirs(os.path.dirname(destination))

        if destination_exists and not preexisting:
            had_backup = self._backup_and_record(rel, destination)
        elif destination_exists and self.journal is not None:
            self.journal.stash(destination)
        elif self.journal is not None:
            self.journal.created_file(destination)

        shutil.copy2(source_path, destination)
        self.ledger.record_installed(rel, had_backup)

    def _backup_and_record(self, rel: str, destination: str) -> bool:
        backup = self.ledger.backup_path(rel)
        if os.path.exists(backup):
            # Keep the first backup as the original rollback point.
            write_log(f"Existing backup found for {rel}; preserving original backup.", "Warning", self.log_widget)
            if self.journal is not None:
                self.journal.stash(destination)
        else:
            self._make_dirs(os.path.dirname(backup))
            shutil.move(destination, backup)
            if self.journal is not None:
                self.journal.backed_up(destination, backup)
            write_log(f"Backed up original {rel}", "Info", self.log_widget)
        self.ledger.record_installed(rel, True)
        return True

    def _make_dirs(self, directory: str) -> None:
        if self.journal is not None:
            self.journal.make_dirs(directory)
        else:
            os.makedirs(directory, exist_ok=True)
