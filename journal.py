"""Undo log for a single install pass."""
from __future__ import annotations

import os
import shutil
import tempfile
from typing import List, Optional, Tuple

from paths import JOURNAL_RELATIVE_DIR, missing_parents
from utils import write_log

CREATED_DIR = "created_dir"
CREATED_FILE = "created_file"
BACKED_UP = "backed_up"
STASHED = "stashed"
RESTORED_BACKUP = "restored_backup"
REMOVED_DIR = "removed_dir"


def _move(source: str, destination: str) -> None:
    os.makedirs(os.path.dirname(destination), exist_ok=True)
    if os.path.exists(destination):
        os.remove(destination)
    shutil.move(source, destination)


class PassJournal:
    """Every filesystem change an install pass makes, in order.

    Overwritten or tidied patch files are moved into a scratch directory
    under the install root instead of being deleted, so :meth:`revert` can
    put the tree back exactly as it was before the pass started.
    """

    def __init__(self, install_root: str, log_widget=None):
        self.install_root = os.path.abspath(install_root)
        self.log_widget = log_widget
        self.ops: List[Tuple[str, ...]] = []
        self._stash_dir: Optional[str] = None
        self._stash_parents: List[str] = []

    @property
    def journal_root(self) -> str:
        return os.path.join(self.install_root, JOURNAL_RELATIVE_DIR)

    def created_dir(self, path: str) -> None:
        self.ops.append((CREATED_DIR, path))

    def created_file(self, path: str) -> None:
        self.ops.append((CREATED_FILE, path))

    def backed_up(self, installed_path: str, backup_path: str) -> None:
        self.ops.append((BACKED_UP, installed_path, backup_path))

    def restored_backup(self, backup_path: str, installed_path: str) -> None:
        self.ops.append((RESTORED_BACKUP, backup_path, installed_path))

    def removed_dir(self, path: str) -> None:
        self.ops.append((REMOVED_DIR, path))

    def make_dirs(self, directory: str) -> None:
        """Create directory and its parents, journaling each new one."""
        for missing in missing_parents(os.path.join(directory, "_")):
            os.mkdir(missing)
            self.created_dir(missing)

    def stash(self, path: str) -> str:
        """Move path out of the way, remembering where it came from."""
        if self._stash_dir is None:
            self._stash_parents = missing_parents(os.path.join(self.journal_root, "_"))
            self.make_dirs(self.journal_root)
            self._stash_dir = tempfile.mkdtemp(prefix="pass-", dir=self.journal_root)
        stash_path = os.path.join(self._stash_dir, str(len(self.ops)))
        shutil.move(path, stash_path)
        self.ops.append((STASHED, path, stash_path))
        return stash_path

    def _undo(self, op: Tuple[str, ...]) -> None:
        kind = op[0]
        if kind == CREATED_DIR:
            if os.path.isdir(op[1]):
                os.rmdir(op[1])
        elif kind == CREATED_FILE:
            if os.path.exists(op[1]):
                os.remove(op[1])
        elif kind == BACKED_UP:
            _, installed_path, backup_path = op
            _move(backup_path, installed_path)
        elif kind == STASHED:
            _, path, stash_path = op
            _move(stash_path, path)
        elif kind == RESTORED_BACKUP:
            _, backup_path, installed_path = op
            _move(installed_path, backup_path)
        elif kind == REMOVED_DIR:
            os.makedirs(op[1], exist_ok=True)

    def revert(self) -> List[str]:
        """Undo every recorded change, newest first. Errors are collected, not raised."""
        errors: List[str] = []
        # Created directories may hold the stash, so they go once it is discarded.
        created_dirs = []
        for op in reversed(self.ops):
            if op[0] == CREATED_DIR:
                created_dirs.append(op)
                continue
            self._try_undo(op, errors)
        self.ops = []
        if errors:
            self._keep_stash()
        else:
            self._discard_stash()
        for op in created_dirs:
            self._try_undo(op, errors)
        return errors

    def _try_undo(self, op: Tuple[str, ...], errors: List[str]) -> None:
        try:
            self._undo(op)
        except OSError as exc:
            errors.append(f"{op[0]} {op[1]}: {exc}")
            write_log(f"Failed to revert {op[0]} for {op[1]}: {exc}", "Warning", self.log_widget)

    def _keep_stash(self) -> None:
        # Some files could not be put back; the stash may hold their only copy.
        if self._stash_dir is not None:
            write_log(f"Files that could not be restored were kept in {self._stash_dir}", "Warning", self.log_widget)
        self._stash_dir = None
        self._stash_parents = []

    def commit(self) -> None:
        """Forget the recorded changes and delete the stashed files."""
        self.ops = []
        self._discard_stash()

    def _discard_stash(self) -> None:
        if self._stash_dir is None:
            return
        try:
            shutil.rmtree(self._stash_dir)
            for parent in [self.journal_root] + list(reversed(self._stash_parents)):
                if os.path.isdir(parent) and not os.listdir(parent):
                    os.rmdir(parent)
        except OSError as exc:
            write_log(f"Failed to remove install journal {self._stash_dir}: {exc}", "Warning", self.log_widget)
        self._stash_dir = None
        self._stash_parents = []
