"""Persisted record of every file the Shader Patch owns in a game directory."""
from __future__ import annotations

import json
import os
import tempfile
from typing import Dict, Iterator, List, Optional, Tuple

from errors import LedgerCorruptError
from paths import BACKUP_RELATIVE_DIR, LEDGER_RELATIVE_PATH, is_within_root, path_key
from utils import write_log

LEDGER_SCHEMA = "shaderpatch.install_info.v1"

# Internal representation: path_key -> (relative path as first recorded, had_backup)
Entries = Dict[str, Tuple[str, bool]]


def ledger_path_for(install_root: str) -> str:
    return os.path.join(install_root, LEDGER_RELATIVE_PATH)


def _to_portable(rel: str) -> str:
    return rel.replace(os.sep, "/")


def _from_portable(rel: str) -> str:
    return os.path.normpath(rel.replace("/", os.sep))


def _is_contained(install_root: str, rel: str) -> bool:
    if os.path.isabs(rel) or os.path.splitdrive(rel)[0]:
        return False
    candidate = os.path.join(install_root, rel)
    return is_within_root(install_root, candidate) and path_key(candidate) != path_key(install_root)


def _atomic_write_json(path: str, document: dict) -> None:
    directory = os.path.dirname(path)
    os.makedirs(directory, exist_ok=True)
    temp_path: Optional[str] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            newline="\n",
            dir=directory,
            prefix=os.path.basename(path) + ".",
            suffix=".tmp",
            delete=False,
        ) as handle:
            temp_path = handle.name
            json.dump(document, handle, indent=2, ensure_ascii=False)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
        temp_path = None
    finally:
        if temp_path is not None and os.path.exists(temp_path):
            os.remove(temp_path)


class Ledger:
    """Install root, backup root and the relative path -> hadBackup mapping."""

    def __init__(
        self,
        install_root: str,
        backup_root: Optional[str] = None,
        *,
        admin_install: bool = False,
    ):
        self.install_root = os.path.abspath(install_root)
        self.backup_root = os.path.abspath(backup_root or os.path.join(self.install_root, BACKUP_RELATIVE_DIR))
        self.admin_install = admin_install
        self._entries: Entries = {}

    @classmethod
    def load(cls, install_root: str) -> "Ledger":
        """Load the ledger stored under install_root, or start a fresh one."""
        path = ledger_path_for(install_root)
        if not os.path.exists(path):
            return cls(install_root)

        try:
            with open(path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise LedgerCorruptError(f"Unable to read install ledger {path}: {exc}") from exc

        if not isinstance(data, dict) or data.get("schema") != LEDGER_SCHEMA:
            raise LedgerCorruptError(f"Unrecognised install ledger format in {path}")

        stored_install = data.get("installPath")
        stored_backup = data.get("backupPath")
        files = data.get("installedFiles")
        admin_install = data.get("adminInstall", False)
        if not isinstance(stored_install, str) or not isinstance(stored_backup, str):
            raise LedgerCorruptError(f"Install ledger {path} is missing its install or backup path")
        if not isinstance(files, dict) or not isinstance(admin_install, bool):
            raise LedgerCorruptError(f"Install ledger {path} has a malformed file table")
        if not is_within_root(stored_install, stored_backup):
            raise LedgerCorruptError(f"Install ledger {path} keeps its backups outside the install path: {stored_backup}")

        ledger = cls(install_root, cls._rebase_backup_root(install_root, stored_install, stored_backup), admin_install=admin_install)
        for rel, had_backup in files.items():
            if not isinstance(rel, str) or not rel or not isinstance(had_backup, bool):
                raise LedgerCorruptError(f"Install ledger {path} has an invalid entry: {rel!r}")
            local_rel = _from_portable(rel)
            if not _is_contained(ledger.install_root, local_rel):
                raise LedgerCorruptError(f"Install ledger {path} has an entry outside the install path: {rel!r}")
            ledger.record_installed(local_rel, had_backup)
        return ledger

    @staticmethod
    def _rebase_backup_root(install_root: str, stored_install: str, stored_backup: str) -> str:
        # The game folder may have been moved since the ledger was written.
        if os.path.normcase(os.path.abspath(stored_install)) == os.path.normcase(os.path.abspath(install_root)):
            return stored_backup
        write_log(f"Install ledger was written for {stored_install}; using {install_root}.", "Warning")
        return os.path.join(install_root, os.path.relpath(stored_backup, stored_install))

    @property
    def ledger_path(self) -> str:
        return ledger_path_for(self.install_root)

    def __contains__(self, relative_path: str) -> bool:
        return path_key(relative_path) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter([rel for rel, _ in self._entries.values()])

    def had_backup(self, relative_path: str) -> bool:
        entry = self._entries.get(path_key(relative_path))
        return bool(entry and entry[1])

    def entries(self) -> Dict[str, bool]:
        return {rel: had_backup for rel, had_backup in self._entries.values()}

    def record_installed(self, relative_path: str, had_backup: bool) -> None:
        key = path_key(relative_path)
        existing = self._entries.get(key)
        rel = existing[0] if existing else os.path.normpath(relative_path)
        self._entries[key] = (rel, had_backup)

    def remove_entry(self, relative_path: str) -> None:
        self._entries.pop(path_key(relative_path), None)

    def snapshot(self) -> Entries:
        return dict(self._entries)

    def restore(self, snapshot: Entries) -> None:
        self._entries = dict(snapshot)

    def installed_path(self, relative_path: str) -> str:
        return os.path.join(self.install_root, relative_path)

    def backup_path(self, relative_path: str) -> str:
        return os.path.join(self.backup_root, relative_path)

    def to_document(self) -> dict:
        return {
            "schema": LEDGER_SCHEMA,
            "installPath": self.install_root,
            "backupPath": self.backup_root,
            "adminInstall": self.admin_install,
            "installedFiles": {
                _to_portable(rel): had_backup
                for rel, had_backup in sorted(self._entries.values(), key=lambda item: path_key(item[0]))
            },
        }

    def persist(self) -> None:
        """Atomically replace the ledger file with the current state."""
        _atomic_write_json(self.ledger_path, self.to_document())
        write_log(f"Saved install ledger with {len(self)} entries to {self.ledger_path}", "Info")

    def delete_file(self) -> None:
        if os.path.exists(self.ledger_path):
            os.remove(self.ledger_path)

    def verify(self) -> List[str]:
        """Describe every place where disk contents disagree with the ledger."""
        problems = []
        for rel, had_backup in sorted(self._entries.values()):
            if not os.path.isfile(self.installed_path(rel)):
                problems.append(f"missing installed file: {rel}")
            if had_backup and not os.path.isfile(self.backup_path(rel)):
                problems.append(f"missing backup: {rel}")

        if os.path.isdir(self.backup_root):
            for current_root, _, files in os.walk(self.backup_root):
                for name in files:
                    rel = os.path.relpath(os.path.join(current_root, name), self.backup_root)
                    if not self.had_backup(rel):
                        problems.append(f"orphan backup: {rel}")
        return sorted(problems)
