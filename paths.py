"""Path helpers shared by the install and uninstall passes."""
from __future__ import annotations

import errno
import os
from typing import Iterable, Iterator, List, Optional

from errors import PathResolutionError

RESERVED_DIR = os.path.join("data", "shaderpatch")
LEDGER_RELATIVE_PATH = os.path.join(RESERVED_DIR, "install_info.json")
BACKUP_RELATIVE_DIR = os.path.join(RESERVED_DIR, "backup")
JOURNAL_RELATIVE_DIR = os.path.join(RESERVED_DIR, ".install_pass")

WRITE_PROBE_NAME = ".shaderpatch_write_test"


def path_key(relative_path: str) -> str:
    """Comparison key for a relative path on the host filesystem."""
    return os.path.normcase(os.path.normpath(relative_path))


def is_within_root(root_path: str, candidate_path: str) -> bool:
    """Return True if candidate_path is inside root_path."""
    try:
        root_abs = os.path.normcase(os.path.abspath(root_path))
        candidate_abs = os.path.normcase(os.path.abspath(candidate_path))
        return os.path.commonpath([root_abs, candidate_abs]) == root_abs
    except (ValueError, OSError):
        return False


def relative_path(file_path: str, root_path: str) -> str:
    """Path of file_path relative to root_path, without a leading separator."""
    file_abs = os.path.abspath(file_path)
    root_abs = os.path.abspath(root_path)
    if not is_within_root(root_abs, file_abs):
        raise PathResolutionError(f"Failed to get relative path of {file_path} to {root_path}!")
    rel = os.path.relpath(file_abs, root_abs)
    if rel in (os.curdir, "") or rel.startswith(os.pardir):
        raise PathResolutionError(f"Failed to get relative path of {file_path} to {root_path}!")
    return rel.lstrip(os.sep)


def _is_reserved(rel: str) -> bool:
    key = path_key(rel)
    if key == path_key(LEDGER_RELATIVE_PATH):
        return True
    for reserved_dir in (BACKUP_RELATIVE_DIR, JOURNAL_RELATIVE_DIR):
        if key.startswith(path_key(reserved_dir) + os.sep):
            return True
    return False


def iter_staged_files(staging_root: str, excluded_names: Iterable[str] = ()) -> Iterator[str]:
    """Yield absolute paths of every file shipped in the staging root."""
    excluded = {path_key(name) for name in excluded_names}
    for current_root, dirs, files in os.walk(staging_root):
        dirs.sort()
        for name in sorted(files):
            source = os.path.join(current_root, name)
            rel = os.path.relpath(source, staging_root)
            if _is_reserved(rel) or path_key(rel) in excluded:
                continue
            yield source


def has_write_access(root: str) -> bool:
    """Check that the current user may create and remove files below root."""
    probe = os.path.join(root, WRITE_PROBE_NAME)
    try:
        with open(probe, "w", encoding="utf-8") as handle:
            handle.write("shaderpatch-permission-check")
    except OSError as exc:
        if exc.errno in (errno.EACCES, errno.EPERM, errno.EROFS):
            return False
        raise
    finally:
        try:
            if os.path.exists(probe):
                os.remove(probe)
        except OSError:
            pass

    for current_root, dirs, _ in os.walk(root):
        for name in dirs:
            if not os.access(os.path.join(current_root, name), os.W_OK | os.X_OK):
                return False
    return True


def missing_parents(path: str) -> List[str]:
    """Directories that have to be created, outermost first, before path can exist."""
    missing = []
    parent = os.path.dirname(path)
    while parent and not os.path.isdir(parent):
        missing.append(parent)
        next_parent = os.path.dirname(parent)
        if next_parent == parent:
            break
        parent = next_parent
    missing.reverse()
    return missing


def prune_empty_dirs(start_dir: str, stop_at: str) -> List[str]:
    """Remove start_dir and its empty ancestors, stopping below stop_at."""
    removed: List[str] = []
    stop_key = os.path.normcase(os.path.abspath(stop_at))
    current: Optional[str] = os.path.abspath(start_dir)
    while current and is_within_root(stop_at, current) and os.path.normcase(current) != stop_key:
        try:
            os.rmdir(current)
        except OSError:
            break
        removed.append(current)
        current = os.path.dirname(current)
    return removed
