"""Cleanup that has to wait until the installer process has exited."""
from __future__ import annotations

import os
import shlex
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from typing import List, Optional, Sequence

from utils import hidden_startupinfo, no_window_flags, write_log

DELETE = "delete"
RESTORE = "restore"
REMOVE_TREE = "remove_tree"

SCRIPT_PREFIX = "~finishShaderPatchUninstall"
MAX_ATTEMPTS = 3


@dataclass
class CleanupAction:
    kind: str
    path: str
    backup_path: Optional[str] = None


def _windows_script(actions: Sequence[CleanupAction], wait_for_pids: Sequence[int]) -> List[str]:
    lines = ["@echo off", "setlocal enableextensions"]
    for pid in wait_for_pids:
        lines.append(f"taskkill /F /PID {int(pid)} >nul 2>&1")
    lines.extend([
        "timeout /T 1 /NOBREAK >nul",
        "set ATTEMPTS=0",
        ":retry",
        "set /a ATTEMPTS+=1",
        "set FAILED=0",
    ])
    for action in actions:
        if action.kind == DELETE:
            lines.append(f'if exist "{action.path}" del /f /q "{action.path}"')
            lines.append(f'if exist "{action.path}" set FAILED=1')
        elif action.kind == RESTORE:
            lines.append(f'if exist "{action.backup_path}" move /y "{action.backup_path}" "{action.path}" >nul')
            lines.append(f'if exist "{action.backup_path}" set FAILED=1')
    lines.append(f"if %FAILED%==1 if %ATTEMPTS% LSS {MAX_ATTEMPTS} (timeout /T 1 /NOBREAK >nul & goto retry)")
    for action in actions:
        if action.kind == REMOVE_TREE:
            lines.append(f'if %FAILED%==0 if exist "{action.path}" rmdir /s /q "{action.path}"')
    lines.append('del /f /q "%~f0"')
    return lines


def _posix_script(actions: Sequence[CleanupAction], wait_for_pids: Sequence[int]) -> List[str]:
    lines = ["#!/bin/sh"]
    for pid in wait_for_pids:
        lines.append(f"kill {int(pid)} 2>/dev/null")
    lines.extend([
        "sleep 1",
        "attempt=0",
        "while :; do",
        "  attempt=$((attempt + 1))",
        "  failed=0",
    ])
    for action in actions:
        path = shlex.quote(action.path)
        if action.kind == DELETE:
            lines.append(f"  rm -f {path} 2>/dev/null")
            lines.append(f"  [ -e {path} ] && failed=1")
        elif action.kind == RESTORE:
            backup = shlex.quote(action.backup_path or "")
            lines.append(f"  [ -e {backup} ] && mv -f {backup} {path} 2>/dev/null")
            lines.append(f"  [ -e {backup} ] && failed=1")
    lines.extend([
        f'  if [ "$failed" -eq 0 ] || [ "$attempt" -ge {MAX_ATTEMPTS} ]; then break; fi',
        "  sleep 1",
        "done",
    ])
    for action in actions:
        if action.kind == REMOVE_TREE:
            lines.append(f'[ "$failed" -eq 0 ] && rm -rf {shlex.quote(action.path)}')
    lines.append('rm -f "$0"')
    return lines


def write_cleanup_script(
    actions: Sequence[CleanupAction],
    wait_for_pids: Sequence[int],
    script_dir: Optional[str] = None,
    *,
    windows: Optional[bool] = None,
) -> str:
    if windows is None:
        windows = sys.platform.startswith("win")
    script_dir = script_dir or tempfile.gettempdir()
    os.makedirs(script_dir, exist_ok=True)

    if windows:
        fd, script_path = tempfile.mkstemp(prefix=SCRIPT_PREFIX, suffix=".bat", dir=script_dir)
        os.close(fd)
        with open(script_path, "w", encoding="utf-8", newline="\r\n") as handle:
            handle.write("\n".join(_windows_script(actions, wait_for_pids)) + "\n")
    else:
        fd, script_path = tempfile.mkstemp(prefix=SCRIPT_PREFIX, suffix=".sh", dir=script_dir)
        os.close(fd)
        with open(script_path, "w", encoding="utf-8", newline="\n") as handle:
            handle.write("\n".join(_posix_script(actions, wait_for_pids)) + "\n")
        os.chmod(script_path, 0o700)
    return script_path


def launch_cleanup_script(script_path: str) -> None:
    if script_path.lower().endswith(".bat"):
        subprocess.Popen(
            ["cmd", "/c", script_path],
            creationflags=no_window_flags(),
            startupinfo=hidden_startupinfo(),
            close_fds=True,
        )
        return
    subprocess.Popen(
        ["/bin/sh", script_path],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


def schedule_deferred_cleanup(
    actions: Sequence[CleanupAction],
    wait_for_pids: Sequence[int],
    *,
    script_dir: Optional[str] = None,
) -> Optional[str]:
    """Run actions in a detached script once the given processes are gone."""
    if not actions:
        return None
    script_path = write_cleanup_script(actions, wait_for_pids, script_dir)
    write_log(f"Scheduled cleanup of {len(actions)} items after exit: {script_path}", "Info")
    try:
        launch_cleanup_script(script_path)
    except OSError as exc:
        write_log(f"Failed to launch cleanup script {script_path}: {exc}", "Error")
        raise
    return script_path
