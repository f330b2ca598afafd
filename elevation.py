"""Relaunch the installer with administrator rights."""
from __future__ import annotations

import ctypes
import os
import shutil
import subprocess
import sys
from typing import List, Optional, Sequence

from errors import AccessDenied
from utils import get_executable_path, write_log

SEE_MASK_NOCLOSEPROCESS = 0x00000040
SW_HIDE = 0
INFINITE = 0xFFFFFFFF
ERROR_CANCELLED = 1223


def elevated_command() -> List[str]:
    """Command line that starts another copy of this installer."""
    executable = get_executable_path()
    if executable:
        return [executable]
    return [sys.executable, os.path.join(os.path.dirname(os.path.abspath(__file__)), "main.py")]


def _shell_execute_runas(command: Sequence[str], wait: bool) -> Optional[int]:
    from ctypes import wintypes

    class SHELLEXECUTEINFOW(ctypes.Structure):
        _fields_ = [
            ("cbSize", wintypes.DWORD),
            ("fMask", ctypes.c_ulong),
            ("hwnd", wintypes.HWND),
            ("lpVerb", wintypes.LPCWSTR),
            ("lpFile", wintypes.LPCWSTR),
            ("lpParameters", wintypes.LPCWSTR),
            ("lpDirectory", wintypes.LPCWSTR),
            ("nShow", ctypes.c_int),
            ("hInstApp", wintypes.HINSTANCE),
            ("lpIDList", ctypes.c_void_p),
            ("lpClass", wintypes.LPCWSTR),
            ("hkeyClass", wintypes.HKEY),
            ("dwHotKey", wintypes.DWORD),
            ("hIconOrMonitor", wintypes.HANDLE),
            ("hProcess", wintypes.HANDLE),
        ]

    info = SHELLEXECUTEINFOW()
    info.cbSize = ctypes.sizeof(info)
    info.fMask = SEE_MASK_NOCLOSEPROCESS
    info.lpVerb = "runas"
    info.lpFile = command[0]
    info.lpParameters = subprocess.list2cmdline(list(command[1:]))
    info.lpDirectory = os.path.dirname(os.path.abspath(command[0]))
    info.nShow = SW_HIDE

    if not ctypes.windll.shell32.ShellExecuteExW(ctypes.byref(info)):
        error = ctypes.GetLastError()
        if error == ERROR_CANCELLED:
            raise AccessDenied(command[0], "Administrator rights were declined.")
        raise AccessDenied(command[0], f"Failed to start elevated installer (error {error}).")

    kernel32 = ctypes.windll.kernel32
    try:
        if not wait:
            return None
        kernel32.WaitForSingleObject(info.hProcess, INFINITE)
        exit_code = wintypes.DWORD()
        kernel32.GetExitCodeProcess(info.hProcess, ctypes.byref(exit_code))
        return int(exit_code.value)
    finally:
        if info.hProcess:
            kernel32.CloseHandle(info.hProcess)


def _posix_runas(command: Sequence[str], wait: bool) -> Optional[int]:
    launcher = shutil.which("pkexec") or shutil.which("sudo")
    if not launcher:
        raise AccessDenied(command[0], "Neither pkexec nor sudo is available to obtain administrator rights.")
    full_command = [launcher] + list(command)
    if not wait:
        subprocess.Popen(full_command, start_new_session=True)
        return None
    return subprocess.run(full_command, check=False).returncode


def relaunch_elevated(args: Sequence[str], wait: bool = True) -> Optional[int]:
    """Start an elevated copy of the installer with args.

    Returns the child's exit code when wait is true, otherwise None.
    """
    command = elevated_command() + list(args)
    write_log(f"Requesting administrator rights: {subprocess.list2cmdline(command)}", "Info")
    if sys.platform.startswith("win"):
        return _shell_execute_runas(command, wait)
    return _posix_runas(command, wait)
