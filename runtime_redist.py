"""Visual C++ runtime installation, run alongside the file copy."""
from __future__ import annotations

import functools
import os
import subprocess
import sys
from typing import Callable, Optional

from errors import FileOperationError
from utils import hidden_startupinfo, no_window_flags, write_log

REDIST_NAME = "vc_redist.x64.exe"
RUNTIME_SUBKEYS = (
    r"SOFTWARE\Microsoft\VisualStudio\14.0\VC\Runtimes\x64",
    r"SOFTWARE\WOW6432Node\Microsoft\VisualStudio\14.0\VC\Runtimes\x64",
)
# 1638: a newer version is already installed, 3010: installed, restart required
SUCCESS_CODES = (0, 1638, 3010)


def is_runtime_installed() -> bool:
    if not sys.platform.startswith("win"):
        return True
    try:
        import winreg
    except ImportError:
        return True
    for subkey in RUNTIME_SUBKEYS:
        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, subkey) as key:
                installed, _ = winreg.QueryValueEx(key, "Installed")
                if installed == 1:
                    return True
        except (FileNotFoundError, OSError):
            continue
    return False


def install_runtime(redist_path: str, log_widget=None) -> None:
    write_log("Installing the Visual C++ runtime...", "Info", log_widget)
    try:
        result = subprocess.run(
            [redist_path, "/install", "/quiet", "/norestart"],
            check=False,
            creationflags=no_window_flags(),
            startupinfo=hidden_startupinfo(),
        )
    except OSError as exc:
        raise FileOperationError(redist_path, exc) from exc

    if result.returncode not in SUCCESS_CODES:
        raise FileOperationError(redist_path, RuntimeError(f"runtime installer exited with code {result.returncode}"))
    if result.returncode == 3010:
        write_log("Visual C++ runtime installed; a restart is required to finish.", "Warning", log_widget)
    else:
        write_log("Visual C++ runtime is installed.", "Success", log_widget)


def make_runtime_task(staging_root: str, log_widget=None) -> Optional[Callable[[], None]]:
    """Return a callable installing the bundled runtime, or None when not needed."""
    redist_path = os.path.join(staging_root, REDIST_NAME)
    if not os.path.isfile(redist_path):
        return None
    if is_runtime_installed():
        write_log("Visual C++ runtime already present.", "Info", log_widget)
        return None
    return functools.partial(install_runtime, redist_path, log_widget)
