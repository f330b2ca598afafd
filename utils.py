import ctypes
import datetime
import json
import os
import platform
import subprocess
import sys
import tempfile

APP_NAME = "ShaderPatchInstaller"
DEFAULT_LOG_FILENAME = "ShaderPatchInstaller.log"
SETTINGS_FILENAME = "ShaderPatchInstaller_settings.json"

_NUITKA_DETECTION_KEYS = (
    "NUITKA_ONEFILE_PARENT",
    "NUITKA_EXE_PATH",
    "NUITKA_PACKAGE_HOME",
    "NUITKA_ONEFILE_TEMP",
)

def get_app_data_dir():
    system = platform.system()
    home = os.path.expanduser("~")

    if system == "Windows":
        base = os.environ.get("APPDATA") or os.path.join(home, "AppData", "Roaming")
    elif system == "Darwin":
        base = os.path.join(home, "Library", "Application Support")
    else:
        base = os.environ.get("XDG_DATA_HOME") or os.path.join(home, ".local", "share")

    return os.path.join(base, APP_NAME)

def _resolve_log_path(log_file):
    override = os.environ.get("SPINSTALLER_LOG_FILE")
    if override:
        return override

    if not log_file:
        log_file = DEFAULT_LOG_FILENAME

    if os.path.isabs(log_file):
        return log_file

    filename = os.path.basename(log_file) or DEFAULT_LOG_FILENAME
    return os.path.join(get_app_data_dir(), filename)

def write_log(message, category="Info", log_widget=None, log_file=DEFAULT_LOG_FILENAME):
    timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    full_message = f"{timestamp} - {category}: {message}"
    if log_widget:
        # Define colors based on category
        if category == "Info":
            color = "white"
        elif category == "Error":
            color = "red"
        elif category == "Warning":
            color = "yellow"
        elif category == "Success":
            color = "green"
        else:
            color = "blue"
        html_message = f'<span style="color:{color};">{full_message}</span>'
        handler = getattr(log_widget, "handle_write_log", None)
        if callable(handler):
            handler(full_message=full_message, category=category, html_message=html_message, plain_message=message)
        else:
            log_widget.append(html_message)

    log_path = _resolve_log_path(log_file)
    try:
        directory = os.path.dirname(log_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(full_message + "\n")
    except Exception as exc:
        try:
            print(f"Failed to write log entry to {log_path}: {exc}", file=sys.stderr)
        except Exception:
            pass

def is_admin():
    if sys.platform.startswith("win"):
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except Exception:
            return False
    geteuid = getattr(os, "geteuid", None)
    return bool(geteuid and geteuid() == 0)

def is_frozen_environment():
    """Determine if the installer is running from a frozen executable."""
    if getattr(sys, "frozen", False):
        return True

    if getattr(sys, "_MEIPASS", None):
        return True

    for key in _NUITKA_DETECTION_KEYS:
        if os.environ.get(key):
            return True

    return False

def get_executable_path():
    """Return the path of the running installer binary, or None from source."""
    if not is_frozen_environment():
        return None

    temp_dir = os.path.normcase(os.path.abspath(tempfile.gettempdir()))
    for candidate in (os.environ.get("NUITKA_ONEFILE_PARENT"), sys.argv[0] if sys.argv else None, sys.executable):
        if not candidate:
            continue
        candidate = os.path.abspath(candidate)
        if os.path.isfile(candidate) and not os.path.normcase(candidate).startswith(temp_dir):
            return candidate
    return None

def get_application_path():
    """Directory holding the installer, which doubles as the staging root.

    ``SPINSTALLER_STAGING_DIR`` overrides the detected location so the
    installer can be exercised from a source checkout.
    """
    override = os.environ.get("SPINSTALLER_STAGING_DIR")
    if override:
        return os.path.abspath(override)

    executable = get_executable_path()
    if executable:
        return os.path.dirname(executable)

    return os.path.dirname(os.path.abspath(__file__))

def no_window_flags():
    if os.name != "nt":
        return 0
    return subprocess.CREATE_NO_WINDOW if hasattr(subprocess, "CREATE_NO_WINDOW") else 0

def hidden_startupinfo():
    if os.name != "nt" or not hasattr(subprocess, "STARTUPINFO"):
        return None
    startupinfo = subprocess.STARTUPINFO()
    if hasattr(subprocess, "STARTF_USESHOWWINDOW"):
        startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
        startupinfo.wShowWindow = 0
    return startupinfo

def _settings_file_path():
    return os.path.join(get_app_data_dir(), SETTINGS_FILENAME)

def load_saved_game_directory():
    settings_path = _settings_file_path()
    if not os.path.exists(settings_path):
        return None

    try:
        with open(settings_path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError):
        return None

    saved_dir = data.get("game_directory")
    if saved_dir and os.path.isdir(saved_dir):
        return saved_dir
    return None

def save_game_directory(directory):
    settings_path = _settings_file_path()
    data = {}

    if os.path.exists(settings_path):
        try:
            with open(settings_path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError):
            data = {}

    data["game_directory"] = directory

    try:
        os.makedirs(os.path.dirname(settings_path), exist_ok=True)
        with open(settings_path, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=4)
        return True
    except OSError as exc:
        write_log(f"Failed to save game directory: {exc}", "Error")
        return False
