"""Find Star Wars Battlefront II installations to offer as install targets."""
import os
import platform

import vdf

from utils import write_log

GAME_EXECUTABLE_NAME = "BattlefrontII.exe"
STEAM_GAME_SUBDIR = os.path.join("steamapps", "common", "Star Wars Battlefront II Classic", "GameData")

LUCASARTS_REGISTRY_KEYS = (
    r"SOFTWARE\WOW6432Node\LucasArts\Star Wars Battlefront II\1.0",
    r"SOFTWARE\LucasArts\Star Wars Battlefront II\1.0",
)


def _registry_value(hive, subkey, value):
    try:
        import winreg
    except ImportError:
        return None
    try:
        with winreg.OpenKey(hive, subkey) as key:
            location, _ = winreg.QueryValueEx(key, value)
            return location or None
    except (FileNotFoundError, OSError):
        return None


def find_steam_root():
    candidates = []
    if platform.system() == "Windows":
        try:
            import winreg
            registry_targets = [
                (winreg.HKEY_CURRENT_USER, r"Software\Valve\Steam", "SteamPath"),
                (winreg.HKEY_LOCAL_MACHINE, r"SOFTWARE\WOW6432Node\Valve\Steam", "InstallPath"),
                (winreg.HKEY_LOCAL_MACHINE, r"SOFTWARE\Valve\Steam", "InstallPath"),
            ]
            for hive, subkey, value in registry_targets:
                location = _registry_value(hive, subkey, value)
                if location:
                    candidates.append(location)
        except ImportError:
            pass
        for root in (os.environ.get("PROGRAMFILES(X86)"), os.environ.get("PROGRAMFILES")):
            if root:
                candidates.append(os.path.join(root, "Steam"))
    else:
        home = os.path.expanduser("~")
        candidates.extend([
            os.path.join(home, ".local", "share", "Steam"),
            os.path.join(home, ".steam", "steam"),
            os.path.join(home, "Library", "Application Support", "Steam"),
        ])

    for candidate in candidates:
        normalized = os.path.normpath(candidate)
        if os.path.isdir(os.path.join(normalized, "steamapps")):
            return normalized
    return None


def steam_library_folders(steam_root):
    """Every Steam library root listed in libraryfolders.vdf, Steam's own first."""
    libraries = [steam_root]
    manifest = os.path.join(steam_root, "steamapps", "libraryfolders.vdf")
    if not os.path.exists(manifest):
        return libraries

    try:
        with open(manifest, "r", encoding="utf-8") as handle:
            data = vdf.load(handle)
    except (OSError, SyntaxError, UnicodeDecodeError) as exc:
        write_log(f"Failed to read Steam library list {manifest}: {exc}", "Warning")
        return libraries

    folders = data.get("libraryfolders") or data.get("LibraryFolders") or {}
    for key, entry in folders.items():
        if not key.isdigit():
            continue
        # Older clients store the path directly, newer ones nest it.
        path = entry.get("path") if isinstance(entry, dict) else entry
        if path:
            path = os.path.normpath(path)
            if os.path.normcase(path) not in {os.path.normcase(p) for p in libraries}:
                libraries.append(path)
    return libraries


def find_game_executable(directory):
    """Path of the game executable inside directory, matched case-insensitively."""
    if not directory or not os.path.isdir(directory):
        return None
    wanted = GAME_EXECUTABLE_NAME.lower()
    try:
        for name in os.listdir(directory):
            if name.lower() == wanted:
                candidate = os.path.join(directory, name)
                if os.path.isfile(candidate):
                    return candidate
    except OSError:
        return None
    return None


def install_root_from_executable(executable_path):
    return os.path.dirname(os.path.abspath(executable_path))


def _registry_install_paths():
    try:
        import winreg
    except ImportError:
        return []
    paths = []
    for subkey in LUCASARTS_REGISTRY_KEYS:
        location = _registry_value(winreg.HKEY_LOCAL_MACHINE, subkey, "ExePath")
        if location:
            paths.append(location)
    return paths


def _steam_install_paths(steam_root=None):
    steam_root = steam_root or find_steam_root()
    if not steam_root:
        return []
    paths = []
    for library in steam_library_folders(steam_root):
        executable = find_game_executable(os.path.join(library, STEAM_GAME_SUBDIR))
        if executable:
            paths.append(executable)
    return paths


def search_for_install_paths(steam_root=None):
    """Candidate game executables from the registry and Steam libraries."""
    seen = set()
    results = []
    for candidate in _registry_install_paths() + _steam_install_paths(steam_root):
        normalized = os.path.normpath(candidate)
        key = os.path.normcase(normalized)
        if key in seen or not os.path.isfile(normalized):
            continue
        seen.add(key)
        results.append(normalized)
    write_log(f"Found {len(results)} Battlefront II installation(s).", "Info")
    return results
