"""Command line surface shared by the unprivileged installer and its elevated copy.

``-install <path>`` and ``-uninstall <parentPid>`` are only passed by the
installer to itself when it relaunches with administrator rights. The exit
code (0 success, 1 failure) is the whole contract between the two processes.
"""
import argparse
import os
import sys

from installer import Installer
from runtime_redist import make_runtime_task
from uninstaller import Uninstaller
from utils import get_application_path, write_log


def parse_cli_arguments(argv=None):
    parser = argparse.ArgumentParser(add_help=False, allow_abbrev=False)
    parser.add_argument("-install", dest="install_path", type=str)
    parser.add_argument("-uninstall", dest="parent_pid", type=int)
    parser.add_argument("--game-dir", type=str)
    parser.add_argument("--staging-dir", type=str)
    args, _ = parser.parse_known_args(sys.argv[1:] if argv is None else argv)
    return args


def staging_root_from(args):
    if getattr(args, "staging_dir", None):
        return os.path.abspath(args.staging_dir)
    return get_application_path()


def run_elevated_install(install_path, staging_root):
    install_path = os.path.normpath(install_path)
    write_log(f"Elevated install into {install_path} (PID {os.getpid()})", "Info")
    installer = Installer(staging_root, runtime_task=make_runtime_task(staging_root))
    try:
        installer.install(install_path, elevated=True)
    except Exception as exc:  # noqa: BLE001 - reported through the exit code
        write_log(f"Elevated install failed: {exc}", "Error")
        return 1
    return 0


def run_elevated_uninstall(parent_pid, install_root):
    write_log(f"Elevated uninstall of {install_root} for parent PID {parent_pid}", "Info")
    uninstaller = Uninstaller(install_root)
    try:
        uninstaller.start_uninstall(elevated=True, parent_pid=parent_pid)
        uninstaller.finish_uninstall()
    except Exception as exc:  # noqa: BLE001 - reported through the exit code
        write_log(f"Elevated uninstall failed: {exc}", "Error")
        return 1
    return 0


def dispatch(args):
    """Run an elevated re-entry mode and return its exit code, or None for the GUI."""
    if args.install_path:
        return run_elevated_install(args.install_path, staging_root_from(args))
    if args.parent_pid is not None:
        return run_elevated_uninstall(args.parent_pid, staging_root_from(args))
    return None
