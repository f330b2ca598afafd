#!/usr/bin/env python3
import argparse
import os

from errors import LedgerCorruptError
from ledger import Ledger, ledger_path_for


def describe_ledger(ledger):
    print(f"Install path: {ledger.install_root}")
    print(f"Backup path: {ledger.backup_root}")
    print(f"Admin install: {ledger.admin_install}")
    for rel, had_backup in sorted(ledger.entries().items()):
        marker = "backup" if had_backup else "new"
        print(f"  [{marker}] {rel}")
    print(f"{len(ledger)} files recorded")


def main():
    parser = argparse.ArgumentParser(
        description="Check a Shader Patch install ledger against the files on disk."
    )
    parser.add_argument(
        "game_dir",
        help="Game directory containing data/shaderpatch/install_info.json.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only print problems, not the recorded files.",
    )
    args = parser.parse_args()

    game_dir = os.path.abspath(args.game_dir)
    if not os.path.isfile(ledger_path_for(game_dir)):
        raise SystemExit(f"No install ledger found in {game_dir}")

    try:
        ledger = Ledger.load(game_dir)
    except LedgerCorruptError as exc:
        raise SystemExit(str(exc))

    if not args.quiet:
        describe_ledger(ledger)

    problems = ledger.verify()
    for problem in problems:
        print(f"PROBLEM: {problem}")
    print(f"Problems found: {len(problems)}")
    return 1 if problems else 0


if __name__ == "__main__":
    raise SystemExit(main())
