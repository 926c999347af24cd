#!/usr/bin/env python3
"""Update script for todosync: reinstalls the CLI tool and checks the install."""

import shutil
import subprocess
import sys


def run_update() -> int:
    """Run the update workflow.

    Returns:
        int: Exit code (0 for success, non-zero for failure).
    """
    print("📦 Installing todosync tool...")
    result = subprocess.run(
        ["uv", "tool", "install", ".", "--reinstall", "--force"],
        capture_output=False,
    )
    if result.returncode != 0:
        print("❌ Failed to install tool")
        return 1

    print("🔧 Checking the installed command...")
    if shutil.which("todosync") is None:
        print("   'todosync' is not on PATH. Run: uv tool update-shell")
        return 1
    check = subprocess.run(["todosync", "--help"], capture_output=True, text=True)
    if check.returncode != 0:
        print("❌ 'todosync --help' failed:")
        if check.stderr:
            print(f"   {check.stderr.strip()}")
        return 1

    print("✅ Update complete!")
    return 0


if __name__ == "__main__":
    sys.exit(run_update())
