"""
Build script for New Vegas Sanity Check.

Windows: python build.py -> dist/New Vegas Sanity Check/ (onedir)
Linux:   python build.py -> dist/fnv-sanity-check (onefile)

Requires: pyinstaller (pip install .[build])
"""

from __future__ import annotations

import platform
import subprocess
import sys
from pathlib import Path

DIST = Path("dist")
APP_NAME = "New Vegas Sanity Check"
EXE_NAME = "fnv-sanity-check"
ENTRY = Path("fnv_sanity_check") / "__main__.py"


def run(cmd: list[str]) -> None:
    print(f"+ {' '.join(str(c) for c in cmd)}")
    subprocess.run(cmd, check=True)


def _pyinstaller(name: str, *extra: str) -> None:
    run([
        sys.executable, "-m", "PyInstaller",
        "--clean", "--noconfirm", "--windowed",
        "--name", name,
        "--collect-data", "customtkinter",
        *extra,
        str(ENTRY),
    ])


def build_linux() -> None:
    _pyinstaller(EXE_NAME, "--onefile")
    binary = DIST / EXE_NAME
    if not binary.exists():
        sys.exit(f"Build failed: {binary} not found")
    print(f"\nLinux binary: {binary} ({binary.stat().st_size // 1024} KB)")


def build_windows() -> None:
    _pyinstaller(APP_NAME, "--onedir")
    outdir = DIST / APP_NAME
    if not outdir.exists():
        sys.exit(f"Build failed: {outdir} not found")

    size_mb = sum(f.stat().st_size for f in outdir.rglob("*") if f.is_file()) // (1024 * 1024)
    print(f"\nWindows build: {outdir}/ ({size_mb} MB)")
    print("Run it as administrator to let the ASLR fix write to the registry.")


def main() -> None:
    system = platform.system()
    if system == "Windows":
        build_windows()
    elif system == "Linux":
        build_linux()
    else:
        sys.exit(f"Unsupported platform: {system}")


if __name__ == "__main__":
    main()
