#!/usr/bin/env python3
"""Install fivewhy in editable mode and run its test suite."""

from __future__ import annotations

import os
import subprocess
import sys


def run(command: list[str], env: dict[str, str] | None = None) -> None:
    print(f"+ {' '.join(command)}", flush=True)
    subprocess.run(command, check=True, env=env)


def main() -> int:
    print(f"Python interpreter: {sys.executable}", flush=True)
    env = {**os.environ, "FIVEWHY_TEST_MODE": "on", "FIVEWHY_LOG_TO_FILE": "off"}
    try:
        run([sys.executable, "-m", "pip", "install", "-e", ".[dev]"])
        run([sys.executable, "-m", "pytest", "-q", *sys.argv[1:]], env=env)
    except subprocess.CalledProcessError as exc:
        return exc.returncode or 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
