"""
Example tool providers.

`install_examples()` drops executable launchers for them into a
provider directory, named the way the registry expects:

    hello-mcp        -> tool hello-mcp.hello
    calculator-mcp   -> tools calculator-mcp.add / .multiply / .divide
"""

from __future__ import annotations

import logging
import os
import stat
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

EXAMPLE_PROVIDERS = {
    "hello-mcp": "mcpnet.mcp.servers.hello",
    "calculator-mcp": "mcpnet.mcp.servers.calculator",
}

_LAUNCHER = """#!/bin/sh
PYTHONPATH="{src}${{PYTHONPATH:+:$PYTHONPATH}}" exec "{python}" -m {module} "$@"
"""


def write_launcher(path: str | Path, module: str, python: str | None = None) -> Path:
    """Write an executable shell script that runs `python -m module`."""
    path = Path(path)
    src = Path(__file__).resolve().parents[3]
    path.write_text(_LAUNCHER.format(src=src, python=python or sys.executable, module=module))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def install_examples(directory: str | Path) -> list[Path]:
    """Install launchers for the example providers into `directory`."""
    directory = Path(directory)
    os.makedirs(directory, exist_ok=True)
    installed = []
    for filename, module in EXAMPLE_PROVIDERS.items():
        installed.append(write_launcher(directory / filename, module))
        logger.info(f"Installed example provider {filename} into {directory}")
    return installed
