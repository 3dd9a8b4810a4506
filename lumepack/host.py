"""Host prerequisite checks for running lume builds."""

from __future__ import annotations

import platform

from loguru import logger

from .util import which

log = logger

REQUIRED_CMDS = ['lume', 'bash', 'sleep']
OPTIONAL_CMDS = ['ssh']


def check_commands() -> tuple[list[str], list[str]]:
    missing = [c for c in REQUIRED_CMDS if which(c) is None]
    missing_opt = [c for c in OPTIONAL_CMDS if which(c) is None]
    return missing, missing_opt


def host_is_apple_silicon() -> bool:
    # lume only runs on macOS with Apple Virtualization.framework on arm64.
    return platform.system() == 'Darwin' and platform.machine() == 'arm64'
