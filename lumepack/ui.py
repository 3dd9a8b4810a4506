"""User-facing output sinks for build and export progress."""

from __future__ import annotations

import sys
from typing import Protocol, TextIO

from loguru import logger

log = logger


class Ui(Protocol):
    def say(self, message: str) -> None: ...

    def message(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class ConsoleUi:
    """Prefix-tagged console output, mirrored to the debug log."""

    def __init__(
        self,
        prefix: str = 'lumepack',
        *,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        self.prefix = prefix
        self._out = out
        self._err = err

    def say(self, message: str) -> None:
        log.debug('ui.say: {}', message)
        print(f'==> {self.prefix}: {message}', file=self._out or sys.stdout)

    def message(self, message: str) -> None:
        log.debug('ui.message: {}', message)
        print(f'    {self.prefix}: {message}', file=self._out or sys.stdout)

    def error(self, message: str) -> None:
        log.debug('ui.error: {}', message)
        print(f'==> {self.prefix}: {message}', file=self._err or sys.stderr)
