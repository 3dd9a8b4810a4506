"""Shared utility helpers for running lume, paths, and command formatting."""

from __future__ import annotations

import os
import selectors
import shlex
import signal
import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

from loguru import logger

from .errors import CommandCancelledError, LumeCommandError
from .runtime import LUME_CMD

if TYPE_CHECKING:
    from .ui import Ui

log = logger

POLL_INTERVAL_S = 0.2
TERMINATE_GRACE_S = 5.0
STREAM_TAIL_LINES = 200


def shell_join(cmd: Sequence[str]) -> str:
    return ' '.join(shlex.quote(c) for c in cmd)


def build_lume_argv(args: Sequence[str], *, sleep_s: float = 0) -> list[str]:
    """Return the process argv for a lume invocation.

    A non-zero delay is composed into a single ``bash -c`` process so the
    sleep and the lume call share one process tree.
    """
    lume_argv = [LUME_CMD, *args]
    if not sleep_s:
        return lume_argv
    delay = int(sleep_s) if float(sleep_s).is_integer() else sleep_s
    return ['/bin/bash', '-c', f'sleep {delay} && {shell_join(lume_argv)}']


def _terminate(proc: subprocess.Popen) -> None:
    # The process leads its own session, so signal the whole group to take
    # down a composed ``sleep && lume`` pair together.
    try:
        os.killpg(proc.pid, signal.SIGTERM)
    except ProcessLookupError:
        return
    try:
        proc.wait(TERMINATE_GRACE_S)
    except subprocess.TimeoutExpired:
        os.killpg(proc.pid, signal.SIGKILL)
        proc.wait()


def lume_exec(
    args: Sequence[str],
    *,
    sleep_s: float = 0,
    ui: Optional['Ui'] = None,
    cancel: Optional[threading.Event] = None,
) -> str:
    """Run one lume command and return its trimmed output.

    With ``ui`` the combined output is streamed line by line to
    ``ui.message`` and an empty string is returned; only the last
    ``STREAM_TAIL_LINES`` lines are kept for the error text. Without it the
    output is captured and a non-zero exit raises :class:`LumeCommandError`
    whose text is exactly the trimmed output.
    """
    cmd = build_lume_argv(args, sleep_s=sleep_s)
    log.opt(depth=1).debug('RUN: {}', shell_join(cmd))
    proc = subprocess.Popen(
        cmd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        start_new_session=True,
    )
    assert proc.stdout is not None
    fd = proc.stdout.fileno()
    captured: list[bytes] = []
    tail: deque[str] = deque(maxlen=STREAM_TAIL_LINES)
    pending = b''

    def emit(raw: bytes) -> None:
        line = raw.decode(errors='replace').rstrip('\r')
        tail.append(line)
        ui.message(line)

    try:
        with selectors.DefaultSelector() as sel:
            sel.register(proc.stdout, selectors.EVENT_READ)
            while True:
                if cancel is not None and cancel.is_set():
                    log.warning('Cancelling: {}', shell_join(cmd))
                    raise CommandCancelledError(
                        f'Command cancelled: {shell_join(cmd)}'
                    )
                if not sel.select(timeout=POLL_INTERVAL_S):
                    continue
                data = os.read(fd, 65536)
                if not data:
                    break
                if ui is None:
                    captured.append(data)
                    continue
                pending += data
                *lines, pending = pending.split(b'\n')
                for line in lines:
                    emit(line)
        if ui is not None and pending:
            emit(pending)
    except BaseException:
        # Never leave the child running behind a failed read or UI callback.
        _terminate(proc)
        proc.stdout.close()
        raise
    proc.stdout.close()
    code = proc.wait()
    if ui is None:
        output = b''.join(captured).decode(errors='replace').strip()
    else:
        output = '\n'.join(tail).strip()
    if code != 0:
        log.opt(depth=1).error(
            'Command failed code={} cmd={} output={}',
            code,
            shell_join(cmd),
            output,
        )
        raise LumeCommandError(cmd, output, code)
    log.opt(depth=1).debug('Command ok code=0 cmd={}', shell_join(cmd))
    return '' if ui is not None else output


def which(cmd: str) -> Optional[str]:
    from shutil import which as _which

    return _which(cmd)


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))
