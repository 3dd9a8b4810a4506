"""Runtime helpers for constructing lume arguments and locating VM state."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Sequence

LUME_CMD = 'lume'
LUME_HOME_ENV = 'LUME_HOME'
IP_WAIT_S = 120


def resolve_lume_home(
    configured: str = '', environ: Mapping[str, str] | None = None
) -> Path:
    """Resolve the lume home directory once.

    Precedence: explicit configured value, then ``$LUME_HOME``, then
    ``~/.lume``.
    """
    if configured:
        return Path(os.path.expandvars(configured)).expanduser()
    env = os.environ if environ is None else environ
    home = env.get(LUME_HOME_ENV, '')
    if home:
        return Path(home).expanduser()
    return Path.home() / '.lume'


def vm_state_dir(lume_home: Path | str, vm_name: str) -> Path:
    return Path(lume_home) / vm_name


def create_args(
    vm_name: str,
    *,
    ipsw: str = '',
    cpu_count: int = 0,
    memory_mb: int = 0,
    disk_size_gb: int = 0,
) -> list[str]:
    args = ['create']
    if ipsw:
        args.extend(['--ipsw', ipsw])
    if cpu_count > 0:
        args.extend(['--cpu', str(cpu_count)])
    if memory_mb > 0:
        args.extend(['--memory', str(memory_mb)])
    if disk_size_gb > 0:
        args.extend(['--disk-size', str(disk_size_gb)])
    # lume takes the name positionally after all flags.
    args.append(vm_name)
    return args


def set_args(
    vm_name: str,
    *,
    cpu_count: int = 0,
    memory_mb: int = 0,
    display: str = '',
) -> list[str]:
    args = ['set', vm_name]
    if cpu_count > 0:
        args.extend(['--cpu', str(cpu_count)])
    if memory_mb > 0:
        args.extend(['--memory', str(memory_mb * 1024)])
    if display:
        args.extend(['--display', display])
    return args


def ip_args(vm_name: str, extra_args: Sequence[str] = ()) -> list[str]:
    return ['ip', '--wait', str(IP_WAIT_S), vm_name, *extra_args]
