from __future__ import annotations

import sys
from pathlib import Path

import scriptconfig as scfg
from loguru import logger

from ..config import LumePackConfig, default_config_path, load

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None, help='Path to config TOML (default: ./lumepack.toml).'
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )


def _cfg_path(p: str | None) -> Path:
    if p:
        return Path(p).resolve()
    return default_config_path()


def _load_cfg(config_path: str | None) -> LumePackConfig:
    cfg, _ = _load_cfg_with_path(config_path)
    return cfg


def _load_cfg_with_path(
    config_path: str | None,
) -> tuple[LumePackConfig, Path]:
    """Load the config and resolve ``paths.lume_home`` once for this run."""
    path = _cfg_path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f'Config not found: {path}. '
            f'Run: lumepack config init --config {path}'
        )
    cfg = load(path).resolve_paths()
    log.debug(
        'Loaded config {} (vm_name={}, lume_home={})',
        path,
        cfg.builder.vm_name or '(empty)',
        cfg.paths.lume_home,
    )
    return cfg, path


__all__ = [name for name in globals() if not name.startswith('__')]
