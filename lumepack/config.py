"""Typed build/export configuration, TOML persistence, and value parsing."""

from __future__ import annotations

import re
import tomllib
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import ubelt as ub

from .errors import ConfigError
from .runtime import resolve_lume_home
from .util import expand

DEFAULT_CHUNK_SIZE = '500M'
DEFAULT_CONFIG_NAME = 'lumepack.toml'

_SIZE_RE = re.compile(r'^\s*(\d+)\s*([A-Za-z]*)\s*$')
# split(1) suffixes are case-sensitive; ``b`` is a 512-byte block and
# lowercase ``k`` is the one accepted alias of ``K``.
_SIZE_UNITS = {
    '': 1,
    'b': 512,
    'k': 1024,
}
for _i, _p in enumerate('KMGTPE', start=1):
    _SIZE_UNITS[_p] = 1024**_i
    _SIZE_UNITS[f'{_p}iB'] = 1024**_i
    _SIZE_UNITS[f'{_p}B'] = 1000**_i

_DURATION_PART_RE = re.compile(r'(\d+(?:\.\d+)?)(ms|h|m|s)')
_DURATION_SCALE = {'ms': 0.001, 's': 1.0, 'm': 60.0, 'h': 3600.0}


def parse_size(text: str | int) -> int:
    """Parse a ``split(1)`` style size into bytes.

    Suffixes are case-sensitive. ``K``/``KiB`` and friends are powers of
    1024, ``KB`` and friends are powers of 1000, ``b`` is 512 bytes and a
    bare number is a byte count.

    Example:
        >>> parse_size('500M')
        524288000
        >>> parse_size('2KB')
        2000
        >>> parse_size('4b')
        2048
    """
    if isinstance(text, bool):
        raise ConfigError(f'Invalid size: {text!r}')
    if isinstance(text, int):
        value, unit = text, ''
    else:
        m = _SIZE_RE.match(str(text))
        if m is None:
            raise ConfigError(f'Invalid size: {text!r}')
        value, unit = int(m.group(1)), m.group(2)
    if unit not in _SIZE_UNITS:
        raise ConfigError(f'Invalid size unit in {text!r}')
    size = value * _SIZE_UNITS[unit]
    if size <= 0:
        raise ConfigError(f'Size must be positive: {text!r}')
    return size


def parse_duration(value: str | int | float) -> float:
    """Parse a duration into seconds.

    Numbers are taken as seconds. Strings use Go-style units, e.g. ``30s``,
    ``2m``, ``1h30m``, ``500ms``.
    """
    if isinstance(value, bool):
        raise ConfigError(f'Invalid duration: {value!r}')
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for m in _DURATION_PART_RE.finditer(text):
                if m.start() != pos:
                    break
                seconds += float(m.group(1)) * _DURATION_SCALE[m.group(2)]
                pos = m.end()
            if pos != len(text):
                raise ConfigError(f'Invalid duration: {value!r}') from None
    if seconds < 0:
        raise ConfigError(f'Duration must not be negative: {value!r}')
    return seconds


def _as_int(section: str, key: str, value: Any) -> int:
    # Memory and friends are whole numbers; sized strings like "4GB" are
    # rejected rather than guessed at.
    if isinstance(value, bool) or not isinstance(value, int):
        name = f'{section}.{key}' if section else key
        raise ConfigError(f'{name} must be an integer, got {value!r}')
    return value


def _as_str(section: str, key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ConfigError(f'{section}.{key} must be a string, got {value!r}')
    return value


@dataclass(frozen=True)
class BuilderConfig:
    vm_name: str = ''
    ipsw: str = ''
    cpu_count: int = 0
    memory_mb: int = 0
    disk_size_gb: int = 0
    display: str = ''
    create_grace_time: float = 0.0
    ip_extra_args: tuple[str, ...] = ()

    def validate(self) -> list[str]:
        errs: list[str] = []
        if not self.vm_name:
            errs.append('vm_name is required')
        for key in ('cpu_count', 'memory_mb', 'disk_size_gb'):
            if getattr(self, key) < 0:
                errs.append(f'{key} must not be negative')
        if self.create_grace_time < 0:
            errs.append('create_grace_time must not be negative')
        if not isinstance(self.display, str):
            errs.append(f'display must be a string, got {self.display!r}')
        return errs


@dataclass(frozen=True)
class ExportConfig:
    vm_name: str = ''
    tag: str = ''
    chunk_size: str = DEFAULT_CHUNK_SIZE


@dataclass(frozen=True)
class PathsConfig:
    lume_home: str = ''


@dataclass(frozen=True)
class LumePackConfig:
    builder: BuilderConfig = field(default_factory=BuilderConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    verbosity: int = 1

    @property
    def export_vm_name(self) -> str:
        return self.export.vm_name or self.builder.vm_name

    def resolve_paths(self, environ=None) -> 'LumePackConfig':
        """Return a copy with ``paths.lume_home`` resolved to an absolute path."""
        home = resolve_lume_home(self.paths.lume_home, environ)
        return replace(self, paths=PathsConfig(lume_home=expand(str(home))))


_INT_KEYS = {'cpu_count', 'memory_mb', 'disk_size_gb'}


def _builder_from_dict(raw: dict) -> BuilderConfig:
    kwargs: dict[str, Any] = {}
    known = {f.name for f in fields(BuilderConfig)}
    for k, v in raw.items():
        if k not in known:
            continue
        if k in _INT_KEYS:
            v = _as_int('builder', k, v)
        elif k == 'create_grace_time':
            v = parse_duration(v)
        elif k == 'ip_extra_args':
            if isinstance(v, str):
                v = [v]
            v = tuple(str(a) for a in v)
        else:
            v = _as_str('builder', k, v)
        kwargs[k] = v
    return BuilderConfig(**kwargs)


def _section_from_dict(cls, section: str, raw: dict):
    kwargs: dict[str, str] = {}
    known = {f.name for f in fields(cls)}
    for k, v in raw.items():
        if k not in known:
            continue
        if k == 'chunk_size' and type(v) is int:
            # A bare byte count.
            v = str(v)
        kwargs[k] = _as_str(section, k, v)
    return cls(**kwargs)


def from_dict(raw: dict) -> LumePackConfig:
    sections: dict[str, Any] = {}
    body = raw.get('builder')
    if isinstance(body, dict):
        sections['builder'] = _builder_from_dict(body)
    body = raw.get('export')
    if isinstance(body, dict):
        sections['export'] = _section_from_dict(ExportConfig, 'export', body)
    body = raw.get('paths')
    if isinstance(body, dict):
        sections['paths'] = _section_from_dict(PathsConfig, 'paths', body)
    if 'verbosity' in raw:
        sections['verbosity'] = _as_int('', 'verbosity', raw['verbosity'])
    cfg = LumePackConfig(**sections)
    if not cfg.export.chunk_size:
        cfg = replace(
            cfg, export=replace(cfg.export, chunk_size=DEFAULT_CHUNK_SIZE)
        )
    return cfg


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def _toml_value(v: Any) -> str:
    if isinstance(v, bool):
        return 'true' if v else 'false'
    if isinstance(v, (int, float)):
        return f'{v}'
    if isinstance(v, (list, tuple)):
        parts = [f'"{_toml_escape(str(item))}"' for item in v]
        return f"[{', '.join(parts)}]"
    return f'"{_toml_escape(str(v))}"'


def dump_toml(cfg: LumePackConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = []
    # Top-level keys must precede the first table header.
    if d['verbosity'] != 1:
        lines.append(f"verbosity = {d['verbosity']}")
        lines.append('')
    for section, body in d.items():
        if isinstance(body, dict):
            lines.append(f'[{section}]')
            for k, v in body.items():
                lines.append(f'{k} = {_toml_value(v)}')
            lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def load(path: Path) -> LumePackConfig:
    try:
        raw = tomllib.loads(path.read_text(encoding='utf-8'))
    except tomllib.TOMLDecodeError as ex:
        raise ConfigError(f'Invalid TOML in {path}: {ex}') from ex
    return from_dict(raw)


def save(path: Path, cfg: LumePackConfig) -> None:
    path.write_text(dump_toml(cfg), encoding='utf-8')


def global_config_path() -> Path:
    return Path(ub.Path.appdir('lumepack', type='config')) / 'config.toml'


def default_config_path() -> Path:
    """Local ``./lumepack.toml`` if present, else the per-user config file."""
    local = Path(DEFAULT_CONFIG_NAME).resolve()
    if local.exists():
        return local
    return global_config_path()
