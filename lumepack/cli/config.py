from __future__ import annotations

import sys
from dataclasses import replace

import scriptconfig as scfg
import ubelt as ub

from ..config import BuilderConfig, ExportConfig, LumePackConfig, dump_toml, save
from ..util import ensure_dir
from ._common import _BaseCommand, _cfg_path


class InitCLI(_BaseCommand):
    """Write a starter config file."""

    vm_name = scfg.Value('', help='VM name to put in the new config.')
    force = scfg.Value(
        False, isflag=True, help='Overwrite an existing config file.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _cfg_path(args.config)
        if path.exists() and not args.force:
            print(f'Config already exists: {path}', file=sys.stderr)
            print('Use --force to overwrite it.', file=sys.stderr)
            return 2
        cfg = LumePackConfig(
            builder=BuilderConfig(vm_name=str(args.vm_name or '').strip()),
            export=ExportConfig(),
        )
        if args.vm_name:
            cfg = replace(cfg, export=replace(cfg.export, tag=f'{args.vm_name}:latest'))
        ensure_dir(path.parent)
        save(path, cfg)
        print(f'Wrote config: {path}')
        return 0


class ConfigShowCLI(_BaseCommand):
    """Show the config file, or the defaults when none exists."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _cfg_path(args.config)
        if path.exists():
            text = path.read_text(encoding='utf-8')
        else:
            print(f'# {path} does not exist; showing defaults', file=sys.stderr)
            text = dump_toml(LumePackConfig())
        if sys.stdout.isatty():
            text = ub.highlight_code(text, lexer_name='toml')
        print(text, end='' if text.endswith('\n') else '\n')
        return 0


class ConfigModalCLI(scfg.ModalCLI):
    """Config file management."""

    init = InitCLI
    show = ConfigShowCLI
