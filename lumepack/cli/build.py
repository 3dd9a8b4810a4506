"""CLI commands for building a VM, exporting its image, and querying its IP."""

from __future__ import annotations

from dataclasses import replace

import scriptconfig as scfg

from ..builder import Builder
from ..config import LumePackConfig
from ..export import LumeExportPostProcessor
from ..results import BuildArtifact
from ..steps import wait_for_ip
from ..ui import ConsoleUi
from ._common import _BaseCommand, _load_cfg_with_path, log


def _with_overrides(
    cfg: LumePackConfig, *, vm_name: str = '', tag: str = ''
) -> LumePackConfig:
    vm_name = str(vm_name or '').strip()
    tag = str(tag or '').strip()
    if vm_name:
        # The override names the VM for every section, export included.
        cfg = replace(
            cfg,
            builder=replace(cfg.builder, vm_name=vm_name),
            export=replace(cfg.export, vm_name=vm_name),
        )
    if tag:
        cfg = replace(cfg, export=replace(cfg.export, tag=tag))
    return cfg


def _export(cfg: LumePackConfig, ui: ConsoleUi, artifact: BuildArtifact):
    export_cfg = replace(cfg.export, vm_name=cfg.export_vm_name)
    pp = LumeExportPostProcessor(export_cfg, cfg.paths.lume_home)
    return pp.post_process(ui, artifact)


class BuildCLI(_BaseCommand):
    """Create and configure a lume VM, wait for its IP, then export it."""

    vm_name = scfg.Value('', help='Optional VM name override.')
    skip_export = scfg.Value(
        False,
        isflag=True,
        help='Do not run the export post-processor after the build.',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, _ = _load_cfg_with_path(args.config)
        cfg = _with_overrides(cfg, vm_name=args.vm_name)
        ui = ConsoleUi()
        artifact = Builder(cfg.builder).run(ui)
        ui.say(f'Build finished: {artifact}')
        if args.skip_export:
            return 0
        if not cfg.export.tag:
            log.info('No export.tag configured; skipping export')
            return 0
        _export(cfg, ui, artifact)
        return 0


class ExportCLI(_BaseCommand):
    """Package an existing lume VM state folder into image files."""

    vm_name = scfg.Value('', help='Optional VM name override.')
    tag = scfg.Value('', help='Optional image tag override.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, _ = _load_cfg_with_path(args.config)
        cfg = _with_overrides(cfg, vm_name=args.vm_name, tag=args.tag)
        ui = ConsoleUi()
        _export(cfg, ui, BuildArtifact(vm_name=cfg.export_vm_name))
        return 0


class IpCLI(_BaseCommand):
    """Wait for the VM to report an IP address and print it."""

    vm_name = scfg.Value('', help='Optional VM name override.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, _ = _load_cfg_with_path(args.config)
        cfg = _with_overrides(cfg, vm_name=args.vm_name)
        if not cfg.builder.vm_name:
            raise RuntimeError('vm_name is required (set builder.vm_name or --vm_name)')
        print(wait_for_ip(cfg.builder.vm_name, cfg.builder.ip_extra_args))
        return 0
