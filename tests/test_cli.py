"""Tests for the modal CLI commands."""

from __future__ import annotations

from pathlib import Path

import pytest

from lumepack.cli import LumePackModalCLI
from lumepack.cli.main import _count_verbose
from lumepack.config import (
    BuilderConfig,
    ExportConfig,
    LumePackConfig,
    PathsConfig,
    load,
    save,
)
from lumepack.results import BuildArtifact


def _run(argv: list[str]) -> int:
    rc = LumePackModalCLI.main(argv=argv, _noexit=True)
    return 0 if rc is None else int(rc)


def _write_cfg(
    tmp_path: Path, *, tag: str = 'img:1', export_vm_name: str = ''
) -> Path:
    cfg_path = tmp_path / 'lumepack.toml'
    cfg = LumePackConfig(
        builder=BuilderConfig(vm_name='vm1', cpu_count=2),
        export=ExportConfig(vm_name=export_vm_name, tag=tag),
        paths=PathsConfig(lume_home=str(tmp_path / 'lume')),
    )
    save(cfg_path, cfg)
    return cfg_path


def _fake_builder(monkeypatch, seen: list) -> None:
    class FakeBuilder:
        def __init__(self, config):
            seen.append(config)

        def run(self, ui, cancel=None):
            return BuildArtifact(vm_name=seen[-1].vm_name, ip='10.0.0.7')

    monkeypatch.setattr('lumepack.cli.build.Builder', FakeBuilder)


def test_config_init_and_show(tmp_path: Path, capsys) -> None:
    cfg_path = tmp_path / 'sub' / 'lumepack.toml'
    assert _run(['config', 'init', '--config', str(cfg_path), '--vm_name', 'vmx']) == 0
    cfg = load(cfg_path)
    assert cfg.builder.vm_name == 'vmx'
    assert cfg.export.tag == 'vmx:latest'
    assert _run(['config', 'init', '--config', str(cfg_path)]) == 2
    capsys.readouterr()
    assert _run(['config', 'show', '--config', str(cfg_path)]) == 0
    assert 'vm_name = "vmx"' in capsys.readouterr().out


def test_build_then_export(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg_path = _write_cfg(tmp_path)
    folder = tmp_path / 'lume' / 'vm1'
    folder.mkdir(parents=True)
    (folder / 'disk.img').write_bytes(b'd' * 32)
    seen: list = []
    _fake_builder(monkeypatch, seen)
    assert _run(['build', '--config', str(cfg_path)]) == 0
    assert seen[0].vm_name == 'vm1'
    out = capsys.readouterr().out
    assert 'Image saved with tag: img:1' in out
    assert 'disk.img:application/vnd.oci.image.layer.v1.tar' in out


def test_build_skips_export_without_tag(tmp_path: Path, monkeypatch) -> None:
    cfg_path = _write_cfg(tmp_path, tag='')
    seen: list = []
    _fake_builder(monkeypatch, seen)
    monkeypatch.setattr(
        'lumepack.cli.build._export', lambda *a, **k: pytest.fail('exported')
    )
    assert _run(['build', '--config', str(cfg_path), '--vm_name', 'other']) == 0
    assert seen[0].vm_name == 'other'


def test_export_command_overrides(tmp_path: Path, capsys) -> None:
    cfg_path = _write_cfg(tmp_path)
    folder = tmp_path / 'lume' / 'vm9'
    folder.mkdir(parents=True)
    (folder / 'nvram.bin').write_bytes(b'n')
    assert (
        _run(
            [
                'export',
                '--config',
                str(cfg_path),
                '--vm_name',
                'vm9',
                '--tag',
                'other:2',
            ]
        )
        == 0
    )
    out = capsys.readouterr().out
    assert 'Image saved with tag: other:2' in out
    assert 'nvram.bin:application/octet-stream' in out


def test_export_vm_name_flag_beats_configured_export_name(
    tmp_path: Path, capsys
) -> None:
    cfg_path = _write_cfg(tmp_path, export_vm_name='base')
    folder = tmp_path / 'lume' / 'vm9'
    folder.mkdir(parents=True)
    (folder / 'disk.img').write_bytes(b'd' * 16)
    assert _run(['export', '--config', str(cfg_path), '--vm_name', 'vm9']) == 0
    out = capsys.readouterr().out
    assert 'disk.img:application/vnd.oci.image.layer.v1.tar' in out


def test_build_vm_name_flag_exports_the_built_vm(
    tmp_path: Path, monkeypatch, capsys
) -> None:
    cfg_path = _write_cfg(tmp_path, export_vm_name='base')
    folder = tmp_path / 'lume' / 'vm9'
    folder.mkdir(parents=True)
    (folder / 'disk.img').write_bytes(b'd' * 16)
    seen: list = []
    _fake_builder(monkeypatch, seen)
    assert _run(['build', '--config', str(cfg_path), '--vm_name', 'vm9']) == 0
    assert seen[0].vm_name == 'vm9'
    out = capsys.readouterr().out
    assert 'disk.img:application/vnd.oci.image.layer.v1.tar' in out


def test_ip_command(tmp_path: Path, monkeypatch, capsys) -> None:
    cfg_path = _write_cfg(tmp_path)
    calls = []
    monkeypatch.setattr(
        'lumepack.cli.build.wait_for_ip',
        lambda name, extra=(): (calls.append(name) or '192.168.64.3'),
    )
    assert _run(['ip', '--config', str(cfg_path)]) == 0
    assert calls == ['vm1']
    assert '192.168.64.3' in capsys.readouterr().out


def test_doctor_reports_missing(monkeypatch, capsys) -> None:
    monkeypatch.setattr(
        'lumepack.cli.host.check_commands', lambda: (['lume'], [])
    )
    monkeypatch.setattr('lumepack.cli.host.host_is_apple_silicon', lambda: True)
    assert _run(['doctor']) == 2
    assert 'lume' in capsys.readouterr().out
    monkeypatch.setattr('lumepack.cli.host.check_commands', lambda: ([], []))
    assert _run(['doctor']) == 0


def test_missing_config_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match='lumepack config init'):
        _run(['build', '--config', str(tmp_path / 'nope.toml')])


def test_count_verbose() -> None:
    assert _count_verbose(['build', '-vv', '--verbose']) == 3
    assert _count_verbose(['build', '--vm_name', 'v']) == 0
