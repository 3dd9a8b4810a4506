"""Export post-processor: package a lume VM state folder into image files.

The VM state folder (``<lume_home>/<vm_name>``) holds ``config.json``,
``nvram.bin`` and ``disk.img``. Each run copies those into a fresh work
directory under the state folder, splits a large disk into numbered chunks,
and reports the resulting files with OCI media-type annotations. The work
directory is removed again before returning, whatever the outcome.
"""

from __future__ import annotations

import re
import shutil
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import DEFAULT_CHUNK_SIZE, ExportConfig, parse_size
from .errors import ConfigError, ExportError
from .results import (
    MEDIA_TYPE_CONFIG,
    MEDIA_TYPE_LAYER,
    MEDIA_TYPE_OCTET,
    BuildArtifact,
    ManifestEntry,
    PostProcessResult,
)
from .runtime import vm_state_dir
from .ui import Ui

log = logger

SIZE_THRESHOLD = 524288000
COPY_BUFSIZE = 1024 * 1024
DISK_NAME = 'disk.img'
PART_PREFIX = 'disk.img.part.'
OPTIONAL_FILES = (
    ('config.json', MEDIA_TYPE_CONFIG),
    ('nvram.bin', MEDIA_TYPE_OCTET),
)

_PART_RE = re.compile(r'^' + re.escape(PART_PREFIX) + r'(\d+)$')


def copy_file_if_exists(src: Path, dest: Path, ui: Ui) -> bool:
    """Copy ``src`` to ``dest`` when it exists; return whether it was copied."""
    if not src.exists():
        log.debug('Skipping missing {}', src)
        return False
    ui.say(f'Copying {src.name}...')
    try:
        shutil.copyfile(src, dest)
    except OSError as ex:
        raise ExportError(f'failed to copy {src}: {ex}') from ex
    return True


def _suffix_width(num_parts: int) -> int:
    return max(2, len(str(num_parts - 1)))


def split_file(src: Path, prefix: str, chunk_bytes: int) -> list[Path]:
    """Split ``src`` into ``<prefix>NN`` files of at most ``chunk_bytes``.

    Suffixes are zero-padded decimal numbers starting at ``00``.

    Example:
        >>> import tempfile
        >>> d = Path(tempfile.mkdtemp())
        >>> (d / 'blob').write_bytes(b'x' * 5)
        5
        >>> [p.name for p in split_file(d / 'blob', str(d / 'blob.'), 2)]
        ['blob.00', 'blob.01', 'blob.02']
    """
    if chunk_bytes <= 0:
        raise ExportError(f'chunk size must be positive, got {chunk_bytes}')
    total = src.stat().st_size
    num_parts = max(1, -(-total // chunk_bytes))
    width = _suffix_width(num_parts)
    parts: list[Path] = []
    with open(src, 'rb') as fin:
        for idx in range(num_parts):
            part = Path(f'{prefix}{idx:0{width}d}')
            remaining = chunk_bytes
            with open(part, 'wb') as fout:
                while remaining > 0:
                    buf = fin.read(min(COPY_BUFSIZE, remaining))
                    if not buf:
                        break
                    fout.write(buf)
                    remaining -= len(buf)
            parts.append(part)
    return parts


def find_parts(work_dir: Path) -> list[Path]:
    """Chunk files in ``work_dir``, ordered by their numeric suffix."""
    found = []
    for p in work_dir.glob(PART_PREFIX + '*'):
        m = _PART_RE.match(p.name)
        if m is not None:
            found.append((int(m.group(1)), p))
    return [p for _, p in sorted(found)]


class LumeExportPostProcessor:
    """Copy or chunk a VM's state folder and report the image file list."""

    def __init__(self, config: ExportConfig, lume_home: Path | str) -> None:
        if not config.chunk_size:
            config = replace(config, chunk_size=DEFAULT_CHUNK_SIZE)
        self.config = config
        self.lume_home = Path(lume_home)

    @property
    def folder_path(self) -> Path:
        return vm_state_dir(self.lume_home, self.config.vm_name)

    def validate(self) -> None:
        if not self.config.vm_name:
            raise ConfigError('vm_name is required')
        if not self.config.tag:
            raise ConfigError('tag is required')

    def post_process(
        self, ui: Ui, artifact: BuildArtifact
    ) -> PostProcessResult:
        self.validate()
        chunk_bytes = parse_size(self.config.chunk_size)
        folder = self.folder_path
        try:
            work_dir = Path(tempfile.mkdtemp(prefix='save-image', dir=folder))
        except OSError as ex:
            raise ExportError(
                f'failed to create work directory in {folder}: {ex}'
            ) from ex
        try:
            ui.say(f'Working directory: {work_dir}')
            copied = [
                (name, media_type)
                for name, media_type in OPTIONAL_FILES
                if copy_file_if_exists(folder / name, work_dir / name, ui)
            ]
            disk_path = self.process_disk_img(
                folder / DISK_NAME, work_dir, ui, chunk_bytes
            )
            manifest = self.build_manifest(work_dir, disk_path, copied)
            ui.say(f'Image saved with tag: {self.config.tag}')
            ui.say('The following files are part of the image artifact:')
            for entry in manifest:
                ui.say(f'  - {entry}')
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)
            log.debug('Removed work directory {}', work_dir)
        return PostProcessResult(
            artifact=artifact, keep=True, force_override=True, manifest=manifest
        )

    def process_disk_img(
        self, src: Path, work_dir: Path, ui: Ui, chunk_bytes: int
    ) -> Optional[Path]:
        """Copy or split the disk image.

        Returns the whole-copy path, or ``None`` when the disk is absent or
        was split into chunks.
        """
        if not src.exists():
            log.debug('No disk image at {}', src)
            return None
        dest = work_dir / DISK_NAME
        try:
            size = src.stat().st_size
        except OSError as ex:
            raise ExportError(f'failed to stat {src}: {ex}') from ex
        if size > SIZE_THRESHOLD:
            ui.say(f'{DISK_NAME} is large. Splitting into chunks...')
            try:
                shutil.copyfile(src, dest)
            except OSError as ex:
                raise ExportError(f'failed to copy {src}: {ex}') from ex
            try:
                parts = split_file(dest, str(work_dir / PART_PREFIX), chunk_bytes)
            except OSError as ex:
                raise ExportError(f'failed to split {dest}: {ex}') from ex
            log.debug('Split {} into {} parts', dest, len(parts))
            dest.unlink()
            return None
        ui.say(f'Copying {DISK_NAME}...')
        try:
            shutil.copyfile(src, dest)
        except OSError as ex:
            raise ExportError(f'failed to copy {src}: {ex}') from ex
        return dest

    def build_manifest(
        self,
        work_dir: Path,
        disk_path: Optional[Path],
        copied: list[tuple[str, str]],
    ) -> list[ManifestEntry]:
        entries: list[ManifestEntry] = []
        if disk_path is not None:
            entries.append(ManifestEntry(DISK_NAME, MEDIA_TYPE_LAYER))
        else:
            parts = find_parts(work_dir)
            total = len(parts)
            for idx, part in enumerate(parts, start=1):
                entries.append(
                    ManifestEntry(
                        part.name,
                        MEDIA_TYPE_LAYER,
                        part_number=idx,
                        part_total=total,
                    )
                )
        for name, media_type in copied:
            entries.append(ManifestEntry(name, media_type))
        return entries
