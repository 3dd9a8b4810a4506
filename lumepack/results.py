"""Result dataclasses produced by the builder and the export post-processor."""

from __future__ import annotations

from dataclasses import dataclass, field

BUILDER_ID = 'lumepack.cli'

MEDIA_TYPE_LAYER = 'application/vnd.oci.image.layer.v1.tar'
MEDIA_TYPE_CONFIG = 'application/vnd.oci.image.config.v1+json'
MEDIA_TYPE_OCTET = 'application/octet-stream'


@dataclass(frozen=True)
class BuildArtifact:
    vm_name: str
    ip: str = ''
    builder_id: str = BUILDER_ID

    def __str__(self) -> str:
        return f'VM {self.vm_name} (ip={self.ip or "unknown"})'


@dataclass(frozen=True)
class ManifestEntry:
    path: str
    media_type: str
    part_number: int | None = None
    part_total: int | None = None

    def __str__(self) -> str:
        text = f'{self.path}:{self.media_type}'
        if self.part_number is not None:
            text += f';part.number={self.part_number};part.total={self.part_total}'
        return text


@dataclass
class PostProcessResult:
    artifact: BuildArtifact
    keep: bool = True
    force_override: bool = True
    manifest: list[ManifestEntry] = field(default_factory=list)

    def as_lines(self) -> list[str]:
        return [str(entry) for entry in self.manifest]
