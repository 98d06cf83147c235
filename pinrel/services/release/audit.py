"""Tarball pin auditor.

Packs the consumer without publishing it and compares the dependency pins
of the manifest inside the archive with the pins the run injected. Some
packaging tool chains rewrite manifests on the way into the archive; what
counts is what would ship.
"""

from __future__ import annotations

import tarfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from pinrel.core.result import Err, Ok, Result
from pinrel.services.release.errors import ReleaseError
from pinrel.services.release.manifest import MANIFEST_NAME, Manifest, parse_manifest
from pinrel.services.release.npm import Packer

# npm archives keep every file under a top-level "package/" directory.
_PACKED_MANIFEST = f"package/{MANIFEST_NAME}"


@dataclass(frozen=True, slots=True)
class PinMismatch:
    name: str
    expected: str
    actual: str | None

    def __str__(self) -> str:
        return f"{self.name}: expected {self.expected}, got {self.actual or '<missing>'}"


@dataclass(frozen=True, slots=True)
class AuditedArchive:
    archive: Path
    manifest: Manifest


def read_packed_manifest(archive: Path) -> Result[Manifest, ReleaseError]:
    try:
        with tarfile.open(archive, "r:gz") as tar:
            member = tar.extractfile(_PACKED_MANIFEST)
            if member is None:
                raise KeyError(_PACKED_MANIFEST)
            text = member.read().decode("utf-8")
    except KeyError:
        return Err(
            ReleaseError(
                kind="audit_failed",
                message=f"{_PACKED_MANIFEST} missing from archive",
                hint=str(archive),
                step="audit",
            )
        )
    except (OSError, tarfile.TarError, UnicodeDecodeError) as e:
        return Err(
            ReleaseError(
                kind="pack_failed",
                message=f"unreadable archive: {e}",
                hint=str(archive),
                step="audit",
            )
        )
    return parse_manifest(text, source=f"{archive}!{_PACKED_MANIFEST}")


def compare_pins(manifest: Manifest, expected: Mapping[str, str]) -> list[PinMismatch]:
    """Every expected pin whose packaged entry is not byte-equal to it."""
    return [
        PinMismatch(name=name, expected=version, actual=manifest.dependencies.get(name))
        for name, version in expected.items()
        if manifest.dependencies.get(name) != version
    ]


def audit_consumer(
    *,
    directory: Path,
    expected: Mapping[str, str],
    packer: Packer,
    work_dir: Path,
) -> Result[AuditedArchive, ReleaseError]:
    """Pack `directory` and check the pins inside the archive.

    On success the archive itself is returned, so the bytes that were
    audited are the bytes that get published.
    """
    archive = packer.pack(directory, dest_dir=work_dir / "audit")
    if isinstance(archive, Err):
        return archive

    packed = read_packed_manifest(archive.value)
    if isinstance(packed, Err):
        return packed

    mismatches = compare_pins(packed.value, expected)
    if mismatches:
        return Err(
            ReleaseError(
                kind="audit_failed",
                message="packaged manifest disagrees with released pins: "
                + "; ".join(str(m) for m in mismatches),
                hint="The manifest inside the archive must pin exactly what was released",
                package=packed.value.name,
                step="audit",
            )
        )
    return Ok(AuditedArchive(archive=archive.value, manifest=packed.value))
