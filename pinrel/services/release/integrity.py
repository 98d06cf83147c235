"""Archive integrity: SRI sha512 of a tarball vs the registry's `dist.integrity`."""

from __future__ import annotations

import base64
import hashlib
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pinrel.core.result import Err, Ok, Result
from pinrel.services.release.errors import ReleaseError
from pinrel.services.release.npm import RegistryReader

IntegrityStatus = Literal["match", "mismatch", "absent", "error"]


def sri_sha512(path: Path) -> str:
    """Subresource-integrity string (`sha512-<base64>`) of a file."""
    digest = hashlib.sha512()
    with path.open("rb") as f:
        while True:
            chunk = f.read(1024 * 1024)
            if not chunk:
                break
            digest.update(chunk)
    return "sha512-" + base64.b64encode(digest.digest()).decode("ascii")


def check_archive(archive: Path, *, expected: str | None) -> Result[str, ReleaseError]:
    """Compare an archive with the integrity a registry advertises for it.

    Registries that advertise no sha512 integrity (legacy sha1 `shasum`
    only) cannot be checked; the archive is accepted as is.
    """
    actual = sri_sha512(archive)
    if expected is None or not expected.startswith("sha512-"):
        return Ok(actual)
    # npm may list several hashes separated by spaces.
    if actual not in expected.split():
        return Err(
            ReleaseError(
                kind="integrity_mismatch",
                message=f"{archive.name}: integrity mismatch",
                hint=f"expected {expected}, got {actual}",
            )
        )
    return Ok(actual)


@dataclass(frozen=True, slots=True)
class RegistryIntegrity:
    registry: str
    status: IntegrityStatus
    expected: str | None = None
    actual: str | None = None
    detail: str | None = None


def verify_published(
    *,
    name: str,
    version: str,
    registries: Sequence[str],
    reader: RegistryReader,
    work_dir: Path,
) -> list[RegistryIntegrity]:
    """Download name@version from each registry and check it against its metadata."""
    report: list[RegistryIntegrity] = []
    for index, registry in enumerate(registries):
        expected = reader.view(f"{name}@{version}", "dist.integrity", registry=registry)
        if expected is None:
            report.append(RegistryIntegrity(registry=registry, status="absent"))
            continue

        archive = reader.fetch_archive(
            name, version, registry=registry, dest_dir=work_dir / f"registry-{index}"
        )
        if isinstance(archive, Err):
            report.append(
                RegistryIntegrity(
                    registry=registry,
                    status="error",
                    expected=expected,
                    detail=archive.error.message,
                )
            )
            continue

        actual = sri_sha512(archive.value)
        checked = check_archive(archive.value, expected=expected)
        report.append(
            RegistryIntegrity(
                registry=registry,
                status="match" if isinstance(checked, Ok) else "mismatch",
                expected=expected,
                actual=actual,
            )
        )
    return report
