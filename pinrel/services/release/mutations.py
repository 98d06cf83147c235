"""Mutation seam: every side effect on the source tree or a registry.

The release plan talks to a single `Mutations` object selected once at
startup. `NpmMutations` performs the writes; `DryRunMutations` reports what
would have been written and performs none of it. Reads (registry lookups,
metadata fetches) are not mutations and run the same way in both modes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from pinrel.core.result import Err, Ok, Result
from pinrel.output.console import ConsoleProtocol, Style
from pinrel.services.release.errors import ReleaseError
from pinrel.services.release.manifest import Manifest
from pinrel.services.release.manifest import write_manifest as write_manifest_file
from pinrel.services.release.model import RegistryEndpoint
from pinrel.services.release.npm import NpmCli, Packer


class Mutations(Protocol):
    @property
    def simulated(self) -> bool:
        """True when nothing is actually written (dry run)."""
        ...

    def write_manifest(self, directory: Path, manifest: Manifest) -> Result[None, ReleaseError]: ...

    def publish_directory(
        self,
        directory: Path,
        *,
        endpoint: RegistryEndpoint,
        dist_tag: str,
        work_dir: Path,
    ) -> Result[None, ReleaseError]:
        """Pack a package directory and publish the archive."""
        ...

    def publish_archive(
        self,
        archive: Path,
        *,
        endpoint: RegistryEndpoint,
        dist_tag: str | None,
    ) -> Result[None, ReleaseError]: ...


class NpmMutations:
    def __init__(self, *, npm: NpmCli, packer: Packer | None = None) -> None:
        self._npm = npm
        self._packer: Packer = packer or npm

    @property
    def simulated(self) -> bool:
        return False

    def write_manifest(self, directory: Path, manifest: Manifest) -> Result[None, ReleaseError]:
        return write_manifest_file(directory, manifest)

    def publish_directory(
        self,
        directory: Path,
        *,
        endpoint: RegistryEndpoint,
        dist_tag: str,
        work_dir: Path,
    ) -> Result[None, ReleaseError]:
        # Pack first, publish the archive: what gets uploaded is exactly what
        # `npm pack` produced from the rewritten manifest.
        archive = self._packer.pack(directory, dest_dir=work_dir)
        if isinstance(archive, Err):
            return archive
        return self._npm.publish(archive.value, endpoint=endpoint, dist_tag=dist_tag)

    def publish_archive(
        self,
        archive: Path,
        *,
        endpoint: RegistryEndpoint,
        dist_tag: str | None,
    ) -> Result[None, ReleaseError]:
        return self._npm.publish(archive, endpoint=endpoint, dist_tag=dist_tag)


@dataclass(slots=True)
class DryRunMutations:
    """Reports each mutation on the console and records it; writes nothing."""

    console: ConsoleProtocol
    actions: list[str] = field(default_factory=list)

    @property
    def simulated(self) -> bool:
        return True

    def _report(self, action: str) -> None:
        self.actions.append(action)
        self.console.print(f"[dry-run] {action}", Style.DIM)

    def write_manifest(self, directory: Path, manifest: Manifest) -> Result[None, ReleaseError]:
        detail = f"{manifest.name}@{manifest.version}"
        if manifest.dependencies:
            deps = ", ".join(f"{k}={v}" for k, v in sorted(manifest.dependencies.items()))
            detail += f" deps: {deps}"
        self._report(f"write {directory / 'package.json'} ({detail})")
        return Ok(None)

    def publish_directory(
        self,
        directory: Path,
        *,
        endpoint: RegistryEndpoint,
        dist_tag: str,
        work_dir: Path,
    ) -> Result[None, ReleaseError]:
        del work_dir
        self._report(f"npm publish {directory} --registry {endpoint.url} --tag {dist_tag}")
        return Ok(None)

    def publish_archive(
        self,
        archive: Path,
        *,
        endpoint: RegistryEndpoint,
        dist_tag: str | None,
    ) -> Result[None, ReleaseError]:
        tag = f" --tag {dist_tag}" if dist_tag else ""
        self._report(f"npm publish {archive.name} --registry {endpoint.url}{tag}")
        return Ok(None)


def mutations_for(*, dry_run: bool, npm: NpmCli, console: ConsoleProtocol) -> Mutations:
    """Select the mutation implementation for a run (once, at startup)."""
    if dry_run:
        return DryRunMutations(console=console)
    return NpmMutations(npm=npm)
