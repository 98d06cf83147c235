"""Mirror resolver for auxiliary (non-built) dependencies.

For each spec: resolve a concrete name+version from the public registry,
then the install endpoint; skip when the publish endpoint already has that
version; otherwise fetch the archive from the source that resolved it,
check its integrity and republish it unchanged. A dry run stops after the
idempotency check and only reports the copy.

Nothing here is fatal. A failed mirror is reported and the release goes on:
the dependency may already be reachable from an earlier run.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from pinrel.core.result import Err
from pinrel.output.console import ConsoleProtocol, Style
from pinrel.services.release.integrity import check_archive
from pinrel.services.release.model import RegistryEndpoint
from pinrel.services.release.mutations import Mutations
from pinrel.services.release.npm import RegistryReader


@dataclass(frozen=True, slots=True)
class ResolvedSpec:
    name: str
    version: str
    source: str  # registry URL that answered


@dataclass(frozen=True, slots=True)
class MirrorSkipped:
    spec: str
    reason: str
    resolved: ResolvedSpec | None = None


@dataclass(frozen=True, slots=True)
class MirrorPublished:
    spec: str
    resolved: ResolvedSpec


@dataclass(frozen=True, slots=True)
class MirrorFailed:
    spec: str
    reason: str
    resolved: ResolvedSpec | None = None


MirrorOutcome = MirrorSkipped | MirrorPublished | MirrorFailed


def resolve_spec(
    spec: str,
    *,
    sources: Sequence[str],
    reader: RegistryReader,
) -> ResolvedSpec | None:
    """First source reporting both a name and a version for `spec` wins."""
    for source in sources:
        name = reader.view(spec, "name", registry=source)
        version = reader.view(spec, "version", registry=source)
        if name and version:
            return ResolvedSpec(name=name, version=version, source=source)
    return None


def mirror_package(
    spec: str,
    *,
    public_registry: str,
    install: RegistryEndpoint,
    publish: RegistryEndpoint,
    reader: RegistryReader,
    mutations: Mutations,
    work_dir: Path,
    console: ConsoleProtocol,
) -> MirrorOutcome:
    resolved = resolve_spec(spec, sources=(public_registry, install.url), reader=reader)
    if resolved is None:
        console.warning(f"{spec}: not resolvable from any source; assuming already mirrored")
        return MirrorSkipped(spec=spec, reason="unresolved")

    label = f"{resolved.name}@{resolved.version}"
    if reader.lookup(resolved.name, resolved.version, registry=publish.url):
        console.print(f"{label}: already present at {publish.url}")
        return MirrorSkipped(spec=spec, reason="present", resolved=resolved)

    if mutations.simulated:
        # Nothing is fetched: downloading the archive writes to the work dir.
        console.print(
            f"[dry-run] mirror {label} from {resolved.source} to {publish.url}", Style.DIM
        )
        return MirrorSkipped(spec=spec, reason="dry run", resolved=resolved)

    def failed(reason: str) -> MirrorFailed:
        console.warning(f"{label}: mirror failed: {reason}")
        return MirrorFailed(spec=spec, reason=reason, resolved=resolved)

    archive = reader.fetch_archive(
        resolved.name,
        resolved.version,
        registry=resolved.source,
        dest_dir=work_dir / "mirror",
    )
    if isinstance(archive, Err):
        return failed(archive.error.message)

    expected = reader.view(label, "dist.integrity", registry=resolved.source)
    checked = check_archive(archive.value, expected=expected)
    if isinstance(checked, Err):
        return failed(checked.error.message)

    # No dist-tag: a mirrored version lands the way upstream published it.
    published = mutations.publish_archive(archive.value, endpoint=publish, dist_tag=None)
    if isinstance(published, Err):
        return failed(published.error.message)

    console.success(f"{label}: mirrored from {resolved.source}")
    return MirrorPublished(spec=spec, resolved=resolved)


def mirror_all(
    specs: Sequence[str],
    *,
    public_registry: str,
    install: RegistryEndpoint,
    publish: RegistryEndpoint,
    reader: RegistryReader,
    mutations: Mutations,
    work_dir: Path,
    console: ConsoleProtocol,
) -> list[MirrorOutcome]:
    return [
        mirror_package(
            spec,
            public_registry=public_registry,
            install=install,
            publish=publish,
            reader=reader,
            mutations=mutations,
            work_dir=work_dir,
            console=console,
        )
        for spec in specs
    ]
