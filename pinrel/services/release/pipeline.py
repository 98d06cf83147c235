"""Dependency-ordered release pipeline.

One strictly sequential pass per run:

1. preflight ping of the install endpoint (warning only)
2. load every manifest and allocate every version (nothing is published
   if any package is broken)
3. mirror auxiliary dependencies (non-fatal)
4. for each library, then the runtime package:
   build -> [bundle] -> version -> publish -> pin -> visibility
5. consumer: build -> version + pins -> audit the packed archive ->
   publish that archive -> visibility

Any fatal error stops the run. Packages published before it stay published.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from pinrel.core.config import DEFAULT_PUBLIC_REGISTRY, VisibilitySettings
from pinrel.core.result import Err, Ok, Result
from pinrel.core.structured import StrDict
from pinrel.output.console import ConsoleProtocol
from pinrel.services.release.audit import audit_consumer
from pinrel.services.release.build import Builder
from pinrel.services.release.config import MIRROR_SPECS
from pinrel.services.release.errors import ReleaseError, ReleaseStep
from pinrel.services.release.mirror import (
    MirrorFailed,
    MirrorOutcome,
    MirrorPublished,
    mirror_all,
)
from pinrel.services.release.model import (
    PackageState,
    PublishRecord,
    RegistryPair,
    ReleaseRun,
)
from pinrel.services.release.mutations import Mutations
from pinrel.services.release.npm import Packer, RegistryReader
from pinrel.services.release.pins import PinMap, apply_pins
from pinrel.services.release.plan import Package, ReleasePlan, load_packages
from pinrel.services.release.semver import allocate_version
from pinrel.services.release.visibility import await_visible


@dataclass(frozen=True, slots=True)
class ReleaseContext:
    """Everything a run needs, wired once at startup."""

    run: ReleaseRun
    endpoints: RegistryPair
    plan: ReleasePlan
    source_root: Path
    work_dir: Path
    reader: RegistryReader
    packer: Packer
    builder: Builder
    mutations: Mutations
    console: ConsoleProtocol
    visibility: VisibilitySettings = field(default_factory=VisibilitySettings)
    mirror_specs: tuple[str, ...] = MIRROR_SPECS
    public_registry: str = DEFAULT_PUBLIC_REGISTRY


@dataclass(frozen=True, slots=True)
class ReleaseOutcome:
    run: ReleaseRun
    consumer: PublishRecord
    pins: Mapping[str, str]
    records: tuple[PublishRecord, ...]
    mirrors: tuple[MirrorOutcome, ...]
    states: Mapping[str, PackageState]
    # Checks not performed because nothing was written (dry run).
    skipped: tuple[str, ...] = ()

    def to_dict(self) -> StrDict:
        """JSON-ready hand-off for smoke tests and archival."""
        return {
            "suffix": self.run.suffix,
            "dist_tag": self.run.dist_tag,
            "dry_run": self.run.dry_run,
            "consumer": _record_dict(self.consumer),
            "pins": dict(self.pins),
            "packages": [
                {**_record_dict(r), "state": self.states.get(r.name, "pending")}
                for r in self.records
            ],
            "mirrors": [_mirror_dict(m) for m in self.mirrors],
            "skipped": list(self.skipped),
        }


def _record_dict(record: PublishRecord) -> StrDict:
    return {
        "name": record.name,
        "version": record.version,
        "registry": record.registry,
        "confirmed_visible": record.confirmed_visible,
    }


def _mirror_dict(outcome: MirrorOutcome) -> StrDict:
    data: StrDict = {"spec": outcome.spec}
    match outcome:
        case MirrorPublished():
            data["outcome"] = "published"
        case MirrorFailed(reason=reason):
            data["outcome"] = "failed"
            data["reason"] = reason
        case _:
            data["outcome"] = "skipped"
            data["reason"] = outcome.reason
    if outcome.resolved is not None:
        data["name"] = outcome.resolved.name
        data["version"] = outcome.resolved.version
    return data


def plan_versions(
    packages: list[Package],
    *,
    suffix: str,
) -> Result[dict[str, str], ReleaseError]:
    """Run version of every package, allocated before anything is published."""
    versions: dict[str, str] = {}
    for package in packages:
        allocated = allocate_version(package.manifest.version, suffix)
        if isinstance(allocated, Err):
            return Err(allocated.error.at(package=package.name, step="version"))
        versions[package.name] = allocated.value
    return Ok(versions)


class ReleasePipeline:
    """A single release run.

    `states`, `records` and `pins` stay readable after `run()` returns, also
    when it failed, so callers can report how far the run got.
    """

    def __init__(self, ctx: ReleaseContext) -> None:
        self._ctx = ctx
        self.pins = PinMap()
        self.records: list[PublishRecord] = []
        self.mirrors: list[MirrorOutcome] = []
        self.states: dict[str, PackageState] = {
            ref.name: "pending" for ref in ctx.plan.ordered()
        }
        self._skipped: list[str] = []

    # -- helpers ------------------------------------------------------------

    def _fail(self, package: Package, step: ReleaseStep, error: ReleaseError) -> Err[ReleaseError]:
        self.states[package.name] = "failed"
        return Err(error.at(package=package.name, step=step))

    def _skip(self, check: str) -> None:
        if check not in self._skipped:
            self._skipped.append(check)

    # -- phases -------------------------------------------------------------

    def _preflight(self) -> None:
        ctx = self._ctx
        install = ctx.endpoints.install
        if ctx.reader.ping(install):
            ctx.console.print(f"Registry reachable: {install.url}")
        else:
            ctx.console.warning(f"Registry ping failed: {install.url}")

    def _mirror(self) -> None:
        ctx = self._ctx
        if not ctx.mirror_specs:
            return
        ctx.console.header("Mirroring auxiliary dependencies")
        self.mirrors = mirror_all(
            ctx.mirror_specs,
            public_registry=ctx.public_registry,
            install=ctx.endpoints.install,
            publish=ctx.endpoints.publish,
            reader=ctx.reader,
            mutations=ctx.mutations,
            work_dir=ctx.work_dir,
            console=ctx.console,
        )

    def _build(self, package: Package) -> Result[None, ReleaseError]:
        ctx = self._ctx
        built = ctx.builder.build(package.ref)
        if isinstance(built, Err):
            return self._fail(package, "build", built.error)
        self.states[package.name] = "built"

        if package.ref.bundle_script:
            bundled = ctx.builder.bundle(package.ref)
            if isinstance(bundled, Err):
                ctx.console.warning(f"{bundled.error.pretty()}; continuing")
        return Ok(None)

    def _publish(
        self,
        package: Package,
        version: str,
        *,
        archive: Path | None = None,
    ) -> Result[PublishRecord, ReleaseError]:
        ctx = self._ctx
        publish = ctx.endpoints.publish
        if archive is not None:
            published = ctx.mutations.publish_archive(
                archive, endpoint=publish, dist_tag=ctx.run.dist_tag
            )
        else:
            published = ctx.mutations.publish_directory(
                package.directory,
                endpoint=publish,
                dist_tag=ctx.run.dist_tag,
                work_dir=ctx.work_dir / "packed",
            )
        if isinstance(published, Err):
            return self._fail(package, "publish", published.error)

        self.states[package.name] = "published"
        ctx.console.success(f"Published {package.name}@{version} ({ctx.run.dist_tag})")
        return Ok(PublishRecord(name=package.name, version=version, registry=publish.url))

    def _confirm(self, record: PublishRecord, *, timeout: float) -> PublishRecord:
        ctx = self._ctx
        if ctx.mutations.simulated:
            self._skip("visibility")
            self.records.append(record)
            return record

        visible = await_visible(
            name=record.name,
            version=record.version,
            endpoint=ctx.endpoints.install,
            reader=ctx.reader,
            timeout=timeout,
            interval=ctx.visibility.interval,
            console=ctx.console,
        )
        self.states[record.name] = "visible" if visible else "visibility_unknown"
        record = PublishRecord(record.name, record.version, record.registry, visible)
        self.records.append(record)
        return record

    def _release_upstream(self, package: Package, version: str) -> Result[None, ReleaseError]:
        ctx = self._ctx
        ctx.console.header(f"{package.name} -> {version}")

        built = self._build(package)
        if isinstance(built, Err):
            return built

        written = ctx.mutations.write_manifest(
            package.directory, package.manifest.with_version(version)
        )
        if isinstance(written, Err):
            return self._fail(package, "version", written.error)
        self.states[package.name] = "versioned"

        record = self._publish(package, version)
        if isinstance(record, Err):
            return record

        pinned = self.pins.record(package.name, version)
        if isinstance(pinned, Err):
            return self._fail(package, "pin", pinned.error)

        timeout = (
            ctx.visibility.final_timeout
            if package.ref.role == "runtime"
            else ctx.visibility.library_timeout
        )
        self._confirm(record.value, timeout=timeout)
        return Ok(None)

    def _release_consumer(
        self, package: Package, version: str
    ) -> Result[PublishRecord, ReleaseError]:
        ctx = self._ctx
        ctx.console.header(f"{package.name} -> {version}")

        built = self._build(package)
        if isinstance(built, Err):
            return built

        # Version and pins land in one write, so the audited archive is the
        # one that gets published.
        expected = self.pins.view()
        manifest = apply_pins(package.manifest.with_version(version), expected)
        written = ctx.mutations.write_manifest(package.directory, manifest)
        if isinstance(written, Err):
            return self._fail(package, "pin", written.error)
        self.states[package.name] = "versioned"

        archive: Path | None = None
        if ctx.mutations.simulated:
            self._skip("audit")
            ctx.console.print(f"Audit skipped (dry run); expected pins: {dict(expected)}")
        else:
            audited = audit_consumer(
                directory=package.directory,
                expected=expected,
                packer=ctx.packer,
                work_dir=ctx.work_dir,
            )
            if isinstance(audited, Err):
                return self._fail(package, "audit", audited.error)
            archive = audited.value.archive
            ctx.console.success(f"Archive pins verified ({len(expected)} packages)")

        record = self._publish(package, version, archive=archive)
        if isinstance(record, Err):
            return record

        return Ok(self._confirm(record.value, timeout=ctx.visibility.final_timeout))

    # -- entry point --------------------------------------------------------

    def run(self) -> Result[ReleaseOutcome, ReleaseError]:
        ctx = self._ctx
        self._preflight()

        packages = load_packages(ctx.plan, source_root=ctx.source_root)
        if isinstance(packages, Err):
            return packages
        versions = plan_versions(packages.value, suffix=ctx.run.suffix)
        if isinstance(versions, Err):
            return versions

        self._mirror()

        prepared = ctx.builder.prepare()
        if isinstance(prepared, Err):
            return prepared

        *upstream, consumer = packages.value
        for package in upstream:
            released = self._release_upstream(package, versions.value[package.name])
            if isinstance(released, Err):
                return released

        final = self._release_consumer(consumer, versions.value[consumer.name])
        if isinstance(final, Err):
            return final

        return Ok(
            ReleaseOutcome(
                run=ctx.run,
                consumer=final.value,
                pins=dict(self.pins.view()),
                records=tuple(self.records),
                mirrors=tuple(self.mirrors),
                states=dict(self.states),
                skipped=tuple(self._skipped),
            )
        )


def run_release(ctx: ReleaseContext) -> Result[ReleaseOutcome, ReleaseError]:
    return ReleasePipeline(ctx).run()
