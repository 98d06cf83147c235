"""Release plan: the curated topological order of first-party packages.

libraries (independent of each other) -> runtime -> consumer. The order is
fixed by configuration, not computed from manifests.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pinrel.core.config import PlanEntry, PlanSettings
from pinrel.core.result import Err, Ok, Result
from pinrel.services.release.config import CONSUMER_PACKAGE, LIBRARY_PACKAGES, RUNTIME_PACKAGE
from pinrel.services.release.errors import ReleaseError
from pinrel.services.release.manifest import Manifest, read_manifest
from pinrel.services.release.model import PackageRef, PackageRole


@dataclass(frozen=True, slots=True)
class ReleasePlan:
    libraries: tuple[PackageRef, ...]
    runtime: PackageRef
    consumer: PackageRef

    def upstream(self) -> tuple[PackageRef, ...]:
        """Everything released before the consumer, in order."""
        return (*self.libraries, self.runtime)

    def ordered(self) -> tuple[PackageRef, ...]:
        return (*self.libraries, self.runtime, self.consumer)


DEFAULT_PLAN = ReleasePlan(
    libraries=LIBRARY_PACKAGES,
    runtime=RUNTIME_PACKAGE,
    consumer=CONSUMER_PACKAGE,
)


def _ref(entry: PlanEntry, role: PackageRole) -> PackageRef:
    return PackageRef(
        name=entry.name,
        directory=entry.directory,
        role=role,
        bundle_script=entry.bundle_script if role == "runtime" else None,
    )


def plan_from_settings(settings: PlanSettings | None) -> Result[ReleasePlan, ReleaseError]:
    if settings is None:
        plan = DEFAULT_PLAN
    else:
        plan = ReleasePlan(
            libraries=tuple(_ref(e, "library") for e in settings.libraries),
            runtime=_ref(settings.runtime, "runtime"),
            consumer=_ref(settings.consumer, "consumer"),
        )
    return validate_plan(plan)


def validate_plan(plan: ReleasePlan) -> Result[ReleasePlan, ReleaseError]:
    """Package names and directories must be unique across the plan."""
    seen_names: set[str] = set()
    seen_dirs: set[str] = set()
    for ref in plan.ordered():
        if ref.name in seen_names:
            return Err(
                ReleaseError(
                    kind="configuration",
                    message="package listed twice in the release plan",
                    package=ref.name,
                    step="configure",
                )
            )
        directory = ref.directory.strip("/")
        if directory in seen_dirs:
            return Err(
                ReleaseError(
                    kind="configuration",
                    message=f"directory {ref.directory!r} used by two packages",
                    package=ref.name,
                    step="configure",
                )
            )
        seen_names.add(ref.name)
        seen_dirs.add(directory)
    return Ok(plan)


@dataclass(frozen=True, slots=True)
class Package:
    """A plan entry bound to its directory and current manifest."""

    ref: PackageRef
    directory: Path
    manifest: Manifest

    @property
    def name(self) -> str:
        return self.ref.name


def load_package(ref: PackageRef, *, source_root: Path) -> Result[Package, ReleaseError]:
    directory = source_root / ref.directory
    manifest = read_manifest(directory)
    if isinstance(manifest, Err):
        return Err(manifest.error.at(package=ref.name, step="load"))

    if manifest.value.name != ref.name:
        return Err(
            ReleaseError(
                kind="invalid_manifest",
                message=f"manifest declares {manifest.value.name!r}",
                hint=f"{directory} is listed as {ref.name}",
                package=ref.name,
                step="load",
            )
        )
    return Ok(Package(ref=ref, directory=directory, manifest=manifest.value))


def load_packages(plan: ReleasePlan, *, source_root: Path) -> Result[list[Package], ReleaseError]:
    """Load every manifest in plan order; the first broken one stops the run."""
    packages: list[Package] = []
    for ref in plan.ordered():
        loaded = load_package(ref, source_root=source_root)
        if isinstance(loaded, Err):
            return loaded
        packages.append(loaded.value)
    return Ok(packages)
