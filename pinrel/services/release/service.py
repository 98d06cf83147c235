"""Release service: turns a Config into a wired, ready-to-run release."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from pinrel.core.config import Config, default_suffix
from pinrel.core.result import Err, Ok, Result
from pinrel.output.console import ConsoleProtocol, Style
from pinrel.platform.http import HttpClient
from pinrel.services.release.build import builder_for
from pinrel.services.release.config import DEFAULT_SCOPE, MIRROR_SPECS
from pinrel.services.release.errors import ReleaseError
from pinrel.services.release.integrity import RegistryIntegrity, verify_published
from pinrel.services.release.model import RegistryPair, ReleaseRun
from pinrel.services.release.mutations import mutations_for
from pinrel.services.release.npm import NpmCli
from pinrel.services.release.pipeline import ReleaseContext, plan_versions
from pinrel.services.release.plan import Package, ReleasePlan, load_packages, plan_from_settings
from pinrel.services.release.registry import (
    derive_scope,
    normalize_registry_url,
    resolve_endpoints,
    write_npmrc_files,
)
from pinrel.services.release.semver import is_valid_suffix


def ensure_npm_available() -> Result[None, ReleaseError]:
    if shutil.which("npm") is None:
        return Err(
            ReleaseError(
                kind="configuration",
                message="npm not found in PATH",
                hint="Install Node.js (npm >= 9) and retry.",
                step="configure",
            )
        )
    return Ok(None)


def resolve_run(config: Config) -> Result[ReleaseRun, ReleaseError]:
    suffix = config.suffix or default_suffix()
    if not is_valid_suffix(suffix):
        return Err(
            ReleaseError(
                kind="configuration",
                message=f"invalid release suffix: {suffix!r}",
                hint="Use dot-separated [0-9A-Za-z-] identifiers, e.g. rc1 or release.20250101",
                step="configure",
            )
        )
    if not config.dist_tag.strip():
        return Err(
            ReleaseError(
                kind="configuration",
                message="dist-tag must not be empty",
                step="configure",
            )
        )
    return Ok(ReleaseRun(suffix=suffix, dist_tag=config.dist_tag.strip(), dry_run=config.dry_run))


@dataclass(frozen=True, slots=True)
class ReleasePreview:
    run: ReleaseRun
    endpoints: RegistryPair
    plan: ReleasePlan
    packages: tuple[Package, ...]
    versions: dict[str, str]


def preview_release(config: Config) -> Result[ReleasePreview, ReleaseError]:
    """Everything a run would decide, computed from local files only."""
    run = resolve_run(config)
    if isinstance(run, Err):
        return run
    endpoints = resolve_endpoints(config.registry)
    if isinstance(endpoints, Err):
        return endpoints
    plan = plan_from_settings(config.plan)
    if isinstance(plan, Err):
        return plan
    packages = load_packages(plan.value, source_root=config.source_root)
    if isinstance(packages, Err):
        return packages
    versions = plan_versions(packages.value, suffix=run.value.suffix)
    if isinstance(versions, Err):
        return versions
    return Ok(
        ReleasePreview(
            run=run.value,
            endpoints=endpoints.value,
            plan=plan.value,
            packages=tuple(packages.value),
            versions=versions.value,
        )
    )


def _npm_for(
    config: Config,
    endpoints: RegistryPair,
    *,
    scope_names: tuple[str, ...],
    http: HttpClient,
    console: ConsoleProtocol,
) -> Result[NpmCli, ReleaseError]:
    scope = config.registry.scope or derive_scope(scope_names) or DEFAULT_SCOPE
    state_dir = config.resolved_state_dir
    npmrc = write_npmrc_files(endpoints, scope=scope, state_dir=state_dir)
    if isinstance(npmrc, Err):
        return npmrc
    console.print(f"npm user configs: {state_dir}", Style.DIM)
    return Ok(NpmCli(cwd=config.source_root, npmrc=npmrc.value, http=http, console=console))


def prepare_release(
    config: Config,
    *,
    console: ConsoleProtocol,
    http: HttpClient,
) -> Result[ReleaseContext, ReleaseError]:
    """Validate configuration and select every collaborator for one run."""
    ok = ensure_npm_available()
    if isinstance(ok, Err):
        return ok

    run = resolve_run(config)
    if isinstance(run, Err):
        return run
    endpoints = resolve_endpoints(config.registry)
    if isinstance(endpoints, Err):
        return endpoints
    plan = plan_from_settings(config.plan)
    if isinstance(plan, Err):
        return plan

    npm = _npm_for(
        config,
        endpoints.value,
        scope_names=tuple(ref.name for ref in plan.value.ordered()),
        http=http,
        console=console,
    )
    if isinstance(npm, Err):
        return npm

    work_dir = config.resolved_state_dir / "work" / run.value.suffix
    return Ok(
        ReleaseContext(
            run=run.value,
            endpoints=endpoints.value,
            plan=plan.value,
            source_root=config.source_root,
            work_dir=work_dir,
            reader=npm.value,
            packer=npm.value,
            builder=builder_for(
                dry_run=run.value.dry_run,
                source_root=config.source_root,
                console=console,
                npmrc=npm.value.npmrc,
            ),
            mutations=mutations_for(dry_run=run.value.dry_run, npm=npm.value, console=console),
            console=console,
            visibility=config.visibility,
            mirror_specs=config.mirror.specs if config.mirror.specs is not None else MIRROR_SPECS,
            public_registry=normalize_registry_url(config.mirror.public_registry),
        )
    )


def split_spec(spec: str) -> tuple[str, str] | None:
    """`@scope/name@1.2.3` -> (`@scope/name`, `1.2.3`)."""
    at = spec.rfind("@")
    if at <= 0:
        return None
    name, version = spec[:at], spec[at + 1 :]
    if not name or not version:
        return None
    return name, version


def verify_package(
    spec: str,
    *,
    config: Config,
    console: ConsoleProtocol,
    http: HttpClient,
    work_dir: Path,
) -> Result[list[RegistryIntegrity], ReleaseError]:
    """Check a published version's archive against each registry's metadata."""
    parts = split_spec(spec)
    if parts is None:
        return Err(
            ReleaseError(
                kind="invalid_version",
                message=f"expected name@version, got {spec!r}",
                step="verify",
            )
        )
    name, version = parts

    ok = ensure_npm_available()
    if isinstance(ok, Err):
        return ok
    endpoints = resolve_endpoints(config.registry)
    if isinstance(endpoints, Err):
        return endpoints
    npm = _npm_for(config, endpoints.value, scope_names=(name,), http=http, console=console)
    if isinstance(npm, Err):
        return npm

    registries = list(
        dict.fromkeys(
            (
                normalize_registry_url(config.mirror.public_registry),
                endpoints.value.install.url,
                endpoints.value.publish.url,
            )
        )
    )
    return Ok(
        verify_published(
            name=name,
            version=version,
            registries=registries,
            reader=npm.value,
            work_dir=work_dir,
        )
    )
