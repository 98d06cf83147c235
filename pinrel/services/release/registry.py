"""Registry router: the install/publish endpoint pair of a run.

Two curated topologies are supported:

- self-hosted: one registry (e.g. Verdaccio) for reads and writes.
- enterprise: reads go through an aggregating/virtual repository that may
  cascade to public upstreams and cache; writes go straight to the
  authoritative local repository.

Whatever the mode, the pair keeps two distinct endpoint values and two
distinct npm user configs, so a scope mapping can never send a first-party
publish to the read path.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from pinrel.core.config import RegistrySettings
from pinrel.core.result import Err, Ok, Result
from pinrel.platform.files import atomic_write_text
from pinrel.services.release.errors import ReleaseError
from pinrel.services.release.model import RegistryEndpoint, RegistryPair, RegistryRole


@dataclass(frozen=True, slots=True)
class NpmrcFiles:
    install: Path
    publish: Path

    def for_role(self, role: RegistryRole) -> Path:
        return self.install if role == "install" else self.publish


def normalize_registry_url(url: str) -> str:
    return url.strip().rstrip("/") + "/"


def _config_error(message: str, hint: str | None = None) -> Err[ReleaseError]:
    return Err(ReleaseError(kind="configuration", message=message, hint=hint, step="configure"))


def _checked_url(url: str | None, *, field: str) -> Result[str, ReleaseError]:
    if url is None or not url.strip():
        return _config_error(f"missing registry {field}")
    if not url.startswith(("http://", "https://")):
        return _config_error(f"registry {field} must be an http(s) URL: {url}")
    return Ok(normalize_registry_url(url))


def resolve_endpoints(settings: RegistrySettings) -> Result[RegistryPair, ReleaseError]:
    """Resolve the install and publish endpoints for the configured mode."""
    match settings.mode:
        case "self-hosted":
            url = _checked_url(settings.url, field="url")
            if isinstance(url, Err):
                return url
            return Ok(
                RegistryPair(
                    mode="self-hosted",
                    install=RegistryEndpoint("install", url.value, settings.token),
                    publish=RegistryEndpoint("publish", url.value, settings.token),
                )
            )
        case "enterprise":
            return _resolve_enterprise(settings)
        case other:
            return _config_error(
                f"unknown registry mode: {other!r}",
                hint="Use 'self-hosted' or 'enterprise'",
            )


def _resolve_enterprise(settings: RegistrySettings) -> Result[RegistryPair, ReleaseError]:
    if settings.install_url and settings.publish_url:
        install = _checked_url(settings.install_url, field="install_url")
        if isinstance(install, Err):
            return install
        publish = _checked_url(settings.publish_url, field="publish_url")
        if isinstance(publish, Err):
            return publish
        install_url, publish_url = install.value, publish.value
    elif settings.base_url and settings.virtual_repo and settings.local_repo:
        base = _checked_url(settings.base_url, field="base_url")
        if isinstance(base, Err):
            return base
        root = base.value.rstrip("/")
        if not root.endswith("/artifactory"):
            root += "/artifactory"
        install_url = f"{root}/api/npm/{settings.virtual_repo.strip('/')}/"
        publish_url = f"{root}/api/npm/{settings.local_repo.strip('/')}/"
    else:
        return _config_error(
            "enterprise mode needs both endpoints",
            hint="Set install_url + publish_url, or base_url + virtual_repo + local_repo",
        )

    return Ok(
        RegistryPair(
            mode="enterprise",
            install=RegistryEndpoint("install", install_url, settings.token),
            publish=RegistryEndpoint("publish", publish_url, settings.token),
        )
    )


def derive_scope(names: Iterable[str]) -> str | None:
    """Common npm scope of the given package names, if they share one."""
    scopes = {name.split("/", 1)[0] for name in names if name.startswith("@") and "/" in name}
    if len(scopes) == 1:
        return scopes.pop()
    return None


def render_npmrc(
    endpoint: RegistryEndpoint,
    *,
    scope: str | None,
    credentials: Iterable[RegistryEndpoint] = (),
) -> str:
    """npm user config routing default and scope resolution to `endpoint`.

    `credentials` adds auth lines for other endpoints. Auth lines are keyed
    by URL and never change where a name resolves, so the install config
    can still authenticate a read against the publish endpoint.
    """
    lines = [
        f"registry={endpoint.url}",
        "always-auth=true",
    ]
    if scope:
        lines.append(f"{scope}:registry={endpoint.url}")

    seen: set[str] = set()
    for ep in (endpoint, *credentials):
        if ep.token and ep.auth_key not in seen:
            seen.add(ep.auth_key)
            lines.append(f"{ep.auth_key}:_authToken={ep.token}")
    return "\n".join(lines) + "\n"


def write_npmrc_files(
    pair: RegistryPair,
    *,
    scope: str | None,
    state_dir: Path,
) -> Result[NpmrcFiles, ReleaseError]:
    """Write one npm user config per role into the run state directory."""
    files = NpmrcFiles(
        install=state_dir / "npmrc.install",
        publish=state_dir / "npmrc.publish",
    )
    try:
        atomic_write_text(
            files.install,
            render_npmrc(pair.install, scope=scope, credentials=(pair.publish,)),
        )
        atomic_write_text(
            files.publish,
            render_npmrc(pair.publish, scope=scope, credentials=(pair.install,)),
        )
    except OSError as e:
        return Err(
            ReleaseError(
                kind="configuration",
                message=f"failed to write npm user configs: {e}",
                hint=str(state_dir),
                step="configure",
            )
        )
    return Ok(files)
