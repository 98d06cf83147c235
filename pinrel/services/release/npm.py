"""npm CLI adapter.

Everything the release asks of a registry goes through here:

- reads (`view`, `lookup`, `fetch_metadata`, `fetch_archive`, `ping`) run
  with the install user config;
- `publish` runs with the publish user config;
- `pack` packs a local directory (no network).

Workspace-related npm settings inherited from the environment are dropped:
inside a monorepo checkout they would otherwise redirect `npm pack` and
`npm publish` to the workspace root.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Protocol

from pinrel.core.result import Err, Ok, Result
from pinrel.core.structured import as_obj_list, as_str_dict, get_str
from pinrel.output.console import ConsoleProtocol, Style
from pinrel.platform.http import HttpClient, auth_headers
from pinrel.platform.process import ProcessError
from pinrel.platform.process import run as run_process
from pinrel.services.release.errors import ReleaseError
from pinrel.services.release.model import RegistryEndpoint, RegistryRole
from pinrel.services.release.registry import NpmrcFiles
from pinrel.services.release.timeouts import (
    NPM_PACK_TIMEOUT_SECONDS,
    NPM_PUBLISH_TIMEOUT_SECONDS,
    NPM_READ_TIMEOUT_SECONDS,
)

_WORKSPACE_ENV = (
    "npm_config_workspace",
    "npm_config_workspaces",
    "npm_config_include_workspace_root",
)


class RegistryReader(Protocol):
    """Read strategies against a registry URL."""

    def view(self, spec: str, field: str, *, registry: str) -> str | None:
        """Single field of `npm view <spec>`; None if absent or unreachable."""
        ...

    def lookup(self, name: str, version: str, *, registry: str) -> bool:
        """Structured lookup: does `registry` report `name@version`?"""
        ...

    def fetch_metadata(
        self, name: str, *, registry: str, token: str | None = None
    ) -> Result[str, ReleaseError]:
        """Raw registry metadata document of a package."""
        ...

    def fetch_archive(
        self, name: str, version: str, *, registry: str, dest_dir: Path
    ) -> Result[Path, ReleaseError]:
        """Download the published tarball of name@version into dest_dir."""
        ...

    def ping(self, endpoint: RegistryEndpoint) -> bool: ...


class Packer(Protocol):
    def pack(self, directory: Path, *, dest_dir: Path) -> Result[Path, ReleaseError]:
        """Pack a package directory into dest_dir without publishing it."""
        ...


class NpmCli:
    def __init__(
        self,
        *,
        cwd: Path,
        npmrc: NpmrcFiles | None,
        http: HttpClient,
        console: ConsoleProtocol,
        npm: str = "npm",
    ) -> None:
        self._cwd = cwd
        self._npmrc = npmrc
        self._http = http
        self._console = console
        self._npm = npm

    @property
    def npmrc(self) -> NpmrcFiles | None:
        return self._npmrc

    # -- plumbing -----------------------------------------------------------

    def _env(self, role: RegistryRole) -> dict[str, str]:
        env = {k: v for k, v in os.environ.items() if k.lower() not in _WORKSPACE_ENV}
        if self._npmrc is not None:
            env["NPM_CONFIG_USERCONFIG"] = str(self._npmrc.for_role(role))
        env["NPM_CONFIG_LEGACY_PEER_DEPS"] = "true"
        env["npm_config_ignore_scripts"] = "true"
        env["npm_config_update_notifier"] = "false"
        return env

    def _run(
        self,
        args: list[str],
        *,
        role: RegistryRole,
        timeout: float,
        cwd: Path | None = None,
    ) -> Result[str, ProcessError]:
        return run_process(
            [self._npm, *args],
            cwd=cwd or self._cwd,
            env=self._env(role),
            timeout=timeout,
        )

    # -- reads --------------------------------------------------------------

    def view(self, spec: str, field: str, *, registry: str) -> str | None:
        result = self._run(
            ["view", spec, field, "--registry", registry, "--workspaces=false", "--prefer-online"],
            role="install",
            timeout=NPM_READ_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            return None
        return _last_view_value(result.value)

    def lookup(self, name: str, version: str, *, registry: str) -> bool:
        return self.view(f"{name}@{version}", "version", registry=registry) == version

    def fetch_metadata(
        self, name: str, *, registry: str, token: str | None = None
    ) -> Result[str, ReleaseError]:
        url = RegistryEndpoint("install", registry).package_url(name)
        result = self._http.get_text(url, auth_headers(token))
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="registry_failed",
                    message=f"metadata fetch failed for {name}",
                    hint=str(result.error),
                )
            )
        return result

    def fetch_archive(
        self, name: str, version: str, *, registry: str, dest_dir: Path
    ) -> Result[Path, ReleaseError]:
        dest_dir.mkdir(parents=True, exist_ok=True)
        args = ["pack", f"{name}@{version}", "--registry", registry, "--json"]
        args.extend(["--pack-destination", str(dest_dir)])
        result = self._run(
            args,
            role="install",
            timeout=NPM_PACK_TIMEOUT_SECONDS,
            cwd=dest_dir,
        )
        return self._packed_path(result, dest_dir=dest_dir, what=f"{name}@{version}")

    def ping(self, endpoint: RegistryEndpoint) -> bool:
        result = self._run(
            ["ping", "--registry", endpoint.url],
            role=endpoint.role,
            timeout=NPM_READ_TIMEOUT_SECONDS,
        )
        if isinstance(result, Ok):
            return True
        # Some aggregating registries do not implement npm's ping; their HTTP ping works.
        fallback = self._http.get_text(endpoint.url + "-/ping", auth_headers(endpoint.token))
        return isinstance(fallback, Ok)

    # -- local packing ------------------------------------------------------

    def pack(self, directory: Path, *, dest_dir: Path) -> Result[Path, ReleaseError]:
        dest_dir.mkdir(parents=True, exist_ok=True)
        self._console.print(f"npm pack {directory}", Style.DIM)
        result = self._run(
            ["pack", "--json", "--workspaces=false", "--pack-destination", str(dest_dir)],
            role="install",
            timeout=NPM_PACK_TIMEOUT_SECONDS,
            cwd=directory,
        )
        return self._packed_path(result, dest_dir=dest_dir, what=str(directory))

    def _packed_path(
        self,
        result: Result[str, ProcessError],
        *,
        dest_dir: Path,
        what: str,
    ) -> Result[Path, ReleaseError]:
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="pack_failed",
                    message=f"npm pack failed for {what}",
                    hint=result.error.detail,
                )
            )

        filename = _packed_filename(result.value)
        if filename is None:
            return Err(
                ReleaseError(
                    kind="pack_failed",
                    message=f"npm pack did not report an archive for {what}",
                )
            )
        path = dest_dir / filename
        if not path.is_file():
            return Err(
                ReleaseError(
                    kind="pack_failed",
                    message=f"packed archive not found: {path}",
                )
            )
        return Ok(path)

    # -- writes -------------------------------------------------------------

    def publish(
        self,
        archive: Path,
        *,
        endpoint: RegistryEndpoint,
        dist_tag: str | None,
    ) -> Result[None, ReleaseError]:
        if endpoint.role != "publish":
            # Router invariant: writes never go to the install endpoint.
            return Err(
                ReleaseError(
                    kind="configuration",
                    message=f"refusing to publish to the {endpoint.role} endpoint",
                    hint=endpoint.url,
                    step="publish",
                )
            )

        args = ["publish", str(archive), "--registry", endpoint.url, "--access", "public"]
        if dist_tag:
            args.extend(["--tag", dist_tag])
        self._console.print(f"npm publish {archive.name} -> {endpoint.url}", Style.DIM)

        result = self._run(args, role="publish", timeout=NPM_PUBLISH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="publish_failed",
                    message=f"registry rejected {archive.name}",
                    hint=result.error.detail,
                    step="publish",
                )
            )
        return Ok(None)


def _last_view_value(stdout: str) -> str | None:
    """Value printed by `npm view <spec> <field>`.

    A range matching several versions prints one `name@x.y.z 'value'` line
    per match in ascending order; the last one is the highest match.
    """
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    if not lines:
        return None
    last = lines[-1]
    if " " in last and last.endswith(("'", '"')):
        last = last.split(" ", 1)[1]
    return last.strip("'\"") or None


def _packed_filename(stdout: str) -> str | None:
    """Archive name from `npm pack --json` output (last plain line as a fallback)."""
    text = stdout.strip()
    start = text.find("[")
    if start >= 0:
        try:
            obj: object = json.loads(text[start:])
        except json.JSONDecodeError:
            obj = None
        items = as_obj_list(obj)
        if items:
            entry = as_str_dict(items[-1])
            if entry is not None:
                name = get_str(entry, "filename")
                if name is not None:
                    # npm < 9 reports scoped archives as "@scope/name-1.0.0.tgz".
                    return name.lstrip("@").replace("/", "-")

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if lines and lines[-1].endswith(".tgz"):
        return lines[-1]
    return None
