"""External build collaborator.

The release only needs pass/fail from a build; it never inspects build
output. `NpmBuilder` drives npm workspaces in the source tree,
`DryRunBuilder` echoes the commands it would run.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from pinrel.core.result import Err, Ok, Result
from pinrel.output.console import ConsoleProtocol, Style
from pinrel.platform.process import run as run_process
from pinrel.services.release.errors import ReleaseError
from pinrel.services.release.model import PackageRef
from pinrel.services.release.registry import NpmrcFiles
from pinrel.services.release.timeouts import NPM_BUILD_TIMEOUT_SECONDS, NPM_INSTALL_TIMEOUT_SECONDS


class Builder(Protocol):
    def prepare(self) -> Result[None, ReleaseError]:
        """Install the source tree's dependencies once, before any build."""
        ...

    def build(self, package: PackageRef) -> Result[None, ReleaseError]: ...

    def bundle(self, package: PackageRef) -> Result[None, ReleaseError]:
        """Run the package's bundle script. Callers treat failures as warnings."""
        ...


class NpmBuilder:
    def __init__(
        self,
        *,
        source_root: Path,
        console: ConsoleProtocol,
        npmrc: NpmrcFiles | None = None,
        npm: str = "npm",
    ) -> None:
        self._root = source_root
        self._console = console
        self._npmrc = npmrc
        self._npm = npm

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self._npmrc is not None:
            # Builds resolve dependencies through the read path only.
            env["NPM_CONFIG_USERCONFIG"] = str(self._npmrc.install)
        env["NPM_CONFIG_LEGACY_PEER_DEPS"] = "true"
        return env

    def _npm_run(
        self,
        args: list[str],
        *,
        timeout: float,
        cwd: Path | None = None,
    ) -> Result[str, str | None]:
        cmd = [self._npm, *args]
        self._console.print(" ".join(cmd), Style.DIM)
        result = run_process(cmd, cwd=cwd or self._root, env=self._env(), timeout=timeout)
        if isinstance(result, Err):
            return Err(result.error.detail)
        return Ok(result.value)

    def prepare(self) -> Result[None, ReleaseError]:
        result = self._npm_run(["ci"], timeout=NPM_INSTALL_TIMEOUT_SECONDS)
        if isinstance(result, Ok):
            return Ok(None)

        self._console.warning("npm ci failed; falling back to npm install")
        result = self._npm_run(["install"], timeout=NPM_INSTALL_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="build_failed",
                    message="dependency installation failed",
                    hint=result.error,
                    step="build",
                )
            )
        return Ok(None)

    def build(self, package: PackageRef) -> Result[None, ReleaseError]:
        result = self._npm_run(
            ["run", "--workspace", package.name, "build"],
            timeout=NPM_BUILD_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="build_failed",
                    message="build script failed",
                    hint=result.error,
                    package=package.name,
                    step="build",
                )
            )
        return Ok(None)

    def bundle(self, package: PackageRef) -> Result[None, ReleaseError]:
        if not package.bundle_script:
            return Ok(None)
        result = self._npm_run(
            ["run", package.bundle_script],
            timeout=NPM_BUILD_TIMEOUT_SECONDS,
            cwd=self._root / package.directory,
        )
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="build_failed",
                    message=f"bundle script {package.bundle_script!r} failed",
                    hint=result.error,
                    package=package.name,
                    step="bundle",
                )
            )
        return Ok(None)


@dataclass(slots=True)
class DryRunBuilder:
    console: ConsoleProtocol
    actions: list[str] = field(default_factory=list)

    def _report(self, action: str) -> Result[None, ReleaseError]:
        self.actions.append(action)
        self.console.print(f"[dry-run] {action}", Style.DIM)
        return Ok(None)

    def prepare(self) -> Result[None, ReleaseError]:
        return self._report("npm ci")

    def build(self, package: PackageRef) -> Result[None, ReleaseError]:
        return self._report(f"npm run --workspace {package.name} build")

    def bundle(self, package: PackageRef) -> Result[None, ReleaseError]:
        if not package.bundle_script:
            return Ok(None)
        return self._report(f"npm run {package.bundle_script} ({package.directory})")


def builder_for(
    *,
    dry_run: bool,
    source_root: Path,
    console: ConsoleProtocol,
    npmrc: NpmrcFiles | None,
) -> Builder:
    if dry_run:
        return DryRunBuilder(console=console)
    return NpmBuilder(source_root=source_root, console=console, npmrc=npmrc)
