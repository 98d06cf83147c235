from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from urllib.parse import urlsplit


PackageRole = Literal["library", "runtime", "consumer"]
RegistryRole = Literal["install", "publish"]
RegistryMode = Literal["self-hosted", "enterprise"]

# Pending -> Built -> Versioned -> Published -> (Visible | VisibilityUnknown).
# Failed is terminal and reachable from Built or a Published attempt.
PackageState = Literal[
    "pending",
    "built",
    "versioned",
    "published",
    "visible",
    "visibility_unknown",
    "failed",
]


@dataclass(frozen=True, slots=True)
class PackageRef:
    """A first-party package in the curated release plan."""

    name: str  # npm name, usually scoped (@scope/name)
    directory: str  # relative to the source root
    role: PackageRole
    # Runtime-support packages only: npm script that bundles embedded libraries.
    bundle_script: str | None = None


@dataclass(frozen=True, slots=True)
class RegistryEndpoint:
    role: RegistryRole
    url: str  # always ends with exactly one "/"
    token: str | None = None

    @property
    def auth_key(self) -> str:
        """npmrc auth prefix: `//host[:port]/path/`."""
        parts = urlsplit(self.url)
        path = parts.path.rstrip("/") + "/"
        return f"//{parts.netloc}{path}"

    def package_url(self, name: str) -> str:
        """URL of the registry metadata document for a package."""
        # Scoped names keep the "@" but encode the slash, as npm does.
        return self.url + name.replace("/", "%2F")


@dataclass(frozen=True, slots=True)
class RegistryPair:
    """The two registry roles of a run.

    The values are kept separate even when both point at the same backend:
    writes go to `publish`, visibility checks go to `install`.
    """

    mode: RegistryMode
    install: RegistryEndpoint
    publish: RegistryEndpoint

    @property
    def shared_backend(self) -> bool:
        return self.install.url == self.publish.url


@dataclass(frozen=True, slots=True)
class ReleaseRun:
    """Per-execution settings, created once and read by every component."""

    suffix: str
    dist_tag: str
    dry_run: bool = False


@dataclass(frozen=True, slots=True)
class PublishRecord:
    name: str
    version: str
    registry: str
    confirmed_visible: bool = False

    @property
    def spec(self) -> str:
        return f"{self.name}@{self.version}"
