from __future__ import annotations

import re
from dataclasses import dataclass

from pinrel.core.result import Err, Ok, Result
from pinrel.services.release.errors import ReleaseError


_NUM = r"(0|[1-9]\d*)"
_IDENT = r"[0-9A-Za-z-]+"
_VERSION_RE = re.compile(
    rf"^v?{_NUM}\.{_NUM}\.{_NUM}"
    rf"(?:-({_IDENT}(?:\.{_IDENT})*))?"
    rf"(?:\+({_IDENT}(?:\.{_IDENT})*))?$"
)
_PRERELEASE_RE = re.compile(rf"^{_IDENT}(?:\.{_IDENT})*$")


@dataclass(frozen=True, slots=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: str | None = None
    build: str | None = None

    @property
    def base(self) -> SemVer:
        """The same version without prerelease or build metadata."""
        return SemVer(self.major, self.minor, self.patch)

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    def with_prerelease(self, prerelease: str) -> SemVer:
        return SemVer(self.major, self.minor, self.patch, prerelease)

    def __str__(self) -> str:
        out = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            out += f"-{self.prerelease}"
        if self.build:
            out += f"+{self.build}"
        return out


def parse_version(text: str) -> SemVer | None:
    m = _VERSION_RE.match(text.strip())
    if m is None:
        return None
    return SemVer(
        int(m.group(1)),
        int(m.group(2)),
        int(m.group(3)),
        m.group(4),
        m.group(5),
    )


def is_valid_suffix(suffix: str) -> bool:
    """True if suffix can be used as a semver prerelease segment."""
    return _PRERELEASE_RE.match(suffix) is not None


def base_version(version: str) -> Result[str, ReleaseError]:
    """Strip any prerelease/build segment: `1.4.0-beta.2` -> `1.4.0`."""
    parsed = parse_version(version)
    if parsed is None:
        return Err(
            ReleaseError(
                kind="invalid_version",
                message=f"not a semantic version: {version!r}",
                hint="Expected MAJOR.MINOR.PATCH[-prerelease][+build]",
                step="version",
            )
        )
    return Ok(str(parsed.base))


def allocate_version(base: str, suffix: str) -> Result[str, ReleaseError]:
    """Derive the run version of a package: `<base without prerelease>-<suffix>`.

    Deterministic: the same (base, suffix) always yields the same version, and
    an already-suffixed base yields the same result as its stripped form.
    """
    if not is_valid_suffix(suffix):
        return Err(
            ReleaseError(
                kind="invalid_version",
                message=f"invalid prerelease suffix: {suffix!r}",
                hint="Use dot-separated [0-9A-Za-z-] identifiers, e.g. release.20250101120000",
                step="version",
            )
        )

    stripped = base_version(base)
    if isinstance(stripped, Err):
        return stripped
    return Ok(f"{stripped.value}-{suffix}")
