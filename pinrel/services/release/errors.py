from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal

ReleaseErrorKind = Literal[
    "configuration",
    "invalid_version",
    "invalid_manifest",
    "build_failed",
    "publish_failed",
    "audit_failed",
    "duplicate_pin",
    "pack_failed",
    "registry_failed",
    "integrity_mismatch",
]

ReleaseStep = Literal[
    "configure",
    "load",
    "build",
    "bundle",
    "version",
    "publish",
    "pin",
    "audit",
    "mirror",
    "verify",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Canonical pipeline error payload.

    `package` and `step` are attached by the release plan as the error
    travels up, so a fatal error always names what failed and where.
    """

    kind: ReleaseErrorKind
    message: str
    hint: str | None = None
    package: str | None = None
    step: ReleaseStep | None = None

    def at(self, *, package: str, step: ReleaseStep) -> ReleaseError:
        """Return a copy located at package/step (existing location wins)."""
        return replace(
            self,
            package=self.package or package,
            step=self.step or step,
        )

    def pretty(self) -> str:
        prefix = ""
        if self.package:
            prefix += f"{self.package}: "
        if self.step:
            prefix += f"{self.step}: "
        text = prefix + self.message
        if self.hint:
            return f"{text} (hint: {self.hint})"
        return text
