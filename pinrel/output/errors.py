"""Error presentation utilities.

Centralized release error formatting and exit code mapping.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pinrel.core.errors import ErrorCode
from pinrel.output.console import Style
from pinrel.services.release.errors import ReleaseError, ReleaseErrorKind

if TYPE_CHECKING:
    from pinrel.output.console import ConsoleProtocol

__all__ = ["print_release_error", "release_error_code"]


def release_error_code(kind: ReleaseErrorKind) -> ErrorCode:
    match kind:
        case "configuration":
            return ErrorCode.ENV_ERROR
        case "build_failed":
            return ErrorCode.BUILD_ERROR
        case "publish_failed" | "registry_failed" | "integrity_mismatch":
            return ErrorCode.NETWORK_ERROR
        case "invalid_manifest" | "pack_failed":
            return ErrorCode.IO_ERROR
        case "audit_failed":
            return ErrorCode.AUDIT_ERROR
        case _:
            return ErrorCode.USER_ERROR


def print_release_error(error: ReleaseError, console: ConsoleProtocol) -> None:
    """Print a fatal release error: package, failing step, message, then hint."""
    prefix = "".join(f"{part}: " for part in (error.package, error.step) if part)
    console.error(prefix + error.message)
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)
