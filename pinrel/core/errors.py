"""Exit codes for CLI commands.

Every release error kind maps to one of these codes, so CI jobs wrapping
`pinrel release` can tell a bad configuration from a registry outage or a
failed pin audit without parsing output.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Process exit codes. Values are stable.

    - 0: Success
    - 1: User error (bad flag, unknown package spec)
    - 2: Environment error (missing/contradictory registry configuration)
    - 3: Build error (external build step failed)
    - 4: Network error (registry rejected a write or is unreachable)
    - 5: I/O error (manifest unreadable, archive could not be packed)
    - 6: Audit error (packaged manifest does not carry the injected pins)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
    AUDIT_ERROR = 6
