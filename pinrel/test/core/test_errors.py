"""Tests for pinrel.core.errors module."""

from pinrel.core.errors import ErrorCode


class TestErrorCode:
    def test_values_are_stable(self) -> None:
        assert ErrorCode.OK == 0
        assert ErrorCode.USER_ERROR == 1
        assert ErrorCode.ENV_ERROR == 2
        assert ErrorCode.BUILD_ERROR == 3
        assert ErrorCode.NETWORK_ERROR == 4
        assert ErrorCode.IO_ERROR == 5
        assert ErrorCode.AUDIT_ERROR == 6

    def test_usable_as_exit_code(self) -> None:
        assert int(ErrorCode.IO_ERROR) == 5
