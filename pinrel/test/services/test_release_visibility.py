from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from pinrel.core.result import Err, Ok, Result
from pinrel.output.console import MockConsole
from pinrel.services.release import visibility
from pinrel.services.release.errors import ReleaseError
from pinrel.services.release.model import RegistryEndpoint
from pinrel.services.release.visibility import await_visible, is_visible

ENDPOINT = RegistryEndpoint("install", "https://art/api/npm/virtual/", "tok")


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@dataclass
class ScriptedReader:
    """Registry reader whose lookup turns true after `visible_after` calls."""

    visible_after: int | None = None
    metadata: str | None = None
    lookups: int = 0
    tokens: list[str | None] = field(default_factory=list)

    def view(self, spec: str, field: str, *, registry: str) -> str | None:
        return None

    def lookup(self, name: str, version: str, *, registry: str) -> bool:
        self.lookups += 1
        return self.visible_after is not None and self.lookups > self.visible_after

    def fetch_metadata(
        self, name: str, *, registry: str, token: str | None = None
    ) -> Result[str, ReleaseError]:
        self.tokens.append(token)
        if self.metadata is None:
            return Err(ReleaseError(kind="registry_failed", message="404"))
        return Ok(self.metadata)

    def fetch_archive(
        self, name: str, version: str, *, registry: str, dest_dir: Path
    ) -> Result[Path, ReleaseError]:
        return Err(ReleaseError(kind="pack_failed", message="unused"))

    def ping(self, endpoint: RegistryEndpoint) -> bool:
        return True


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(visibility, "monotonic", fake.monotonic)
    monkeypatch.setattr(visibility, "sleep", fake.sleep)
    return fake


class TestIsVisible:
    def test_lookup_hit(self) -> None:
        reader = ScriptedReader(visible_after=0)
        assert is_visible(name="a", version="1.0.0-rc1", endpoint=ENDPOINT, reader=reader)
        assert reader.tokens == []

    def test_metadata_fallback_uses_endpoint_token(self) -> None:
        reader = ScriptedReader(metadata='{"versions": {"1.0.0-rc1": {}}}')
        assert is_visible(name="a", version="1.0.0-rc1", endpoint=ENDPOINT, reader=reader)
        assert reader.tokens == ["tok"]

    def test_metadata_without_version(self) -> None:
        reader = ScriptedReader(metadata='{"versions": {"1.0.0": {}}}')
        assert not is_visible(name="a", version="1.0.0-rc1", endpoint=ENDPOINT, reader=reader)


class TestAwaitVisible:
    def test_visible_mid_poll(self, clock: FakeClock) -> None:
        reader = ScriptedReader(visible_after=3)
        console = MockConsole()

        ok = await_visible(
            name="a",
            version="1.0.0-rc1",
            endpoint=ENDPOINT,
            reader=reader,
            timeout=90,
            console=console,
        )

        assert ok is True
        assert clock.sleeps == [2.0, 2.0, 2.0]
        assert console.find("visible at")
        assert not console.has_warning()

    def test_timeout_returns_false_with_warning(self, clock: FakeClock) -> None:
        reader = ScriptedReader()
        console = MockConsole()

        ok = await_visible(
            name="a",
            version="1.0.0-rc1",
            endpoint=ENDPOINT,
            reader=reader,
            timeout=10,
            console=console,
            interval=2,
        )

        assert ok is False
        assert sum(clock.sleeps) <= 10
        assert reader.lookups == 6
        assert console.find("after 10s; continuing")

    def test_zero_timeout_still_checks_once(self, clock: FakeClock) -> None:
        reader = ScriptedReader(visible_after=0)

        ok = await_visible(
            name="a",
            version="1.0.0-rc1",
            endpoint=ENDPOINT,
            reader=reader,
            timeout=0,
            console=MockConsole(),
        )

        assert ok is True
        assert clock.sleeps == []
