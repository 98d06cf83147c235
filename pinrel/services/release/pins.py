"""Pin propagation: released versions -> exact pins in the consumer manifest."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType

from pinrel.core.result import Err, Ok, Result
from pinrel.services.release.errors import ReleaseError
from pinrel.services.release.manifest import Manifest


class PinMap:
    """Append-only name -> published version map for one run.

    A name can be recorded once; there is no update or removal. Readers get
    `view()`, a read-only mapping that tracks later inserts.
    """

    def __init__(self) -> None:
        self._pins: dict[str, str] = {}

    def record(self, name: str, version: str) -> Result[None, ReleaseError]:
        existing = self._pins.get(name)
        if existing is not None:
            return Err(
                ReleaseError(
                    kind="duplicate_pin",
                    message=f"already pinned to {existing} in this run (got {version})",
                    hint="Each package is released at most once per run",
                    package=name,
                    step="pin",
                )
            )
        self._pins[name] = version
        return Ok(None)

    def view(self) -> Mapping[str, str]:
        return MappingProxyType(self._pins)

    def get(self, name: str) -> str | None:
        return self._pins.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._pins

    def __iter__(self) -> Iterator[str]:
        return iter(self._pins)

    def __len__(self) -> int:
        return len(self._pins)

    def __repr__(self) -> str:
        return f"PinMap({self._pins!r})"


def apply_pins(manifest: Manifest, pins: Mapping[str, str]) -> Manifest:
    """Overwrite the manifest's dependency entry of every pinned name.

    Ranges, dist-tags and absent entries are all replaced with the exact
    version. Entries for names not in `pins` are left as declared.
    Idempotent: applying the same pins twice gives the same manifest.
    """
    deps = dict(manifest.dependencies)
    for name, version in pins.items():
        deps[name] = version
    return manifest.with_dependencies(deps)
