"""package.json as a value type.

Manifests are read into `Manifest`, changed with `with_version` /
`with_dependencies`, and written back whole. Every field we do not model is
kept verbatim and in its original order.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from pinrel.core.result import Err, Ok, Result
from pinrel.core.structured import StrDict, as_str_dict, get_str, get_str_map
from pinrel.platform.files import atomic_write_json
from pinrel.services.release.errors import ReleaseError

MANIFEST_NAME = "package.json"


def _empty_raw() -> StrDict:
    return {}


@dataclass(frozen=True, slots=True)
class Manifest:
    name: str
    version: str
    dependencies: Mapping[str, str]
    # The full parsed document; name/version/dependencies above take precedence.
    raw: StrDict = field(default_factory=_empty_raw, compare=False, repr=False)

    def with_version(self, version: str) -> Manifest:
        return Manifest(self.name, version, dict(self.dependencies), self.raw)

    def with_dependencies(self, dependencies: Mapping[str, str]) -> Manifest:
        return Manifest(self.name, self.version, dict(dependencies), self.raw)

    def to_dict(self) -> StrDict:
        data: StrDict = dict(self.raw)
        data["name"] = self.name
        data["version"] = self.version
        if self.dependencies or "dependencies" in self.raw:
            data["dependencies"] = dict(self.dependencies)
        return data


def _invalid(message: str, source: str) -> Err[ReleaseError]:
    return Err(ReleaseError(kind="invalid_manifest", message=message, hint=source))


def parse_manifest(text: str, *, source: str) -> Result[Manifest, ReleaseError]:
    try:
        obj: object = json.loads(text)
    except json.JSONDecodeError as e:
        return _invalid(f"invalid JSON in {MANIFEST_NAME}: {e}", source)

    data = as_str_dict(obj)
    if data is None:
        return _invalid(f"{MANIFEST_NAME} root must be an object", source)

    name = get_str(data, "name")
    if name is None:
        return _invalid(f"missing name in {MANIFEST_NAME}", source)

    version = get_str(data, "version")
    if version is None:
        return _invalid(f"missing version in {MANIFEST_NAME}", source)

    deps: dict[str, str] = {}
    if "dependencies" in data:
        parsed = get_str_map(data, "dependencies")
        if parsed is None:
            return _invalid("dependencies must map names to version strings", source)
        deps = parsed

    return Ok(Manifest(name=name, version=version, dependencies=deps, raw=data))


def read_manifest(directory: Path) -> Result[Manifest, ReleaseError]:
    path = directory / MANIFEST_NAME
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        return _invalid(f"failed to read {MANIFEST_NAME}: {e}", str(path))
    return parse_manifest(text, source=str(path))


def write_manifest(directory: Path, manifest: Manifest) -> Result[None, ReleaseError]:
    path = directory / MANIFEST_NAME
    try:
        atomic_write_json(path, manifest.to_dict())
    except OSError as e:
        return _invalid(f"failed to write {MANIFEST_NAME}: {e}", str(path))
    return Ok(None)
