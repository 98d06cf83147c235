"""End-to-end release runs against the in-memory registry."""

from __future__ import annotations

from pathlib import Path

import pytest

from pinrel.core.config import VisibilitySettings
from pinrel.core.result import Err, Ok, Result
from pinrel.output.console import MockConsole
from pinrel.services.release import visibility
from pinrel.services.release.build import Builder, DryRunBuilder
from pinrel.services.release.errors import ReleaseError
from pinrel.services.release.manifest import Manifest
from pinrel.services.release.model import (
    PackageRef,
    RegistryEndpoint,
    RegistryPair,
    ReleaseRun,
)
from pinrel.services.release.mirror import MirrorSkipped
from pinrel.services.release.mutations import DryRunMutations, Mutations
from pinrel.services.release.pipeline import (
    ReleaseContext,
    ReleasePipeline,
    plan_versions,
    run_release,
)
from pinrel.services.release.plan import Package, ReleasePlan
from pinrel.test.services._release_fakes import (
    FakeRegistry,
    RecordingBuilder,
    read_archive_manifest,
    read_disk_manifest,
    write_package,
)

REGISTRY = "http://localhost:4873/"
SELF_HOSTED = RegistryPair(
    mode="self-hosted",
    install=RegistryEndpoint("install", REGISTRY),
    publish=RegistryEndpoint("publish", REGISTRY),
)
PUBLIC = "https://public.example/"

PLAN = ReleasePlan(
    libraries=(
        PackageRef("@acme/a", "packages/a", "library"),
        PackageRef("@acme/b", "packages/b", "library"),
    ),
    runtime=PackageRef("@acme/r", "packages/r", "runtime", bundle_script="bundle"),
    consumer=PackageRef("@acme/c", "packages/c", "consumer"),
)


@pytest.fixture(autouse=True)
def _fake_clock(monkeypatch: pytest.MonkeyPatch) -> None:
    now = [0.0]

    def _monotonic() -> float:
        return now[0]

    def _sleep(seconds: float) -> None:
        now[0] += seconds

    monkeypatch.setattr(visibility, "monotonic", _monotonic)
    monkeypatch.setattr(visibility, "sleep", _sleep)


@pytest.fixture
def source(tmp_path: Path) -> Path:
    root = tmp_path / "src"
    write_package(root, "packages/a", name="@acme/a", version="1.0.0")
    write_package(root, "packages/b", name="@acme/b", version="1.0.0")
    write_package(root, "packages/r", name="@acme/r", version="2.0.0")
    write_package(
        root,
        "packages/c",
        name="@acme/c",
        version="3.0.0",
        dependencies={"@acme/r": "^1.0.0", "chalk": "^4.1.0"},
    )
    return root


def _context(
    source: Path,
    *,
    registry: FakeRegistry,
    builder: Builder | None = None,
    mutations: Mutations | None = None,
    console: MockConsole | None = None,
    endpoints: RegistryPair = SELF_HOSTED,
    mirror_specs: tuple[str, ...] = (),
    dry_run: bool = False,
) -> ReleaseContext:
    return ReleaseContext(
        run=ReleaseRun(suffix="rc1", dist_tag="opensourcebuild", dry_run=dry_run),
        endpoints=endpoints,
        plan=PLAN,
        source_root=source,
        work_dir=source.parent / "work",
        reader=registry,
        packer=registry,
        builder=RecordingBuilder() if builder is None else builder,
        mutations=registry if mutations is None else mutations,
        console=console or MockConsole(),
        visibility=VisibilitySettings(library_timeout=4, final_timeout=4, interval=1),
        mirror_specs=mirror_specs,
        public_registry=PUBLIC,
    )


class TestHappyPath:
    def test_versions_pins_and_packaged_consumer(self, source: Path) -> None:
        registry = FakeRegistry()

        result = run_release(_context(source, registry=registry))

        assert isinstance(result, Ok)
        outcome = result.value
        assert registry.published_specs() == [
            "@acme/a@1.0.0-rc1",
            "@acme/b@1.0.0-rc1",
            "@acme/r@2.0.0-rc1",
            "@acme/c@3.0.0-rc1",
        ]
        assert all(p.dist_tag == "opensourcebuild" for p in registry.published)

        packaged = registry.archive(REGISTRY, "@acme/c", "3.0.0-rc1")
        assert packaged is not None
        manifest = read_archive_manifest(packaged)
        assert manifest["version"] == "3.0.0-rc1"
        assert manifest["dependencies"] == {
            "@acme/r": "2.0.0-rc1",
            "chalk": "^4.1.0",
            "@acme/a": "1.0.0-rc1",
            "@acme/b": "1.0.0-rc1",
        }

        assert dict(outcome.pins) == {
            "@acme/a": "1.0.0-rc1",
            "@acme/b": "1.0.0-rc1",
            "@acme/r": "2.0.0-rc1",
        }
        assert outcome.consumer.spec == "@acme/c@3.0.0-rc1"
        assert outcome.consumer.confirmed_visible
        assert set(outcome.states.values()) == {"visible"}
        assert outcome.skipped == ()

    def test_working_tree_manifests_are_rewritten(self, source: Path) -> None:
        run_release(_context(source, registry=FakeRegistry()))

        assert read_disk_manifest(source / "packages/a").version == "1.0.0-rc1"
        consumer = read_disk_manifest(source / "packages/c")
        assert consumer.version == "3.0.0-rc1"
        assert consumer.dependencies["@acme/r"] == "2.0.0-rc1"

    def test_published_consumer_is_the_audited_archive(self, source: Path) -> None:
        registry = FakeRegistry()

        run_release(_context(source, registry=registry))

        audited = [p for p in registry.packed if p.parent.name == "audit"]
        assert len(audited) == 1
        assert audited[0].read_bytes() == registry.archive(REGISTRY, "@acme/c", "3.0.0-rc1")

    def test_build_order_and_single_prepare(self, source: Path) -> None:
        builder = RecordingBuilder()

        run_release(_context(source, registry=FakeRegistry(), builder=builder))

        assert builder.calls == [
            "prepare",
            "build @acme/a",
            "build @acme/b",
            "build @acme/r",
            "bundle @acme/r",
            "build @acme/c",
        ]

    def test_enterprise_split_endpoints(self, source: Path) -> None:
        virtual = "https://art/api/npm/virtual/"
        local = "https://art/api/npm/local/"
        registry = FakeRegistry()
        registry.link(virtual, local)
        endpoints = RegistryPair(
            mode="enterprise",
            install=RegistryEndpoint("install", virtual),
            publish=RegistryEndpoint("publish", local),
        )

        result = run_release(_context(source, registry=registry, endpoints=endpoints))

        assert isinstance(result, Ok)
        assert {p.registry for p in registry.published} == {local}
        assert result.value.consumer.confirmed_visible

    def test_summary_dict(self, source: Path) -> None:
        registry = FakeRegistry()
        registry.seed(PUBLIC, "left-pad", "1.3.0")

        result = run_release(
            _context(source, registry=registry, mirror_specs=("left-pad@^1.0.0",))
        )

        assert isinstance(result, Ok)
        data = result.value.to_dict()
        assert data["suffix"] == "rc1"
        assert data["consumer"] == {
            "name": "@acme/c",
            "version": "3.0.0-rc1",
            "registry": REGISTRY,
            "confirmed_visible": True,
        }
        assert data["mirrors"] == [
            {
                "spec": "left-pad@^1.0.0",
                "outcome": "published",
                "name": "left-pad",
                "version": "1.3.0",
            }
        ]
        assert [p["state"] for p in data["packages"]] == ["visible"] * 4  # type: ignore[union-attr]


class BuggyPinWriter(FakeRegistry):
    """Writes the consumer's version but drops the pins on the floor."""

    def write_manifest(self, directory: Path, manifest: Manifest) -> Result[None, ReleaseError]:
        if manifest.name == "@acme/c":
            original = read_disk_manifest(directory)
            manifest = manifest.with_dependencies(original.dependencies)
        return super().write_manifest(directory, manifest)


class TestFailures:
    def test_audit_aborts_before_consumer_publish(self, source: Path) -> None:
        registry = BuggyPinWriter()
        console = MockConsole()
        pipeline = ReleasePipeline(_context(source, registry=registry, console=console))

        result = pipeline.run()

        assert isinstance(result, Err)
        assert result.error.kind == "audit_failed"
        assert result.error.package == "@acme/c"
        assert "@acme/r: expected 2.0.0-rc1, got ^1.0.0" in result.error.message
        assert registry.versions(REGISTRY, "@acme/c") == {}
        assert "@acme/c@3.0.0-rc1" not in registry.published_specs()
        assert pipeline.states["@acme/c"] == "failed"
        assert pipeline.states["@acme/r"] == "visible"

    def test_build_failure_stops_the_run(self, source: Path) -> None:
        registry = FakeRegistry()
        pipeline = ReleasePipeline(
            _context(source, registry=registry, builder=RecordingBuilder(fail_build={"@acme/b"}))
        )

        result = pipeline.run()

        assert isinstance(result, Err)
        assert result.error.kind == "build_failed"
        assert (result.error.package, result.error.step) == ("@acme/b", "build")
        assert registry.published_specs() == ["@acme/a@1.0.0-rc1"]
        assert pipeline.states["@acme/b"] == "failed"
        assert pipeline.states["@acme/r"] == "pending"

    def test_bundle_failure_is_a_warning(self, source: Path) -> None:
        console = MockConsole()
        result = run_release(
            _context(
                source,
                registry=FakeRegistry(),
                builder=RecordingBuilder(fail_bundle=True),
                console=console,
            )
        )

        assert isinstance(result, Ok)
        assert console.find("bundle failed; continuing")

    def test_publish_rejection_is_fatal(self, source: Path) -> None:
        registry = FakeRegistry(reject_publish={"@acme/r"})

        result = run_release(_context(source, registry=registry))

        assert isinstance(result, Err)
        assert result.error.kind == "publish_failed"
        assert result.error.step == "publish"
        assert "@acme/c" not in {p.name for p in registry.published}

    def test_already_published_version_is_fatal(self, source: Path) -> None:
        registry = FakeRegistry()
        registry.seed(REGISTRY, "@acme/a", "1.0.0-rc1")

        result = run_release(_context(source, registry=registry))

        assert isinstance(result, Err)
        assert result.error.package == "@acme/a"
        assert registry.published == []

    def test_invalid_version_publishes_nothing(self, source: Path) -> None:
        write_package(source, "packages/r", name="@acme/r", version="two")
        registry = FakeRegistry()

        result = run_release(_context(source, registry=registry))

        assert isinstance(result, Err)
        assert result.error.kind == "invalid_version"
        assert result.error.package == "@acme/r"
        assert registry.published == []

    def test_prepare_failure(self, source: Path) -> None:
        registry = FakeRegistry()

        result = run_release(
            _context(source, registry=registry, builder=RecordingBuilder(fail_prepare=True))
        )

        assert isinstance(result, Err)
        assert result.error.kind == "build_failed"
        assert registry.published == []

    def test_mirror_failure_does_not_stop_the_run(self, source: Path) -> None:
        registry = FakeRegistry()
        console = MockConsole()

        result = run_release(
            _context(
                source,
                registry=registry,
                console=console,
                mirror_specs=("ghost@^1.0.0",),
            )
        )

        assert isinstance(result, Ok)
        assert console.find("ghost@^1.0.0: not resolvable")


class TestVisibility:
    def test_invisible_package_is_reported_not_fatal(self, source: Path) -> None:
        registry = FakeRegistry()
        # Reads go to a URL nothing is ever published to.
        endpoints = RegistryPair(
            mode="enterprise",
            install=RegistryEndpoint("install", "https://art/api/npm/virtual/"),
            publish=RegistryEndpoint("publish", "https://art/api/npm/local/"),
        )
        console = MockConsole()

        result = run_release(
            _context(source, registry=registry, endpoints=endpoints, console=console)
        )

        assert isinstance(result, Ok)
        assert not result.value.consumer.confirmed_visible
        assert set(result.value.states.values()) == {"visibility_unknown"}
        assert console.find("not visible at https://art/api/npm/virtual/")

    def test_unreachable_registry_is_a_warning(self, source: Path) -> None:
        console = MockConsole()

        result = run_release(
            _context(source, registry=FakeRegistry(reachable=False), console=console)
        )

        assert isinstance(result, Ok)
        assert console.find("Registry ping failed")


class TestDryRun:
    def test_nothing_is_written(self, source: Path) -> None:
        registry = FakeRegistry()
        registry.seed(PUBLIC, "left-pad", "1.3.0")
        console = MockConsole()
        mutations = DryRunMutations(console=console)
        builder = DryRunBuilder(console=console)

        result = run_release(
            _context(
                source,
                registry=registry,
                builder=builder,
                mutations=mutations,
                console=console,
                mirror_specs=("left-pad@^1.0.0",),
                dry_run=True,
            )
        )

        assert isinstance(result, Ok)
        outcome = result.value
        assert registry.published == []
        assert registry.packed == []
        assert read_disk_manifest(source / "packages/c").version == "3.0.0"
        assert outcome.skipped == ("visibility", "audit")
        assert outcome.pins["@acme/r"] == "2.0.0-rc1"
        assert not outcome.consumer.confirmed_visible
        assert builder.actions[0] == "npm ci"
        assert any("3.0.0-rc1" in a and "@acme/r=2.0.0-rc1" in a for a in mutations.actions)
        assert not any("left-pad" in a for a in mutations.actions)
        assert [(type(m), m.spec) for m in outcome.mirrors] == [(MirrorSkipped, "left-pad@^1.0.0")]
        assert outcome.to_dict()["mirrors"][0]["reason"] == "dry run"
        assert not (source.parent / "work").exists()


def test_plan_versions_strips_existing_prerelease(tmp_path: Path) -> None:
    packages = [
        Package(
            ref=PackageRef("@acme/a", "a", "library"),
            directory=tmp_path,
            manifest=Manifest("@acme/a", "1.4.0-beta.2", {}),
        )
    ]
    assert plan_versions(packages, suffix="rc1") == Ok({"@acme/a": "1.4.0-rc1"})
