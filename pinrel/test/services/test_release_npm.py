from __future__ import annotations

import json
from pathlib import Path

import pytest

from pinrel.core.result import Err, Ok, Result
from pinrel.output.console import MockConsole
from pinrel.platform.http import MockHttpClient
from pinrel.platform.process import ProcessError
from pinrel.services.release import npm
from pinrel.services.release.model import RegistryEndpoint
from pinrel.services.release.npm import NpmCli, _last_view_value, _packed_filename
from pinrel.services.release.registry import NpmrcFiles

INSTALL = RegistryEndpoint("install", "https://art/api/npm/virtual/", "tok")
PUBLISH = RegistryEndpoint("publish", "https://art/api/npm/local/", "tok")


class RecordingRun:
    def __init__(self, outputs: list[Result[str, ProcessError]] | None = None) -> None:
        self.outputs = list(outputs or [])
        self.calls: list[tuple[list[str], Path, dict[str, str]]] = []

    def __call__(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> Result[str, ProcessError]:
        del timeout
        self.calls.append((cmd, cwd, dict(env or {})))
        if self.outputs:
            return self.outputs.pop(0)
        return Ok("")


def _fail(stderr: str = "npm ERR! 404") -> Err[ProcessError]:
    return Err(ProcessError(("npm",), 1, "", stderr))


def _cli(tmp_path: Path, http: MockHttpClient | None = None) -> NpmCli:
    files = NpmrcFiles(install=tmp_path / "npmrc.install", publish=tmp_path / "npmrc.publish")
    return NpmCli(cwd=tmp_path, npmrc=files, http=http or MockHttpClient(), console=MockConsole())


class TestViewOutputParsing:
    def test_single_value(self) -> None:
        assert _last_view_value("1.3.0\n") == "1.3.0"

    def test_multiple_matches_takes_highest(self) -> None:
        out = "left-pad@1.2.0 '1.2.0'\nleft-pad@1.3.0 '1.3.0'\n"
        assert _last_view_value(out) == "1.3.0"

    def test_empty(self) -> None:
        assert _last_view_value("\n\n") is None


class TestPackedFilename:
    def test_json_output(self) -> None:
        out = json.dumps([{"filename": "usebruno-common-1.0.0-rc1.tgz"}])
        assert _packed_filename(out) == "usebruno-common-1.0.0-rc1.tgz"

    def test_legacy_scoped_filename(self) -> None:
        out = json.dumps([{"filename": "@usebruno/common-1.0.0-rc1.tgz"}])
        assert _packed_filename(out) == "usebruno-common-1.0.0-rc1.tgz"

    def test_lifecycle_noise_before_json(self) -> None:
        out = "> prepack\n" + json.dumps([{"filename": "a-1.0.0.tgz"}])
        assert _packed_filename(out) == "a-1.0.0.tgz"

    def test_plain_output_fallback(self) -> None:
        assert _packed_filename("npm notice\na-1.0.0.tgz\n") == "a-1.0.0.tgz"

    def test_nothing_useful(self) -> None:
        assert _packed_filename("npm notice only") is None


class TestReads:
    def test_view_uses_install_config_and_drops_workspace_env(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fake = RecordingRun([Ok("2.1.0\n")])
        monkeypatch.setattr(npm, "run_process", fake)
        monkeypatch.setenv("npm_config_workspace", "packages/app")

        value = _cli(tmp_path).view("@acme/shim@^2", "version", registry=INSTALL.url)

        assert value == "2.1.0"
        cmd, _, env = fake.calls[0]
        assert cmd[:4] == ["npm", "view", "@acme/shim@^2", "version"]
        assert "--workspaces=false" in cmd
        assert env["NPM_CONFIG_USERCONFIG"] == str(tmp_path / "npmrc.install")
        assert "npm_config_workspace" not in env

    def test_view_failure_is_none(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(npm, "run_process", RecordingRun([_fail()]))
        assert _cli(tmp_path).view("ghost", "version", registry=INSTALL.url) is None

    def test_lookup_requires_exact_version(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(npm, "run_process", RecordingRun([Ok("1.0.0\n"), Ok("1.0.0-rc1\n")]))
        cli = _cli(tmp_path)
        assert cli.lookup("a", "1.0.0-rc1", registry=INSTALL.url) is False
        assert cli.lookup("a", "1.0.0-rc1", registry=INSTALL.url) is True

    def test_fetch_metadata_sends_token(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        http.set_text(INSTALL.url + "@acme%2Fa", '{"versions": {}}')

        result = _cli(tmp_path, http).fetch_metadata("@acme/a", registry=INSTALL.url, token="tok")

        assert result == Ok('{"versions": {}}')
        assert http.headers_seen[0]["Authorization"] == "Bearer tok"

    def test_fetch_metadata_failure(self, tmp_path: Path) -> None:
        result = _cli(tmp_path).fetch_metadata("@acme/a", registry=INSTALL.url)
        assert isinstance(result, Err)
        assert result.error.kind == "registry_failed"

    def test_ping_falls_back_to_http(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(npm, "run_process", RecordingRun([_fail(), _fail()]))
        http = MockHttpClient()
        http.set_text(PUBLISH.url + "-/ping", "{}")
        cli = _cli(tmp_path, http)

        assert cli.ping(PUBLISH) is True
        assert cli.ping(INSTALL) is False


class TestPack:
    def test_pack_returns_archive(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        dest = tmp_path / "out"

        def fake_run(
            cmd: list[str],
            cwd: Path,
            env: dict[str, str] | None = None,
            *,
            timeout: float | None = None,
        ) -> Result[str, ProcessError]:
            del env, timeout
            assert cwd == tmp_path / "pkg"
            (dest / "a-1.0.0.tgz").write_bytes(b"x")
            return Ok(json.dumps([{"filename": "a-1.0.0.tgz"}]))

        monkeypatch.setattr(npm, "run_process", fake_run)

        result = _cli(tmp_path).pack(tmp_path / "pkg", dest_dir=dest)

        assert result == Ok(dest / "a-1.0.0.tgz")

    def test_reported_archive_missing(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        out = json.dumps([{"filename": "a-1.0.0.tgz"}])
        monkeypatch.setattr(npm, "run_process", RecordingRun([Ok(out)]))

        result = _cli(tmp_path).pack(tmp_path, dest_dir=tmp_path / "out")

        assert isinstance(result, Err)
        assert result.error.kind == "pack_failed"

    def test_pack_failure(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(npm, "run_process", RecordingRun([_fail("ENOENT package.json")]))

        result = _cli(tmp_path).pack(tmp_path, dest_dir=tmp_path / "out")

        assert isinstance(result, Err)
        assert result.error.hint == "ENOENT package.json"


class TestPublish:
    def test_publish_uses_publish_config_and_tag(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fake = RecordingRun()
        monkeypatch.setattr(npm, "run_process", fake)

        result = _cli(tmp_path).publish(tmp_path / "a.tgz", endpoint=PUBLISH, dist_tag="nightly")

        assert result == Ok(None)
        cmd, _, env = fake.calls[0]
        assert cmd == [
            "npm",
            "publish",
            str(tmp_path / "a.tgz"),
            "--registry",
            PUBLISH.url,
            "--access",
            "public",
            "--tag",
            "nightly",
        ]
        assert env["NPM_CONFIG_USERCONFIG"] == str(tmp_path / "npmrc.publish")

    def test_publish_without_tag(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = RecordingRun()
        monkeypatch.setattr(npm, "run_process", fake)

        _cli(tmp_path).publish(tmp_path / "a.tgz", endpoint=PUBLISH, dist_tag=None)

        assert "--tag" not in fake.calls[0][0]

    def test_refuses_install_endpoint(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fake = RecordingRun()
        monkeypatch.setattr(npm, "run_process", fake)

        result = _cli(tmp_path).publish(tmp_path / "a.tgz", endpoint=INSTALL, dist_tag="x")

        assert isinstance(result, Err)
        assert result.error.kind == "configuration"
        assert fake.calls == []

    def test_rejection(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(npm, "run_process", RecordingRun([_fail("E403 cannot overwrite")]))

        result = _cli(tmp_path).publish(tmp_path / "a.tgz", endpoint=PUBLISH, dist_tag="x")

        assert isinstance(result, Err)
        assert result.error.kind == "publish_failed"
        assert result.error.hint == "E403 cannot overwrite"
