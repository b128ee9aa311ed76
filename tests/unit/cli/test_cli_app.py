import pytest
import requests_mock
from typer.testing import CliRunner

from ossclient import __version__
from ossclient.cli.app import app

runner = CliRunner()

CLI_ENV = {"TERM": "dumb", "NO_COLOR": "1", "RICH_DISABLE": "1"}
DESCRIPTOR_URL = (
    "https://oss.test/oss/v2/buckets/test-bucket/objects/model.rvt/signeds3download"
)
OBJECT_URL = "https://cdn.test/object"


@pytest.fixture
def cli_env(monkeypatch):
    monkeypatch.setenv("OSS_ACCESS_TOKEN", "test-token")
    monkeypatch.setenv("OSS_API_URL", "https://oss.test")
    monkeypatch.setenv("OSS_CHUNK_SIZE", "4")


@pytest.fixture(autouse=True)
def isolated_config(temp_config_dir):
    yield temp_config_dir


def test_ossclient_cli_version() -> None:
    result = runner.invoke(app, ["--version"], color=False, env=CLI_ENV)

    assert result.exit_code == 0
    assert result.output.strip() == __version__


def test_ossclient_cli_help_includes_subcommands() -> None:
    result = runner.invoke(app, ["--help"], color=False, env=CLI_ENV)

    assert result.exit_code == 0
    assert "upload" in result.output
    assert "download" in result.output
    assert "resumable-status" in result.output


def test_upload_without_credentials_fails(tmp_path) -> None:
    path = tmp_path / "model.rvt"
    path.write_bytes(b"0123456789")

    result = runner.invoke(
        app, ["upload", "test-bucket", "model.rvt", str(path)], env=CLI_ENV
    )

    assert result.exit_code == 1


def test_upload_file(cli_env, fake_storage, tmp_path) -> None:
    path = tmp_path / "model.rvt"
    path.write_bytes(b"0123456789")

    result = runner.invoke(
        app,
        ["upload", "test-bucket", "model.rvt", str(path), "--content-type", "x/y"],
        env=CLI_ENV,
    )

    assert result.exit_code == 0, result.output
    assert '"objectKey":"model.rvt"' in result.output
    assert fake_storage.objects["model.rvt"] == b"0123456789"
    assert all(size >= 4 for size in fake_storage.part_sizes()[:-1])
    assert fake_storage.finalize_requests[0]["content_type"] == "x/y"


def test_upload_resumes_from_checkpoint_file(cli_env, fake_storage, tmp_path) -> None:
    path = tmp_path / "model.rvt"
    path.write_bytes(b"0123456789")
    checkpoint_path = tmp_path / "upload.json"
    args = ["upload", "test-bucket", "model.rvt", str(path)]
    args += ["--checkpoint", str(checkpoint_path)]
    fake_storage.put_hook = lambda index, attempt: 500 if index == 2 else None

    failed = runner.invoke(app, args, env=CLI_ENV)

    assert failed.exit_code == 1
    assert checkpoint_path.exists()

    fake_storage.put_hook = None
    resumed = runner.invoke(app, args, env=CLI_ENV)

    assert resumed.exit_code == 0, resumed.output
    assert not checkpoint_path.exists()
    assert [index for index, _ in fake_storage.put_log] == [1, 2, 3]
    assert fake_storage.objects["model.rvt"] == b"0123456789"


def test_download_by_ranges(cli_env, tmp_path) -> None:
    path = tmp_path / "out.bin"

    def serve_range(request, context):
        start, end = request.headers["Range"].removeprefix("bytes=").split("-")
        context.status_code = 206
        return b"0123456789"[int(start) : int(end) + 1]

    with requests_mock.Mocker() as m:
        m.get(
            DESCRIPTOR_URL,
            json={"status": "complete", "url": OBJECT_URL, "size": 10},
        )
        m.get(OBJECT_URL, content=serve_range)

        result = runner.invoke(
            app,
            ["download", "test-bucket", "model.rvt", str(path), "--chunk-size", "4b"],
            env=CLI_ENV,
        )

        assert m.call_count == 4

    assert result.exit_code == 0, result.output
    assert f"Wrote 10 bytes to {path}" in result.output
    assert path.read_bytes() == b"0123456789"


def test_download_rejects_bad_chunk_size(cli_env, tmp_path) -> None:
    result = runner.invoke(
        app,
        ["download", "test-bucket", "model.rvt", str(tmp_path / "out.bin")]
        + ["--chunk-size", "lots"],
        env=CLI_ENV,
    )

    assert result.exit_code == 2


def test_download_missing_object_fails(cli_env, tmp_path) -> None:
    with requests_mock.Mocker() as m:
        m.get(DESCRIPTOR_URL, status_code=404, json={"reason": "Object not found"})

        result = runner.invoke(
            app,
            ["download", "test-bucket", "model.rvt", str(tmp_path / "out.bin")],
            env=CLI_ENV,
        )

    assert result.exit_code == 1


def test_resumable_status(cli_env) -> None:
    with requests_mock.Mocker() as m:
        m.get(
            "https://oss.test/oss/v2/buckets/test-bucket/objects/model.rvt"
            "/status/session-1",
            headers={"Range": "bytes=0-99,200-299"},
        )

        result = runner.invoke(
            app,
            ["resumable-status", "test-bucket", "model.rvt", "session-1"],
            env=CLI_ENV,
        )

    assert result.exit_code == 0, result.output
    assert "0-99\n200-299" in result.output
