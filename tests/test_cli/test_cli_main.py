"""
Tests for the ftps-ingest command-line interface.
"""

import functools
import json
from pathlib import Path

import pytest
from fakes import FakeServer, ts

from ftps_ingest import cli
from ftps_ingest.exceptions import FTPAuthenticationError
from ftps_ingest.ftp import FTPSPoller


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for suffix in cli.ConfigLoader.env_mappings:
        monkeypatch.delenv(f"FTPS_INGEST_{suffix}", raising=False)


@pytest.fixture
def fake_server(monkeypatch) -> FakeServer:
    server = FakeServer()
    monkeypatch.setattr(
        cli, "FTPSPoller", functools.partial(FTPSPoller, session_factory=server.connect)
    )
    return server


class TestBuildOverrides:
    def test_only_given_flags(self):
        args = cli.create_parser().parse_args(["--host", "h", "--remote-path", "/in"])

        assert cli.build_overrides(args) == {
            "connection": {"host": "h"},
            "poll": {"remote_path": "/in"},
        }

    def test_boolean_flags(self):
        args = cli.create_parser().parse_args(
            ["--recursive", "--keep-original", "--allow-self-signed", "-v"]
        )

        overrides = cli.build_overrides(args)

        assert overrides["poll"] == {"recursive": True, "delete_original": False}
        assert overrides["connection"] == {"allow_self_signed": True}
        assert overrides["logging"] == {"level": "DEBUG"}


class TestMain:
    """Test complete CLI runs."""

    def test_configuration_error(self, capsys):
        exit_code = cli.main([])

        assert exit_code == cli.EXIT_CONFIG_ERROR
        assert "Configuration error" in capsys.readouterr().err

    def test_poll_writes_files(self, fake_server, tmp_path: Path, capsys):
        fake_server.add_file("/in/a.txt", b"alpha", ts(1))
        fake_server.add_file("/in/sub/b.txt", b"beta", ts(2))
        out_dir = tmp_path / "out"

        exit_code = cli.main(
            [
                "--host", "ftp.example.com",
                "--remote-path", "/in",
                "--recursive",
                "--output-dir", str(out_dir),
                "--json",
            ]
        )

        assert exit_code == cli.EXIT_OK
        summary = json.loads(capsys.readouterr().out)
        assert summary["retrieved"] == 2
        assert (out_dir / "a.txt").read_bytes() == b"alpha"
        assert (out_dir / "sub" / "b.txt").read_bytes() == b"beta"
        assert fake_server.deleted == ["/in/a.txt", "/in/sub/b.txt"]

    def test_keep_original(self, fake_server, tmp_path: Path):
        fake_server.add_file("/in/a.txt", b"alpha", ts(1))

        cli.main(
            ["--host", "h", "--remote-path", "/in", "--keep-original", "-o", str(tmp_path)]
        )

        assert fake_server.deleted == []

    def test_text_summary(self, fake_server, tmp_path: Path, capsys):
        fake_server.add_file("/in/a.txt", b"alpha", ts(1))

        exit_code = cli.main(["--host", "h", "--remote-path", "/in", "-o", str(tmp_path)])

        out = capsys.readouterr().out
        assert exit_code == cli.EXIT_OK
        assert "/in/a.txt" in out
        assert "1 retrieved" in out

    def test_aborted_cycle(self, fake_server, tmp_path: Path, capsys):
        fake_server.connect_errors.append(FTPAuthenticationError("530 Login incorrect"))

        exit_code = cli.main(["--host", "h", "-o", str(tmp_path), "--json"])

        assert exit_code == cli.EXIT_ABORTED
        summary = json.loads(capsys.readouterr().out)
        assert summary["error_kind"] == "fatal"


class TestStateFile:
    """Test seen-file state kept between CLI runs."""

    def test_keep_original_runs_do_not_repeat(self, fake_server, tmp_path: Path, capsys):
        fake_server.add_file("/in/a.txt", b"alpha", ts(1))
        state = tmp_path / "state.json"
        argv = [
            "--host", "h",
            "--remote-path", "/in",
            "--keep-original",
            "--state-file", str(state),
            "-o", str(tmp_path / "out"),
            "--json",
        ]

        assert cli.main(argv) == cli.EXIT_OK
        first = json.loads(capsys.readouterr().out)
        assert cli.main(argv) == cli.EXIT_OK
        second = json.loads(capsys.readouterr().out)

        assert first["retrieved"] == 1
        assert second["retrieved"] == 0
        assert second["skipped_duplicate"] == 1
        assert fake_server.read == ["/in/a.txt"]

    def test_changed_file_is_fetched_again(self, fake_server, tmp_path: Path):
        fake_server.add_file("/in/a.txt", b"v1", ts(1))
        state = tmp_path / "state.json"
        argv = [
            "--host", "h",
            "--remote-path", "/in",
            "--keep-original",
            "--state-file", str(state),
            "-o", str(tmp_path / "out"),
        ]

        cli.main(argv)
        fake_server.touch("/in/a.txt", ts(5))
        cli.main(argv)

        assert fake_server.read == ["/in/a.txt", "/in/a.txt"]

    def test_state_round_trip(self, tmp_path: Path):
        tracker = cli.SeenFileTracker()
        tracker.record(("/in", "a.txt"), ts(1))
        tracker.record(("/in", "b.txt"), None)
        state = tmp_path / "state.json"

        cli.save_state(state, tracker)

        assert cli.load_state(state).snapshot() == tracker.snapshot()
        assert not (tmp_path / "state.json.tmp").exists()

    def test_missing_state_file_starts_empty(self, tmp_path: Path):
        assert len(cli.load_state(tmp_path / "absent.json")) == 0

    def test_corrupt_state_file(self, tmp_path: Path, capsys):
        state = tmp_path / "state.json"
        state.write_text("{not json", encoding="utf-8")

        exit_code = cli.main(["--host", "h", "--state-file", str(state)])

        assert exit_code == cli.EXIT_CONFIG_ERROR
        assert "Unreadable state file" in capsys.readouterr().err
