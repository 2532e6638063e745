"""
Tests for the command line entry point.
"""
import os
import socket

import pytest

from upload_server import cli
from upload_server.app import UploadServer
from upload_server.errors import StartupError


def test_config_from_args(tmp_path):
    args = cli.build_parser().parse_args([
        "--listen", "127.0.0.1:8123",
        "--uploads-dir", str(tmp_path),
        "--name", "Drop box",
        "--save-meta",
        "--max-body-size", "1024",
        "--body-timeout", "2.5",
        "--log-level", "debug",
    ])
    config = cli.config_from_args(args)

    assert config.host == "127.0.0.1"
    assert config.port == 8123
    assert config.uploads_dir == tmp_path
    assert config.name == "Drop box"
    assert config.save_meta is True
    assert config.max_body_size == 1024
    assert config.body_timeout == 2.5
    assert config.log_level == "DEBUG"


def test_defaults(tmp_path):
    args = cli.build_parser().parse_args(["--uploads-dir", str(tmp_path)])
    config = cli.config_from_args(args)

    assert config.listen == "0.0.0.0:2022"
    assert config.save_meta is False


def test_uploads_dir_required(capsys):
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_invalid_listen_is_startup_error(tmp_path):
    args = cli.build_parser().parse_args([
        "--listen", "nohostport", "--uploads-dir", str(tmp_path),
    ])
    with pytest.raises(StartupError):
        cli.config_from_args(args)


def test_main_missing_uploads_dir(tmp_path):
    assert cli.main(["--uploads-dir", str(tmp_path / "missing"), "--log-level", "CRITICAL"]) == 1
    assert not (tmp_path / "missing").exists()


def test_main_runs_server(tmp_path, monkeypatch):
    started = []
    monkeypatch.setattr(UploadServer, "run", lambda self: started.append(self.config))

    assert cli.main(["--uploads-dir", str(tmp_path), "--log-level", "ERROR"]) == 0
    assert started[0].uploads_dir == tmp_path


def test_main_address_in_use(tmp_path):
    """A port that is already taken ends the process with exit code 1."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen(1)
        port = busy.getsockname()[1]

        code = cli.main([
            "--uploads-dir", str(tmp_path),
            "--listen", f"127.0.0.1:{port}",
            "--log-level", "CRITICAL",
        ])

    assert code == 1
    assert os.listdir(tmp_path) == []
