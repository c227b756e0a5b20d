"""Tests for the command-line interface."""

from __future__ import annotations

import socket
from pathlib import Path

import pytest

from dirscope.cli import main, parse_args


class TestParseArgs:
    def test_serve(self) -> None:
        args = parse_args(["-v", "serve", "--port", "7000"])
        assert args.command == "serve"
        assert args.port == 7000
        assert args.host is None
        assert args.verbose

    def test_search(self) -> None:
        args = parse_args(["search", "-u", "alice", "-p", "pw", "/srv", "hello world"])
        assert args.command == "search"
        assert args.user == "alice"
        assert args.password == "pw"
        assert args.path == "/srv"
        assert args.pattern == "hello world"

    def test_config_path(self) -> None:
        args = parse_args(["-c", "/etc/dirscope.yaml", "inspect", "-u", "bob", "/etc/hostname"])
        assert args.config == Path("/etc/dirscope.yaml")
        assert args.password is None

    def test_user_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["traverse", "/srv"])


class TestMain:
    def test_unreachable_server_exits_nonzero(self, tmp_path: Path) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]

        with pytest.raises(SystemExit) as exc_info:
            main([
                "-c", str(tmp_path / "missing.yaml"),
                "traverse", "--host", "127.0.0.1", "--port", str(port),
                "-u", "alice", "-p", "pw", "/",
            ])
        assert exc_info.value.code == 1
